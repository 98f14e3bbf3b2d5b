"""Write a ParsedPresentation as a PDF with reportlab.

Every slide becomes exactly one page. In vector mode, backgrounds, shapes,
images and text are drawn as PDF primitives. In raster mode each slide is
rasterized with Pillow and placed as a single image over the slide area.
"""

import io
import logging
import math
from pathlib import Path
from typing import Optional

from reportlab.lib.colors import Color, HexColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from pptxconvert.dsl.schema import (
    GeometryElement,
    ImageElement,
    ParsedPresentation,
    ParsedSlide,
    RenderOptions,
    TextElement,
    TextInsets,
    TextRun,
)
from pptxconvert.engine.units import BULLET_INDENT_PER_LEVEL_EMU, MM_PER_INCH, POINTS_PER_INCH, mm_to_points
from pptxconvert.errors import RenderError, UnsupportedFeature
from pptxconvert.parser.diagnostics import Diagnostics
from pptxconvert.renderer.geometry import Box, PageGeometry
from pptxconvert.renderer.raster_renderer import LINE_GEOMETRIES, RasterRenderer
from pptxconvert.renderer.text_layout import TextLayout, anchor_offset

logger = logging.getLogger(__name__)

# Standard PDF fonts by family class: regular, bold, italic, bold italic
STANDARD_FONTS = {
    "sans": ("Helvetica", "Helvetica-Bold", "Helvetica-Oblique", "Helvetica-BoldOblique"),
    "serif": ("Times-Roman", "Times-Bold", "Times-Italic", "Times-BoldItalic"),
    "mono": ("Courier", "Courier-Bold", "Courier-Oblique", "Courier-BoldOblique"),
}

SERIF_HINTS = ("times", "georgia", "garamond", "cambria", "palatino", "book antiqua", "serif")
MONO_HINTS = ("courier", "consolas", "mono", "lucida console")

SLIDE_NUMBER_FONT = "Helvetica"
SLIDE_NUMBER_SIZE = 10
SLIDE_NUMBER_COLOR = Color(0.4, 0.4, 0.4)

# Encoding of the standard 14 fonts
STANDARD_FONT_ENCODING = "cp1252"


def family_class(font_family: str) -> str:
    """Classify a font family as sans, serif or mono."""
    name = font_family.lower()
    if any(hint in name for hint in MONO_HINTS):
        return "mono"
    if any(hint in name for hint in SERIF_HINTS):
        return "serif"
    return "sans"


class ReportLabMeasurer:
    """Selects PDF fonts for runs and measures text with their metrics.

    Uses the standard 14 fonts unless a TrueType font file is configured, in
    which case that font is embedded and used for all text.
    """

    def __init__(self, font_path: Optional[Path] = None) -> None:
        self.custom_font: Optional[str] = None
        if font_path:
            name = f"pptxconvert-{Path(font_path).stem}"
            if name not in pdfmetrics.getRegisteredFontNames():
                pdfmetrics.registerFont(TTFont(name, str(font_path)))
            self.custom_font = name

    def can_encode(self, text: str) -> bool:
        """Whether the selected fonts have glyphs for every character of ``text``."""
        if self.custom_font:
            return True
        try:
            text.encode(STANDARD_FONT_ENCODING)
        except UnicodeEncodeError:
            return False
        return True

    def font_name(self, run: TextRun) -> str:
        if self.custom_font:
            return self.custom_font
        variants = STANDARD_FONTS[family_class(run.font_family)]
        return variants[(2 if run.italic else 0) + (1 if run.bold else 0)]

    def text_width(self, text: str, run: TextRun, size_pt: float) -> float:
        if not text:
            return 0.0
        return pdfmetrics.stringWidth(text, self.font_name(run), size_pt) * MM_PER_INCH / POINTS_PER_INCH


class PDFWriter:
    """Renders parsed presentations to PDF bytes."""

    def __init__(self, font_path: Optional[Path] = None) -> None:
        self.measurer = ReportLabMeasurer(font_path)
        self.raster = RasterRenderer(font_path)
        self.diagnostics = Diagnostics()

    def write(self, presentation: ParsedPresentation, options: Optional[RenderOptions] = None) -> bytes:
        """Render every slide as one PDF page.

        Args:
            presentation: Parsed presentation.
            options: Page size, mode and anchor. Defaults to a page fitted to
                the slide aspect ratio, vector mode.

        Returns:
            The PDF document. Rendering warnings are left in
            ``self.diagnostics``.

        Raises:
            RenderError: If the presentation has no slides.
        """
        if not presentation.slides:
            raise RenderError("Presentation has no slides to render")
        self.diagnostics = Diagnostics()

        options = options or RenderOptions.fit_to_slide(presentation.slide_size)
        geometry = PageGeometry(presentation.slide_size, options.page_width, options.page_height, options.anchor)
        page_size = (mm_to_points(options.page_width), mm_to_points(options.page_height))

        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=page_size)
        pdf.setCreator("pptxconvert")

        for slide in presentation.slides:
            pdf.setPageSize(page_size)
            if options.mode == "raster":
                self._draw_raster_slide(pdf, slide, presentation, geometry, options)
            else:
                _PageDrawer(pdf, geometry, self.measurer, self.diagnostics).draw(slide)
            if options.draw_slide_numbers:
                self._draw_slide_number(pdf, slide.slide_number, options)
            pdf.showPage()

        pdf.save()
        logger.info(f"Rendered {len(presentation.slides)} pages ({options.mode})")
        return buffer.getvalue()

    def _draw_raster_slide(
        self,
        pdf: canvas.Canvas,
        slide: ParsedSlide,
        presentation: ParsedPresentation,
        geometry: PageGeometry,
        options: RenderOptions,
    ) -> None:
        content = geometry.content_box
        bitmap = self.raster.render_slide(
            slide, presentation.slide_size, content.width, content.height, options.raster_dpi
        )
        stream = io.BytesIO()
        bitmap.save(stream, format="PNG")
        stream.seek(0)
        pdf.drawImage(
            ImageReader(stream),
            mm_to_points(content.x),
            mm_to_points(options.page_height - content.bottom),
            width=mm_to_points(content.width),
            height=mm_to_points(content.height),
            preserveAspectRatio=False,
        )

    @staticmethod
    def _draw_slide_number(pdf: canvas.Canvas, slide_number: int, options: RenderOptions) -> None:
        pdf.setFont(SLIDE_NUMBER_FONT, SLIDE_NUMBER_SIZE)
        pdf.setFillColor(SLIDE_NUMBER_COLOR)
        pdf.drawRightString(mm_to_points(options.page_width - 10), mm_to_points(5), str(slide_number))


def render_presentation(
    presentation: ParsedPresentation,
    options: Optional[RenderOptions] = None,
    font_path: Optional[Path] = None,
) -> bytes:
    """Render a parsed presentation to PDF bytes."""
    return PDFWriter(font_path).write(presentation, options)


class _PageDrawer:
    """Draws one slide's content as vector PDF operations."""

    def __init__(
        self,
        pdf: canvas.Canvas,
        geometry: PageGeometry,
        measurer: ReportLabMeasurer,
        diagnostics: Diagnostics,
    ) -> None:
        self.pdf = pdf
        self.geometry = geometry
        self.measurer = measurer
        self.diagnostics = diagnostics
        self.slide_number = 0
        self.page_height = mm_to_points(geometry.page_height)

    def rect(self, box: Box) -> tuple[float, float, float, float]:
        """Box as reportlab (x, y, width, height) with a bottom-left origin."""
        return (
            mm_to_points(box.x),
            self.page_height - mm_to_points(box.bottom),
            mm_to_points(box.width),
            mm_to_points(box.height),
        )

    def draw(self, slide: ParsedSlide) -> None:
        self.slide_number = slide.slide_number
        self._draw_background(slide.background)
        for element in slide.sorted_elements():
            try:
                if isinstance(element, GeometryElement):
                    self._draw_geometry(element)
                elif isinstance(element, TextElement):
                    self._draw_text_element(element)
                elif isinstance(element, ImageElement):
                    self._draw_image_element(element)
            except (OSError, ValueError) as e:
                logger.warning(f"Slide {slide.slide_number}: could not draw {element.name!r}: {e}")

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    def _draw_background(self, background) -> None:
        x, y, width, height = self.rect(self.geometry.content_box)
        pdf = self.pdf

        if background.type == "solid":
            pdf.setFillColor(HexColor(background.color))
            pdf.rect(x, y, width, height, stroke=0, fill=1)

        elif background.type == "image" and background.image_data is not None:
            image = ImageReader(io.BytesIO(background.image_data.to_bytes()))
            pdf.drawImage(image, x, y, width=width, height=height, preserveAspectRatio=False, mask="auto")

        elif background.type == "gradient":
            # OOXML angles run clockwise from the x axis in a y-down space
            radians = math.radians(background.angle)
            dx, dy = math.cos(radians), -math.sin(radians)
            half = (abs(width * dx) + abs(height * dy)) / 2
            cx, cy = x + width / 2, y + height / 2

            pdf.saveState()
            clip = pdf.beginPath()
            clip.rect(x, y, width, height)
            pdf.clipPath(clip, stroke=0, fill=0)
            pdf.linearGradient(
                cx - dx * half,
                cy - dy * half,
                cx + dx * half,
                cy + dy * half,
                [HexColor(stop.color) for stop in background.stops],
                [stop.position for stop in background.stops],
                extend=True,
            )
            pdf.restoreState()

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def _apply_paint(self, fill_color: Optional[str], stroke_color: Optional[str], stroke_width: Optional[int]) -> None:
        if fill_color:
            self.pdf.setFillColor(HexColor(fill_color))
        if stroke_color:
            self.pdf.setStrokeColor(HexColor(stroke_color))
            width_mm = self.geometry.length(stroke_width) if stroke_width else 0.0
            self.pdf.setLineWidth(max(mm_to_points(width_mm), 0.25))

    def _draw_geometry(self, element: GeometryElement) -> None:
        if not element.supported or (element.fill_color is None and element.stroke_color is None):
            return

        x, y, width, height = self.rect(self.geometry.place(element.transform))
        stroke = 1 if element.stroke_color else 0
        fill = 1 if element.fill_color else 0
        self._apply_paint(element.fill_color, element.stroke_color, element.stroke_width)

        if element.geometry in LINE_GEOMETRIES:
            if not element.stroke_color:
                self.pdf.setStrokeColor(HexColor(element.fill_color))
            self.pdf.line(x, y + height, x + width, y)
        elif element.geometry == "ellipse":
            self.pdf.ellipse(x, y, x + width, y + height, stroke=stroke, fill=fill)
        elif element.geometry == "roundRect":
            self.pdf.roundRect(x, y, width, height, min(width, height) * 0.1667, stroke=stroke, fill=fill)
        else:
            self.pdf.rect(x, y, width, height, stroke=stroke, fill=fill)

    def _draw_text_element(self, element: TextElement) -> None:
        box = self.geometry.place(element.transform)
        if element.fill_color or element.stroke_color:
            self._apply_paint(element.fill_color, element.stroke_color, element.stroke_width)
            self.pdf.rect(
                *self.rect(box),
                stroke=1 if element.stroke_color else 0,
                fill=1 if element.fill_color else 0,
            )
        self._draw_paragraphs(element.paragraphs, box, element.insets, element.vertical_anchor)

    def _draw_image_element(self, element: ImageElement) -> None:
        box = self.geometry.place(element.transform)
        data = element.image_data
        if data is not None:
            target = box.fit(data.aspect_ratio) if data.aspect_ratio else box
            x, y, width, height = self.rect(target)
            image = ImageReader(io.BytesIO(data.to_bytes()))
            self.pdf.drawImage(image, x, y, width=width, height=height, preserveAspectRatio=False, mask="auto")
        if element.paragraphs:
            self._draw_paragraphs(element.paragraphs, box, TextInsets(), "top")

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def _draw_paragraphs(self, paragraphs, box: Box, insets: TextInsets, anchor: str) -> None:
        if not paragraphs:
            return
        geometry = self.geometry
        inner = box.inset(
            geometry.length(insets.left),
            geometry.length(insets.top),
            geometry.length(insets.right),
            geometry.length(insets.bottom),
        )
        layout = TextLayout(self.measurer, geometry.scale, geometry.length(BULLET_INDENT_PER_LEVEL_EMU))
        block = layout.layout(paragraphs, inner.width)

        offset = anchor_offset(anchor, inner.height, block.height)

        pdf = self.pdf
        for line in block.lines:
            y = self.page_height - mm_to_points(inner.y + offset + line.baseline)
            for fragment in line.fragments:
                text = fragment.text.rstrip()
                if not text:
                    continue
                if not self.measurer.can_encode(text):
                    self.diagnostics.record(
                        UnsupportedFeature,
                        f"Slide {self.slide_number} has text the standard PDF fonts cannot encode; "
                        "set a TrueType font_path to embed a font that covers it",
                    )
                x = mm_to_points(inner.x + fragment.x)
                color = HexColor(fragment.run.color)
                pdf.setFont(self.measurer.font_name(fragment.run), fragment.size)
                pdf.setFillColor(color)
                pdf.drawString(x, y, text)
                if fragment.run.underline:
                    length = mm_to_points(self.measurer.text_width(text, fragment.run, fragment.size))
                    pdf.setStrokeColor(color)
                    pdf.setLineWidth(max(fragment.size / 16, 0.25))
                    pdf.line(x, y - fragment.size * 0.12, x + length, y - fragment.size * 0.12)
