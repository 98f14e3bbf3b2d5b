"""Rasterize slides with Pillow.

Each slide is painted onto an RGB bitmap at a fixed resolution. The bitmap is
either embedded as a full-page image by the PDF writer (raster mode) or
returned directly as encoded image bytes.
"""

import io
import logging
import math
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from PIL import Image, ImageDraw, ImageFont

from pptxconvert.dsl.schema import (
    GeometryElement,
    ImageElement,
    ParsedPresentation,
    ParsedSlide,
    RenderOptions,
    SlideSize,
    TextElement,
    TextInsets,
    TextRun,
)
from pptxconvert.engine.units import BULLET_INDENT_PER_LEVEL_EMU, MM_PER_INCH, POINTS_PER_INCH, hex_to_rgb
from pptxconvert.errors import RenderError
from pptxconvert.renderer.geometry import Box, PageGeometry
from pptxconvert.renderer.text_layout import ASCENT_FACTOR, TextLayout, anchor_offset

logger = logging.getLogger(__name__)

# Font files tried in order; Pillow also searches the system font directories
DEJAVU_FONTS = {
    (False, False): "DejaVuSans.ttf",
    (True, False): "DejaVuSans-Bold.ttf",
    (False, True): "DejaVuSans-Oblique.ttf",
    (True, True): "DejaVuSans-BoldOblique.ttf",
}

LINE_GEOMETRIES = ("line", "straightConnector1", "bentConnector2", "bentConnector3", "curvedConnector3")

WHITE = (255, 255, 255)


@lru_cache(maxsize=256)
def load_font(font_file: str, size_px: int) -> Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]:
    """Load a TrueType font, falling back to Pillow's built-in font.

    Args:
        font_file: Font path or file name.
        size_px: Font size in pixels.

    Returns:
        PIL font object ready for measuring and drawing.
    """
    try:
        return ImageFont.truetype(font_file, size_px)
    except OSError:
        logger.debug(f"Font {font_file} not found; using Pillow's default font")
        return ImageFont.load_default(size=size_px)


class PillowMeasurer:
    """Measures and selects fonts for bitmap text."""

    def __init__(self, dpi: int, font_path: Optional[Path] = None) -> None:
        self.dpi = dpi
        self.font_path = font_path

    def font(self, run: TextRun, size_pt: float) -> Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]:
        size_px = max(1, round(size_pt * self.dpi / POINTS_PER_INCH))
        font_file = str(self.font_path) if self.font_path else DEJAVU_FONTS[(run.bold, run.italic)]
        return load_font(font_file, size_px)

    def text_width(self, text: str, run: TextRun, size_pt: float) -> float:
        if not text:
            return 0.0
        return self.font(run, size_pt).getlength(text) * MM_PER_INCH / self.dpi


class RasterRenderer:
    """Paints slides onto Pillow images."""

    def __init__(self, font_path: Optional[Path] = None) -> None:
        self.font_path = font_path

    def render_slide(
        self,
        slide: ParsedSlide,
        slide_size: SlideSize,
        width_mm: float,
        height_mm: float,
        dpi: int,
    ) -> Image.Image:
        """Rasterize one slide.

        Args:
            slide: The slide to paint.
            slide_size: Presentation slide size in EMU.
            width_mm: Physical width the bitmap represents.
            height_mm: Physical height the bitmap represents.
            dpi: Bitmap resolution.

        Returns:
            RGB image of round(width_mm * dpi / 25.4) by
            round(height_mm * dpi / 25.4) pixels.
        """
        geometry = PageGeometry(slide_size, width_mm, height_mm, anchor="top-left")
        painter = _SlidePainter(geometry, dpi, PillowMeasurer(dpi, self.font_path))
        return painter.paint(slide)

    def render_page(self, slide: ParsedSlide, slide_size: SlideSize, options: RenderOptions) -> Image.Image:
        """Rasterize a slide letterboxed onto a full page."""
        geometry = PageGeometry(slide_size, options.page_width, options.page_height, options.anchor)
        dpi = options.raster_dpi
        page = Image.new("RGB", (_px(options.page_width, dpi), _px(options.page_height, dpi)), WHITE)
        content = geometry.content_box
        bitmap = self.render_slide(slide, slide_size, content.width, content.height, dpi)
        page.paste(bitmap, (_px(content.x, dpi), _px(content.y, dpi)))
        return page


def render_images(
    presentation: ParsedPresentation,
    options: Optional[RenderOptions] = None,
    image_format: str = "PNG",
    font_path: Optional[Path] = None,
) -> list[bytes]:
    """Rasterize every slide to encoded image bytes.

    Args:
        presentation: Parsed presentation.
        options: Page size, anchor and resolution. Defaults to a page fitted
            to the slide aspect ratio.
        image_format: Pillow format name (PNG, JPEG, ...).
        font_path: Optional TrueType font used for all text.

    Returns:
        One encoded image per slide, in slide order.

    Raises:
        RenderError: If the presentation has no slides.
    """
    if not presentation.slides:
        raise RenderError("Presentation has no slides to render")

    options = options or RenderOptions.fit_to_slide(presentation.slide_size)
    renderer = RasterRenderer(font_path)
    images = []
    for slide in presentation.slides:
        page = renderer.render_page(slide, presentation.slide_size, options)
        buffer = io.BytesIO()
        page.save(buffer, format=image_format)
        images.append(buffer.getvalue())
    return images


def _px(mm: float, dpi: int) -> int:
    return max(1, round(mm * dpi / MM_PER_INCH))


def _rgb(color: Optional[str]) -> Optional[tuple]:
    return hex_to_rgb(color) if color else None


class _SlidePainter:
    """Draws one slide onto a bitmap."""

    def __init__(self, geometry: PageGeometry, dpi: int, measurer: PillowMeasurer) -> None:
        self.geometry = geometry
        self.dpi = dpi
        self.measurer = measurer
        self.image = Image.new("RGB", (_px(geometry.page_width, dpi), _px(geometry.page_height, dpi)), WHITE)
        self.draw = ImageDraw.Draw(self.image)

    def to_px(self, mm: float) -> float:
        return mm * self.dpi / MM_PER_INCH

    def box_px(self, box: Box) -> list[float]:
        x0, y0 = self.to_px(box.x), self.to_px(box.y)
        return [x0, y0, max(self.to_px(box.right), x0), max(self.to_px(box.bottom), y0)]

    def paint(self, slide: ParsedSlide) -> Image.Image:
        self._paint_background(slide.background)
        for element in slide.sorted_elements():
            try:
                if isinstance(element, GeometryElement):
                    self._paint_geometry(element)
                elif isinstance(element, TextElement):
                    self._paint_text_element(element)
                elif isinstance(element, ImageElement):
                    self._paint_image_element(element)
            except (OSError, ValueError) as e:
                logger.warning(f"Slide {slide.slide_number}: could not rasterize {element.name!r}: {e}")
        return self.image

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    def _paint_background(self, background) -> None:
        size = self.image.size
        if background.type == "solid":
            self.draw.rectangle([0, 0, size[0], size[1]], fill=_rgb(background.color))
        elif background.type == "image" and background.image_data is not None:
            with Image.open(io.BytesIO(background.image_data.to_bytes())) as source:
                self._paste(source, (0, 0), size)
        elif background.type == "gradient":
            self.image.paste(_gradient(size, background.stops, background.angle), (0, 0))

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def _paint_geometry(self, element: GeometryElement) -> None:
        if not element.supported:
            return
        fill = _rgb(element.fill_color)
        outline = _rgb(element.stroke_color)
        if fill is None and outline is None:
            return

        box = self.box_px(self.geometry.place(element.transform))
        width = self._stroke_px(element.stroke_width) if outline else 0

        if element.geometry in LINE_GEOMETRIES:
            self.draw.line(box, fill=outline or fill, width=max(width, 1))
        elif element.geometry == "ellipse":
            self.draw.ellipse(box, fill=fill, outline=outline, width=width)
        elif element.geometry == "roundRect":
            radius = min(box[2] - box[0], box[3] - box[1]) * 0.1667
            self.draw.rounded_rectangle(box, radius=radius, fill=fill, outline=outline, width=width)
        else:
            self.draw.rectangle(box, fill=fill, outline=outline, width=width)

    def _paint_text_element(self, element: TextElement) -> None:
        box = self.geometry.place(element.transform)
        fill = _rgb(element.fill_color)
        outline = _rgb(element.stroke_color)
        if fill is not None or outline is not None:
            width = self._stroke_px(element.stroke_width) if outline else 0
            self.draw.rectangle(self.box_px(box), fill=fill, outline=outline, width=width)
        self._paint_paragraphs(element.paragraphs, box, element.insets, element.vertical_anchor)

    def _paint_image_element(self, element: ImageElement) -> None:
        box = self.geometry.place(element.transform)
        data = element.image_data
        if data is not None:
            target = box.fit(data.aspect_ratio) if data.aspect_ratio else box
            x0, y0, x1, y1 = self.box_px(target)
            with Image.open(io.BytesIO(data.to_bytes())) as source:
                self._paste(source, (round(x0), round(y0)), (round(x1 - x0), round(y1 - y0)))
        if element.paragraphs:
            self._paint_paragraphs(element.paragraphs, box, TextInsets(), "top")

    def _paste(self, source: Image.Image, origin: tuple, size: tuple) -> None:
        if size[0] < 1 or size[1] < 1:
            return
        rgba = source.convert("RGBA").resize(size, Image.Resampling.LANCZOS)
        self.image.paste(rgba, origin, rgba)

    def _stroke_px(self, stroke_width: Optional[int]) -> int:
        if not stroke_width:
            return 1
        return max(1, round(self.to_px(self.geometry.length(stroke_width))))

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def _paint_paragraphs(self, paragraphs, box: Box, insets: TextInsets, anchor: str) -> None:
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

        for line in block.lines:
            baseline = self.to_px(inner.y + offset + line.baseline)
            for fragment in line.fragments:
                text = fragment.text.rstrip()
                if not text:
                    continue
                font = self.measurer.font(fragment.run, fragment.size)
                ascent = font.getmetrics()[0] if hasattr(font, "getmetrics") else fragment.size * self.dpi / POINTS_PER_INCH * ASCENT_FACTOR
                x = self.to_px(inner.x + fragment.x)
                color = _rgb(fragment.run.color)
                self.draw.text((x, baseline - ascent), text, fill=color, font=font)
                if fragment.run.underline:
                    length = font.getlength(text)
                    thickness = max(1, round(fragment.size * self.dpi / POINTS_PER_INCH / 16))
                    self.draw.line([x, baseline + thickness, x + length, baseline + thickness], fill=color, width=thickness)


def _gradient(size: tuple, stops, angle: float) -> Image.Image:
    """Approximate a linear gradient with a rotated, interpolated strip."""
    steps = 256
    strip = Image.new("RGB", (steps, 1))
    colors = [(stop.position, hex_to_rgb(stop.color)) for stop in stops]
    pixels = []
    for i in range(steps):
        t = i / (steps - 1)
        pixels.append(_interpolate(colors, t))
    strip.putdata(pixels)

    diagonal = int(math.hypot(*size)) + 2
    square = strip.resize((diagonal, diagonal), Image.Resampling.BILINEAR)
    rotated = square.rotate(-angle, resample=Image.Resampling.BILINEAR)
    left = (diagonal - size[0]) // 2
    top = (diagonal - size[1]) // 2
    return rotated.crop((left, top, left + size[0], top + size[1]))


def _interpolate(colors: list, t: float) -> tuple:
    if t <= colors[0][0]:
        return colors[0][1]
    for (p0, c0), (p1, c1) in zip(colors, colors[1:]):
        if p0 <= t <= p1:
            f = (t - p0) / (p1 - p0) if p1 > p0 else 0.0
            return tuple(round(a + (b - a) * f) for a, b in zip(c0, c1))
    return colors[-1][1]
