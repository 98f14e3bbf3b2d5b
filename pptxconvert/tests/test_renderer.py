"""Tests for the PDF and raster renderers."""

import io
import re

import pytest
from PIL import Image

from pptxconvert.dsl.schema import (
    GeometryElement,
    GradientBackground,
    GradientStop,
    ParsedPresentation,
    ParsedSlide,
    RenderOptions,
    SolidBackground,
    TextElement,
    TextParagraph,
    TextRun,
    Transform,
)
from pptxconvert.errors import RenderError
from pptxconvert.parser.pptx_reader import PPTXReader
from pptxconvert.renderer.pdf_writer import PDFWriter, family_class, render_presentation
from pptxconvert.renderer.raster_renderer import RasterRenderer, render_images

PAGE_PATTERN = re.compile(rb"/Type\s*/Page\b")
IMAGE_PATTERN = re.compile(rb"/Subtype\s*/Image")


def page_count(pdf: bytes) -> int:
    return len(PAGE_PATTERN.findall(pdf))


def media_box(pdf: bytes) -> list[float]:
    match = re.search(rb"/MediaBox\s*\[\s*([\d.\s]+)\]", pdf)
    return [float(v) for v in match.group(1).split()]


@pytest.fixture
def synthetic_presentation() -> ParsedPresentation:
    """Two slides exercising every element and background kind the model has."""
    text = TextElement(
        transform=Transform(x=914400, y=914400, width=914400 * 4, height=914400),
        z_index=1,
        paragraphs=[
            TextParagraph(
                runs=[TextRun(text="Hello wrapped world " * 5, bold=True, color="#336699")],
                alignment="center",
            ),
            TextParagraph(runs=[TextRun(text="Point", font_family="Georgia")], bullet_char="•"),
        ],
        vertical_anchor="middle",
        fill_color="#EEEEEE",
        stroke_color="#000000",
        stroke_width=12700,
    )
    shapes = [
        GeometryElement(transform=Transform(x=0, y=0, width=914400, height=914400), z_index=0, fill_color="#FF0000"),
        GeometryElement(
            transform=Transform(x=0, y=4572000, width=914400, height=457200),
            z_index=2,
            geometry="ellipse",
            stroke_color="#00FF00",
            stroke_width=25400,
        ),
        GeometryElement(transform=Transform(x=0, y=5000000, width=2000000, height=0), z_index=3, geometry="line",
                        stroke_color="#0000FF", stroke_width=12700),
        GeometryElement(transform=Transform(x=100, y=100, width=1000, height=1000), z_index=4, geometry="graphicFrame",
                        supported=False),
    ]
    return ParsedPresentation(
        slides=[
            ParsedSlide(slide_number=1, background=SolidBackground(color="#FAFAFA"), elements=[text, *shapes]),
            ParsedSlide(
                slide_number=2,
                background=GradientBackground(
                    stops=[GradientStop(position=0.0, color="#FFFFFF"), GradientStop(position=1.0, color="#000080")],
                    angle=45.0,
                ),
            ),
        ]
    )


class TestPDFWriter:
    """Tests for PDF output."""

    def test_one_page_per_slide(self, synthetic_presentation: ParsedPresentation) -> None:
        """Vector output has exactly one page per slide."""
        pdf = PDFWriter().write(synthetic_presentation)

        assert pdf.startswith(b"%PDF")
        assert page_count(pdf) == 2

    def test_latin_text_has_no_warnings(self, synthetic_presentation: ParsedPresentation) -> None:
        """Bullets and Latin text fit the standard font encoding."""
        writer = PDFWriter()
        writer.write(synthetic_presentation)
        assert writer.diagnostics.messages == []

    def test_unencodable_text_is_reported(self) -> None:
        """Text outside the standard font encoding renders with a warning per slide."""
        element = TextElement(
            transform=Transform(x=0, y=0, width=914400 * 4, height=914400),
            z_index=0,
            paragraphs=[TextParagraph(runs=[TextRun(text="你好")]), TextParagraph(runs=[TextRun(text="世界")])],
        )
        writer = PDFWriter()
        pdf = writer.write(ParsedPresentation(slides=[ParsedSlide(slide_number=1, elements=[element])]))

        assert page_count(pdf) == 1
        assert writer.diagnostics.messages == [
            "[UnsupportedFeature] Slide 1 has text the standard PDF fonts cannot encode; "
            "set a TrueType font_path to embed a font that covers it"
        ]

    def test_page_size_follows_options(self, synthetic_presentation: ParsedPresentation) -> None:
        """Pages use the requested size in points."""
        pdf = render_presentation(synthetic_presentation, RenderOptions(page_width=254.0, page_height=190.5))
        width, height = media_box(pdf)[2:]
        assert width == pytest.approx(720.0, abs=0.01)
        assert height == pytest.approx(540.0, abs=0.01)

    def test_raster_mode_embeds_bitmaps(self, synthetic_presentation: ParsedPresentation) -> None:
        """Raster mode places one image per page."""
        options = RenderOptions(mode="raster", raster_dpi=48)
        pdf = PDFWriter().write(synthetic_presentation, options)

        assert page_count(pdf) == 2
        assert IMAGE_PATTERN.search(pdf)

    def test_slide_numbers(self, synthetic_presentation: ParsedPresentation) -> None:
        """Slide numbers can be stamped without changing the page count."""
        pdf = PDFWriter().write(synthetic_presentation, RenderOptions(draw_slide_numbers=True, anchor="top-left"))
        assert page_count(pdf) == 2

    def test_empty_presentation(self) -> None:
        """Nothing to render is an error."""
        with pytest.raises(RenderError):
            PDFWriter().write(ParsedPresentation())

    def test_parsed_deck(self, hello_pptx: bytes, shared_image_pptx: bytes) -> None:
        """Real decks with text, shapes and pictures render."""
        for deck in (hello_pptx, shared_image_pptx):
            presentation = PPTXReader().read(deck)
            assert page_count(PDFWriter().write(presentation)) == len(presentation.slides)

        pictures = PDFWriter().write(PPTXReader().read(shared_image_pptx))
        assert IMAGE_PATTERN.search(pictures)

    def test_three_slides_three_vector_pages(self, three_slide_pptx: bytes) -> None:
        """A three-slide deck gives exactly three vector pages."""
        pdf = PDFWriter().write(PPTXReader().read(three_slide_pptx))

        assert page_count(pdf) == 3
        assert not IMAGE_PATTERN.search(pdf)

    def test_family_classes(self) -> None:
        """Font families map to standard font classes."""
        assert family_class("Calibri") == "sans"
        assert family_class("Times New Roman") == "serif"
        assert family_class("Consolas") == "mono"


class TestRasterRenderer:
    """Tests for bitmap output."""

    def test_slide_bitmap_size(self, synthetic_presentation: ParsedPresentation) -> None:
        """Bitmaps are sized from the physical size and resolution."""
        image = RasterRenderer().render_slide(
            synthetic_presentation.slides[0], synthetic_presentation.slide_size, 254.0, 190.5, dpi=50
        )
        assert image.size == (500, 375)
        assert image.mode == "RGB"

    def test_background_and_shapes_are_painted(self, synthetic_presentation: ParsedPresentation) -> None:
        """The solid background and the red square land where expected."""
        image = RasterRenderer().render_slide(
            synthetic_presentation.slides[0], synthetic_presentation.slide_size, 254.0, 190.5, dpi=50
        )
        assert image.getpixel((25, 25)) == (255, 0, 0)
        assert image.getpixel((400, 300)) == (250, 250, 250)

    def test_letterboxed_page(self, synthetic_presentation: ParsedPresentation) -> None:
        """Pages keep white letterbox bars outside the slide."""
        options = RenderOptions(page_width=297.0, page_height=210.0, raster_dpi=50)
        page = RasterRenderer().render_page(
            synthetic_presentation.slides[0], synthetic_presentation.slide_size, options
        )
        assert page.size == (585, 413)
        assert page.getpixel((2, 200)) == (255, 255, 255)

    def test_render_images(self, hello_pptx: bytes) -> None:
        """One encoded image per slide."""
        presentation = PPTXReader().read(hello_pptx)
        images = render_images(presentation, RenderOptions(page_width=254.0, page_height=190.5, raster_dpi=40))

        assert len(images) == 1
        with Image.open(io.BytesIO(images[0])) as png:
            assert png.format == "PNG"
            assert png.size == (400, 300)

    def test_render_images_requires_slides(self) -> None:
        """An empty presentation cannot be rasterized."""
        with pytest.raises(RenderError):
            render_images(ParsedPresentation())
