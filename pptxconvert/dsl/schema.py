"""Pydantic v2 models for the parsed presentation.

This module defines the normalized slide object model produced by the parser
and consumed by the renderer. All geometry is in EMUs (English Metric Units)
unless otherwise specified. 1 inch = 914400 EMUs. Every model is frozen: a
ParsedPresentation is never mutated once parsing completes.
"""

import base64
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from pptxconvert.engine.units import (
    A4_LONG_EDGE_MM,
    A4_SHORT_EDGE_MM,
    DEFAULT_INSET_BOTTOM_EMU,
    DEFAULT_INSET_LEFT_EMU,
    DEFAULT_INSET_RIGHT_EMU,
    DEFAULT_INSET_TOP_EMU,
    DEFAULT_SLIDE_HEIGHT_EMU,
    DEFAULT_SLIDE_WIDTH_EMU,
    emu_to_mm,
)


class PlaceholderType(str, Enum):
    """Placeholder kinds used for style inheritance."""

    TITLE = "title"
    CENTER_TITLE = "ctrTitle"
    SUBTITLE = "subTitle"
    BODY = "body"
    OTHER = "other"


Alignment = Literal["left", "center", "right", "justify"]
VerticalAnchor = Literal["top", "middle", "bottom"]


# ============================================================================
# Geometry Models
# ============================================================================


class SlideSize(BaseModel):
    """Presentation-wide slide dimensions in EMUs."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(default=DEFAULT_SLIDE_WIDTH_EMU, gt=0, description="Slide width in EMUs")
    height: int = Field(default=DEFAULT_SLIDE_HEIGHT_EMU, gt=0, description="Slide height in EMUs")

    @property
    def aspect_ratio(self) -> float:
        """Slide aspect ratio."""
        return self.width / self.height

    def to_mm(self) -> dict[str, float]:
        """Convert dimensions to millimeters."""
        return {"width": emu_to_mm(self.width), "height": emu_to_mm(self.height)}


class Transform(BaseModel):
    """Axis-aligned bounding box in EMUs. Rotation is not modeled."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(default=0, description="Left position in EMUs")
    y: int = Field(default=0, description="Top position in EMUs")
    width: int = Field(default=0, ge=0, description="Width in EMUs")
    height: int = Field(default=0, ge=0, description="Height in EMUs")


class TextInsets(BaseModel):
    """Text body insets in EMUs."""

    model_config = ConfigDict(frozen=True)

    left: int = DEFAULT_INSET_LEFT_EMU
    right: int = DEFAULT_INSET_RIGHT_EMU
    top: int = DEFAULT_INSET_TOP_EMU
    bottom: int = DEFAULT_INSET_BOTTOM_EMU


# ============================================================================
# Media
# ============================================================================


class ImageData(BaseModel):
    """A decoded embedded image, shared by every shape that references it."""

    model_config = ConfigDict(frozen=True)

    data: str = Field(description="base64 data URL")
    format: Literal["PNG", "JPEG", "GIF"]
    width: Optional[int] = Field(default=None, description="Pixel width")
    height: Optional[int] = Field(default=None, description="Pixel height")
    target: Optional[str] = Field(default=None, description="Media part path in the package")

    @property
    def aspect_ratio(self) -> Optional[float]:
        """Pixel aspect ratio, when the size is known."""
        if self.width and self.height:
            return self.width / self.height
        return None

    def to_bytes(self) -> bytes:
        """Decode the data URL back to raw image bytes."""
        _, _, payload = self.data.partition(",")
        return base64.b64decode(payload)


# ============================================================================
# Text Models
# ============================================================================


class TextRun(BaseModel):
    """A run of text with consistent, fully resolved formatting."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="The text content")
    bold: bool = Field(default=False)
    italic: bool = Field(default=False)
    underline: bool = Field(default=False)
    font_size: float = Field(default=18.0, gt=0, description="Font size in points")
    color: str = Field(default="#000000", description="Text color")
    font_family: str = Field(default="Calibri", description="Font family name")


class TextParagraph(BaseModel):
    """An ordered sequence of styled runs."""

    model_config = ConfigDict(frozen=True)

    runs: list[TextRun] = Field(default_factory=list)
    alignment: Alignment = Field(default="left")
    bullet_char: Optional[str] = Field(default=None, description="Bullet character, if bulleted")
    bullet_level: int = Field(default=0, ge=0, le=8, description="Outline level (0-8)")
    is_numbered: bool = Field(default=False)
    numbering_scheme: Optional[str] = Field(default=None, description="a:buAutoNum type")
    numbering_start: int = Field(default=1, ge=1)

    @property
    def text(self) -> str:
        """Concatenated run text."""
        return "".join(run.text for run in self.runs)


# ============================================================================
# Shape Elements
# ============================================================================


class _ElementBase(BaseModel):
    """Fields shared by every element variant."""

    model_config = ConfigDict(frozen=True)

    transform: Transform
    z_index: int = Field(ge=0, description="Position in the shape-tree walk (0 = drawn first)")
    name: Optional[str] = Field(default=None, description="Shape name from cNvPr")
    placeholder_type: Optional[PlaceholderType] = None


class TextElement(_ElementBase):
    """A shape carrying text."""

    type: Literal["text"] = "text"
    paragraphs: list[TextParagraph] = Field(default_factory=list)
    vertical_anchor: VerticalAnchor = "top"
    insets: TextInsets = Field(default_factory=TextInsets)
    fill_color: Optional[str] = None
    stroke_color: Optional[str] = None
    stroke_width: Optional[int] = Field(default=None, ge=0, description="Stroke width in EMUs")


class ImageElement(_ElementBase):
    """A picture, or a shape filled with a picture."""

    type: Literal["image"] = "image"
    image_data: Optional[ImageData] = None
    image_ref: Optional[str] = Field(default=None, description="r:embed relationship id")
    image_target: Optional[str] = Field(default=None, description="Resolved media part path")
    paragraphs: list[TextParagraph] = Field(default_factory=list)


class GeometryElement(_ElementBase):
    """A generic shape, approximated by its bounding rectangle."""

    type: Literal["shape"] = "shape"
    geometry: str = Field(default="rect", description="Preset geometry name or 'custom'")
    fill_color: Optional[str] = None
    stroke_color: Optional[str] = None
    stroke_width: Optional[int] = Field(default=None, ge=0, description="Stroke width in EMUs")
    supported: bool = Field(default=True, description="False when kept only as an empty box")


ShapeElement = Annotated[
    Union[TextElement, ImageElement, GeometryElement],
    Field(discriminator="type"),
]


# ============================================================================
# Backgrounds
# ============================================================================


class GradientStop(BaseModel):
    """A gradient color stop."""

    model_config = ConfigDict(frozen=True)

    position: float = Field(ge=0.0, le=1.0, description="Position along gradient (0-1)")
    color: str = Field(description="RGB hex color")


class SolidBackground(BaseModel):
    """Solid color background."""

    model_config = ConfigDict(frozen=True)

    type: Literal["solid"] = "solid"
    color: str


class ImageBackground(BaseModel):
    """Picture background stretched over the slide."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    image_data: Optional[ImageData] = None
    image_ref: Optional[str] = None


class GradientBackground(BaseModel):
    """Gradient background."""

    model_config = ConfigDict(frozen=True)

    type: Literal["gradient"] = "gradient"
    stops: list[GradientStop] = Field(min_length=2)
    angle: float = Field(default=0.0, description="Linear gradient angle in degrees")


class NoBackground(BaseModel):
    """No background (page stays blank)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["none"] = "none"


SlideBackground = Annotated[
    Union[SolidBackground, ImageBackground, GradientBackground, NoBackground],
    Field(discriminator="type"),
]


# ============================================================================
# Slides & Presentation
# ============================================================================


class ParsedSlide(BaseModel):
    """One slide: background plus its elements in draw order."""

    model_config = ConfigDict(frozen=True)

    slide_number: int = Field(ge=1, description="1-based position in the package")
    background: SlideBackground = Field(default_factory=NoBackground)
    elements: list[ShapeElement] = Field(default_factory=list)
    layout_name: Optional[str] = None
    part_name: Optional[str] = None

    def sorted_elements(self) -> list:
        """Elements by ascending z_index (bottom of the stack first)."""
        return sorted(self.elements, key=lambda e: e.z_index)


class ParsedPresentation(BaseModel):
    """The complete parse result handed once to the renderer."""

    model_config = ConfigDict(frozen=True)

    slide_size: SlideSize = Field(default_factory=SlideSize)
    slides: list[ParsedSlide] = Field(default_factory=list)
    media_files: dict[str, ImageData] = Field(
        default_factory=dict,
        description="Decoded images keyed by media part path",
    )
    warnings: list[str] = Field(default_factory=list, description="Recoverable anomalies")


# ============================================================================
# Render Options
# ============================================================================


class RenderOptions(BaseModel):
    """Options for one render call."""

    model_config = ConfigDict(frozen=True)

    page_width: float = Field(default=A4_LONG_EDGE_MM, gt=0, description="Page width in mm")
    page_height: float = Field(default=A4_SHORT_EDGE_MM, gt=0, description="Page height in mm")
    mode: Literal["vector", "raster"] = "vector"
    raster_dpi: int = Field(default=150, ge=24, le=600, description="Bitmap resolution for raster mode")
    anchor: Literal["center", "top-left"] = Field(
        default="center",
        description="Letterbox anchor when slide and page aspect ratios differ",
    )
    draw_slide_numbers: bool = Field(default=False, description="Stamp the slide number in a page corner")

    @classmethod
    def fit_to_slide(cls, slide_size: SlideSize, **kwargs) -> "RenderOptions":
        """Build options whose page matches the slide aspect ratio within A4.

        Landscape slides get a page up to 297 x 210 mm, portrait slides up to
        210 x 297 mm.
        """
        ratio = slide_size.aspect_ratio
        if ratio > 1:
            page_width = A4_LONG_EDGE_MM
            page_height = page_width / ratio
            if page_height > A4_SHORT_EDGE_MM:
                page_height = A4_SHORT_EDGE_MM
                page_width = page_height * ratio
        else:
            page_height = A4_LONG_EDGE_MM
            page_width = page_height * ratio
            if page_width > A4_SHORT_EDGE_MM:
                page_width = A4_SHORT_EDGE_MM
                page_height = page_width / ratio
        return cls(page_width=page_width, page_height=page_height, **kwargs)


class ConversionResult(BaseModel):
    """Output of the parse-then-render pipeline."""

    model_config = ConfigDict(frozen=True)

    document: bytes
    page_count: int = Field(ge=0)
    warnings: list[str] = Field(default_factory=list)
