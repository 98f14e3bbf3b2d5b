"""Map slide EMU geometry onto an output page.

The slide is scaled uniformly to fit the page (letterboxing when aspect ratios
differ) and positioned either centered or in the top-left corner. All page
coordinates are millimeters measured from the page's top-left corner.
"""

from dataclasses import dataclass

from pptxconvert.dsl.schema import SlideSize, Transform
from pptxconvert.engine.units import MM_PER_INCH, POINTS_PER_INCH, emu_to_mm


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle in page millimeters, origin top-left."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def inset(self, left: float, top: float, right: float, bottom: float) -> "Box":
        """Shrink the box by the given margins, never below zero size."""
        return Box(
            x=self.x + left,
            y=self.y + top,
            width=max(self.width - left - right, 0.0),
            height=max(self.height - top - bottom, 0.0),
        )

    def fit(self, aspect_ratio: float) -> "Box":
        """Largest box of the given aspect ratio centered inside this one."""
        if aspect_ratio <= 0 or self.width <= 0 or self.height <= 0:
            return self
        if self.width / self.height > aspect_ratio:
            width = self.height * aspect_ratio
            return Box(self.x + (self.width - width) / 2, self.y, width, self.height)
        height = self.width / aspect_ratio
        return Box(self.x, self.y + (self.height - height) / 2, self.width, height)


class PageGeometry:
    """Uniform slide-to-page mapping for one page size."""

    def __init__(
        self,
        slide_size: SlideSize,
        page_width_mm: float,
        page_height_mm: float,
        anchor: str = "center",
    ) -> None:
        """Compute the scale and letterbox offsets.

        Args:
            slide_size: Slide dimensions in EMU.
            page_width_mm: Page width.
            page_height_mm: Page height.
            anchor: "center" splits the letterbox margin evenly,
                "top-left" pins the slide to the page origin.
        """
        self.slide_size = slide_size
        self.page_width = page_width_mm
        self.page_height = page_height_mm
        self.anchor = anchor

        slide_width_mm = emu_to_mm(slide_size.width)
        slide_height_mm = emu_to_mm(slide_size.height)
        self.scale = min(page_width_mm / slide_width_mm, page_height_mm / slide_height_mm)

        self.content_width = slide_width_mm * self.scale
        self.content_height = slide_height_mm * self.scale
        if anchor == "center":
            self.offset_x = (page_width_mm - self.content_width) / 2
            self.offset_y = (page_height_mm - self.content_height) / 2
        else:
            self.offset_x = 0.0
            self.offset_y = 0.0

    @property
    def content_box(self) -> Box:
        """Area of the page covered by the slide."""
        return Box(self.offset_x, self.offset_y, self.content_width, self.content_height)

    def length(self, emu: int) -> float:
        """Scale an EMU distance to page millimeters."""
        return emu_to_mm(emu) * self.scale

    def place(self, transform: Transform) -> Box:
        """Map a slide-space transform to its page box."""
        return Box(
            x=self.offset_x + self.length(transform.x),
            y=self.offset_y + self.length(transform.y),
            width=self.length(transform.width),
            height=self.length(transform.height),
        )

    def font_size(self, points: float) -> float:
        """Scale a font size so text keeps its size relative to the slide."""
        return points * self.scale


def points_to_mm(points: float) -> float:
    """Convert typographic points to millimeters."""
    return points * MM_PER_INCH / POINTS_PER_INCH
