"""Extract fills, strokes and backgrounds from DrawingML properties.

Works directly on <p:spPr>, <p:style> and <p:bg> elements and resolves every
color through a slide's ColorResolver.
"""

from dataclasses import dataclass
from typing import Any, Optional

from pptx.oxml.ns import namespaces, qn

from pptxconvert.engine.units import DEFAULT_STROKE_WIDTH_EMU
from pptxconvert.parser.style_resolver import ColorResolver, find_color_element, local_name
from pptxconvert.parser.theme_parser import Theme


# XML namespaces for Office Open XML
NAMESPACES = namespaces("a", "p", "r")

FILL_TAGS = {
    qn("a:noFill"),
    qn("a:solidFill"),
    qn("a:gradFill"),
    qn("a:blipFill"),
    qn("a:pattFill"),
    qn("a:grpFill"),
}


@dataclass(frozen=True)
class Fill:
    """A resolved fill.

    ``kind`` is one of "solid", "gradient", "picture" or "none". Picture fills
    carry the relationship id of their image in ``embed``.
    """

    kind: str
    color: Optional[str] = None
    stops: tuple = ()
    angle: float = 0.0
    embed: Optional[str] = None

    @property
    def primary_color(self) -> Optional[str]:
        """A single color standing in for this fill."""
        if self.kind == "solid":
            return self.color
        if self.kind == "gradient" and self.stops:
            return self.stops[0][1]
        return None


NO_FILL = Fill(kind="none")


class StyleExtractor:
    """Extracts visual styles from shape and background XML."""

    def __init__(self, colors: ColorResolver, theme: Optional[Theme] = None) -> None:
        self.colors = colors
        self.theme = theme or colors.theme

    # ------------------------------------------------------------------
    # Fills
    # ------------------------------------------------------------------

    def find_fill_element(self, parent: Any) -> Optional[Any]:
        """Return the fill-choice child of a properties element."""
        if parent is None:
            return None
        for child in parent:
            if child.tag in FILL_TAGS:
                return child
        return None

    def extract_fill(self, fill_el: Any, placeholder_color: Optional[str] = None) -> Optional[Fill]:
        """Convert a fill-choice element into a Fill.

        Args:
            fill_el: <a:solidFill>, <a:gradFill>, <a:blipFill>, <a:pattFill>,
                <a:noFill> or <a:grpFill>.
            placeholder_color: Color substituted for ``phClr`` in theme styles.

        Returns:
            The Fill, or None for group fills (inherit from the group).
        """
        if fill_el is None:
            return None

        kind = local_name(fill_el)
        if kind == "noFill":
            return NO_FILL

        if kind == "solidFill":
            color_elem = find_color_element(fill_el)
            if color_elem is None:
                return NO_FILL
            return Fill(kind="solid", color=self.colors.resolve(color_elem, placeholder_color))

        if kind == "gradFill":
            return self._extract_gradient_fill(fill_el, placeholder_color)

        if kind == "blipFill":
            blip = fill_el.find("a:blip", NAMESPACES)
            embed = blip.get(qn("r:embed")) if blip is not None else None
            return Fill(kind="picture", embed=embed) if embed else NO_FILL

        if kind == "pattFill":
            # Patterns are drawn with their foreground color
            fg = find_color_element(fill_el.find("a:fgClr", NAMESPACES))
            if fg is None:
                return NO_FILL
            return Fill(kind="solid", color=self.colors.resolve(fg, placeholder_color))

        return None

    def _extract_gradient_fill(self, grad_fill: Any, placeholder_color: Optional[str]) -> Fill:
        stops = []
        for gs in grad_fill.findall("a:gsLst/a:gs", NAMESPACES):
            color_elem = find_color_element(gs)
            if color_elem is None:
                continue
            position = int(gs.get("pos", "0")) / 100000.0
            stops.append((min(max(position, 0.0), 1.0), self.colors.resolve(color_elem, placeholder_color)))
        stops.sort(key=lambda stop: stop[0])

        angle = 0.0
        lin = grad_fill.find("a:lin", NAMESPACES)
        if lin is not None:
            angle = int(lin.get("ang", "0")) / 60000.0

        if len(stops) == 1:
            return Fill(kind="solid", color=stops[0][1])
        if not stops:
            return NO_FILL
        return Fill(kind="gradient", stops=tuple(stops), angle=angle)

    def extract_shape_fill(self, sp_pr: Any, style_el: Any = None) -> Optional[Fill]:
        """Resolve a shape's fill from <p:spPr>, then its <p:style> fillRef.

        Returns:
            The Fill, or None when the shape specifies nothing.
        """
        fill = self.extract_fill(self.find_fill_element(sp_pr))
        if fill is not None:
            return fill

        fill_ref = style_el.find("a:fillRef", NAMESPACES) if style_el is not None else None
        if fill_ref is None:
            return None
        idx = int(fill_ref.get("idx", "0"))
        if idx == 0:
            return None
        return self._style_matrix_fill(idx, self._ref_color(fill_ref))

    def _ref_color(self, ref: Any) -> Optional[str]:
        """Resolve the color a style-matrix reference substitutes for phClr."""
        color_elem = find_color_element(ref)
        return self.colors.resolve(color_elem) if color_elem is not None else None

    def _style_matrix_fill(self, idx: int, ref_color: Optional[str]) -> Optional[Fill]:
        """Resolve a theme fill style, falling back to the reference color."""
        theme_fill = self.theme.fill_style(idx)
        if theme_fill is not None:
            fill = self.extract_fill(theme_fill, placeholder_color=ref_color)
            if fill is not None:
                return fill
        return Fill(kind="solid", color=ref_color) if ref_color else None

    # ------------------------------------------------------------------
    # Strokes
    # ------------------------------------------------------------------

    def extract_stroke(self, sp_pr: Any, style_el: Any = None) -> tuple[Optional[str], int]:
        """Resolve a shape's outline color and width.

        Args:
            sp_pr: The shape's <p:spPr>.
            style_el: The shape's <p:style>, consulted when <a:ln> has no fill.

        Returns:
            Tuple of (hex color or None for no outline, width in EMU).
        """
        ln = sp_pr.find("a:ln", NAMESPACES) if sp_pr is not None else None
        width = int(ln.get("w")) if ln is not None and ln.get("w") else None

        if ln is not None:
            fill = self.extract_fill(self.find_fill_element(ln))
            if fill is not None:
                return fill.primary_color, width or DEFAULT_STROKE_WIDTH_EMU

        ln_ref = style_el.find("a:lnRef", NAMESPACES) if style_el is not None else None
        idx = int(ln_ref.get("idx", "0")) if ln_ref is not None else 0
        if idx == 0:
            return None, width or DEFAULT_STROKE_WIDTH_EMU

        ref_color = self._ref_color(ln_ref)
        theme_line = self.theme.line_style(idx)
        if theme_line is not None:
            if width is None and theme_line.get("w"):
                width = int(theme_line.get("w"))
            fill = self.extract_fill(self.find_fill_element(theme_line), placeholder_color=ref_color)
            if fill is not None:
                return fill.primary_color, width or DEFAULT_STROKE_WIDTH_EMU
        return ref_color, width or DEFAULT_STROKE_WIDTH_EMU

    # ------------------------------------------------------------------
    # Backgrounds
    # ------------------------------------------------------------------

    def extract_background(self, bg: Any) -> Optional[Fill]:
        """Resolve a <p:bg> element.

        Handles both explicit <p:bgPr> fills and <p:bgRef> references into
        the theme's background fill styles.

        Returns:
            The Fill, or None if the element defines no background.
        """
        if bg is None:
            return None

        bg_pr = bg.find("p:bgPr", NAMESPACES)
        if bg_pr is not None:
            return self.extract_fill(self.find_fill_element(bg_pr))

        bg_ref = bg.find("p:bgRef", NAMESPACES)
        if bg_ref is None:
            return None

        idx = int(bg_ref.get("idx", "0"))
        if idx == 0:
            return NO_FILL
        return self._style_matrix_fill(idx, self._ref_color(bg_ref))
