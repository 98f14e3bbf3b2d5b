"""Extract the color scheme, font scheme and background styles of a theme part.

Parses <a:clrScheme>, <a:fontScheme> and <a:bgFillStyleLst> from
``ppt/theme/themeN.xml``.
"""

import colorsys
from dataclasses import dataclass, field
from typing import Any, Optional

from pptx.oxml.ns import namespaces

from pptxconvert.engine.units import FALLBACK_FONT_FAMILY


# XML namespaces for Office Open XML
NAMESPACES = namespaces("a", "p", "r")

# Scheme slots in document order
SCHEME_COLOR_NAMES = (
    "dk1",
    "lt1",
    "dk2",
    "lt2",
    "accent1",
    "accent2",
    "accent3",
    "accent4",
    "accent5",
    "accent6",
    "hlink",
    "folHlink",
)

# Common system color mappings, used when <a:sysClr> has no lastClr
SYSTEM_COLORS = {
    "windowText": "#000000",
    "window": "#FFFFFF",
    "highlight": "#0078D7",
    "highlightText": "#FFFFFF",
    "buttonFace": "#F0F0F0",
    "btnText": "#000000",
    "3dDkShadow": "#696969",
    "3dLight": "#E3E3E3",
    "infoText": "#000000",
    "infoBk": "#FFFFE1",
}


@dataclass(frozen=True)
class Theme:
    """Resolved theme data shared by every slide of a master."""

    colors: dict[str, str] = field(default_factory=dict)
    major_font: str = FALLBACK_FONT_FAMILY
    minor_font: str = FALLBACK_FONT_FAMILY
    fill_styles: tuple = ()
    line_styles: tuple = ()
    background_fills: tuple = ()
    name: Optional[str] = None

    def color(self, scheme_name: str) -> Optional[str]:
        """Look up a scheme slot (dk1, accent1, ...)."""
        return self.colors.get(scheme_name)

    def fill_style(self, idx: int) -> Optional[Any]:
        """Return the fill style a fillRef idx selects.

        Indices 1-999 address <a:fillStyleLst>; 1001 and above address
        <a:bgFillStyleLst>.
        """
        if idx >= 1001:
            return self.background_fill(idx)
        return _nth(self.fill_styles, idx - 1)

    def line_style(self, idx: int) -> Optional[Any]:
        """Return the <a:ln> of <a:lnStyleLst> a 1-based lnRef idx selects."""
        return _nth(self.line_styles, idx - 1)

    def background_fill(self, idx: int) -> Optional[Any]:
        """Return the <a:bgFillStyleLst> entry referenced by a bgRef idx.

        Background references use 1001-based indices into the list.
        """
        return _nth(self.background_fills, idx - 1001)


def _nth(styles: tuple, position: int) -> Optional[Any]:
    if 0 <= position < len(styles):
        return styles[position]
    return None


class ThemeParser:
    """Extracts theme data from a theme XML part."""

    def parse(self, theme_element: Any) -> Theme:
        """Extract the theme from its root element.

        Args:
            theme_element: Root <a:theme> element, or None.

        Returns:
            Theme with the color palette, fonts and background fill styles.
            An absent element yields an empty Theme.

        XML structure example:
            <a:clrScheme name="Office">
                <a:dk1><a:sysClr val="windowText" lastClr="000000"/></a:dk1>
                <a:lt1><a:sysClr val="window" lastClr="FFFFFF"/></a:lt1>
                <a:dk2><a:srgbClr val="1F497D"/></a:dk2>
                ...
            </a:clrScheme>
        """
        if theme_element is None:
            return Theme()

        return Theme(
            colors=self._extract_colors(theme_element),
            major_font=self._extract_font(theme_element, "a:majorFont") or FALLBACK_FONT_FAMILY,
            minor_font=self._extract_font(theme_element, "a:minorFont") or FALLBACK_FONT_FAMILY,
            fill_styles=self._extract_style_list(theme_element, "a:fillStyleLst"),
            line_styles=self._extract_style_list(theme_element, "a:lnStyleLst"),
            background_fills=self._extract_style_list(theme_element, "a:bgFillStyleLst"),
            name=theme_element.get("name"),
        )

    def _extract_colors(self, theme_element: Any) -> dict[str, str]:
        colors: dict[str, str] = {}

        clr_scheme = theme_element.find(".//a:clrScheme", NAMESPACES)
        if clr_scheme is None:
            return colors

        for xml_name in SCHEME_COLOR_NAMES:
            color_elem = clr_scheme.find(f"a:{xml_name}", NAMESPACES)
            if color_elem is not None:
                hex_color = self._extract_color_value(color_elem)
                if hex_color:
                    colors[xml_name] = hex_color

        return colors

    def _extract_font(self, theme_element: Any, font_path: str) -> Optional[str]:
        """Extract the latin typeface of the major or minor font."""
        latin = theme_element.find(f".//a:fontScheme/{font_path}/a:latin", NAMESPACES)
        if latin is None:
            return None
        return latin.get("typeface") or None

    def _extract_style_list(self, theme_element: Any, list_name: str) -> tuple:
        """Collect the entries of a <a:fmtScheme> style list in order."""
        style_list = theme_element.find(f".//a:fmtScheme/{list_name}", NAMESPACES)
        if style_list is None:
            return ()
        return tuple(child for child in style_list if isinstance(child.tag, str))

    def _extract_color_value(self, color_elem: Any) -> Optional[str]:
        """Extract hex color value from a theme color element.

        Color elements can contain different child elements:
        - <a:srgbClr val="RRGGBB"/>  - Direct RGB value
        - <a:sysClr val="windowText" lastClr="RRGGBB"/>  - System color
        - <a:hslClr hue sat lum/>  - HSL color

        Args:
            color_elem: The color element (e.g., <a:dk1>).

        Returns:
            Hex color string (e.g., "#000000") or None.
        """
        srgb = color_elem.find("a:srgbClr", NAMESPACES)
        if srgb is not None:
            val = srgb.get("val")
            if val:
                return f"#{val.upper()}"

        sys_clr = color_elem.find("a:sysClr", NAMESPACES)
        if sys_clr is not None:
            last_clr = sys_clr.get("lastClr")
            if last_clr:
                return f"#{last_clr.upper()}"
            return SYSTEM_COLORS.get(sys_clr.get("val"))

        hsl_clr = color_elem.find("a:hslClr", NAMESPACES)
        if hsl_clr is not None:
            return hsl_element_to_hex(hsl_clr)

        return None


def hsl_element_to_hex(hsl_elem: Any) -> Optional[str]:
    """Convert an <a:hslClr> element to hex.

    HSL values in OOXML are in special units:
    hue in 60,000ths of a degree, sat and lum in 1,000ths of a percent.
    """
    try:
        h = float(hsl_elem.get("hue", "0")) / 60000.0 / 360.0
        s = float(hsl_elem.get("sat", "0")) / 100000.0
        l = float(hsl_elem.get("lum", "0")) / 100000.0
    except (TypeError, ValueError):
        return None

    r, g, b = colorsys.hls_to_rgb(h % 1.0, min(l, 1.0), min(s, 1.0))
    return f"#{round(r * 255):02X}{round(g * 255):02X}{round(b * 255):02X}"
