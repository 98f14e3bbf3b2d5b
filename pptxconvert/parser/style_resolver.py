"""Effective formatting over the theme → master → layout → slide cascade.

Inheritance is modeled as data, not as an object hierarchy: each source of
formatting (a run's <a:rPr>, a list-style level, a placeholder's body
properties, ...) is read into a flat dict of properties, and
``resolve_first`` returns the first defined value over an ordered list of
such layers. Layers are ordered from most specific (the slide) to least
specific (presentation defaults); the hard fallback comes last.

Colors are kept as raw color elements inside layers and resolved only once a
layer wins, so an overridden scheme reference never produces a warning.
"""

import colorsys
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from lxml import etree
from PIL import ImageColor
from pptx.oxml.ns import namespaces, qn

from pptxconvert.dsl.schema import PlaceholderType, TextInsets
from pptxconvert.engine.units import (
    DEFAULT_BULLET_CHAR,
    DEFAULT_INSET_BOTTOM_EMU,
    DEFAULT_INSET_LEFT_EMU,
    DEFAULT_INSET_RIGHT_EMU,
    DEFAULT_INSET_TOP_EMU,
    FALLBACK_FONT_SIZE_PT,
    FALLBACK_TEXT_COLOR,
    clamp,
    hex_to_rgb,
    rgb_to_hex,
)
from pptxconvert.errors import UnsupportedFeature
from pptxconvert.parser.diagnostics import Diagnostics
from pptxconvert.parser.theme_parser import SYSTEM_COLORS, Theme, hsl_element_to_hex


# XML namespaces for Office Open XML
NAMESPACES = namespaces("a", "p", "r")

# Master <p:clrMap> used when a master carries none
DEFAULT_COLOR_MAP = {
    "bg1": "lt1",
    "tx1": "dk1",
    "bg2": "lt2",
    "tx2": "dk2",
    "accent1": "accent1",
    "accent2": "accent2",
    "accent3": "accent3",
    "accent4": "accent4",
    "accent5": "accent5",
    "accent6": "accent6",
    "hlink": "hlink",
    "folHlink": "folHlink",
}

COLOR_CHOICE_TAGS = {
    qn("a:srgbClr"),
    qn("a:schemeClr"),
    qn("a:sysClr"),
    qn("a:prstClr"),
    qn("a:scrgbClr"),
    qn("a:hslClr"),
}

ALIGNMENT_MAP = {
    "l": "left",
    "ctr": "center",
    "r": "right",
    "just": "justify",
    "justLow": "justify",
    "dist": "justify",
    "thaiDist": "justify",
}

ANCHOR_MAP = {
    "t": "top",
    "ctr": "middle",
    "b": "bottom",
    "just": "middle",
    "dist": "middle",
}

# <a:fontRef idx> to the theme font reference it selects
FONT_REF_TYPEFACES = {"major": "+mj-lt", "minor": "+mn-lt"}

# Position in the list-style sources of the first style not owned by the
# shape or its placeholders
INHERITED_STYLE_INDEX = 3

# Placeholder types tried on the parent part when the exact type is absent
PLACEHOLDER_TYPE_FALLBACKS = {
    "ctrTitle": ("title",),
    "subTitle": ("body",),
    "obj": ("body",),
}


# ============================================================================
# Cascade primitives
# ============================================================================


def resolve_first(layers: Iterable[Optional[Mapping[str, Any]]], key: str) -> Any:
    """Return the first defined value of ``key`` over ordered override layers.

    Args:
        layers: Property layers, most specific first. None entries are skipped.
        key: Property name.

    Returns:
        The first non-None value, or None if no layer defines it.
    """
    for layer in layers:
        if not layer:
            continue
        value = layer.get(key)
        if value is not None:
            return value
    return None


def parse_bool(value: Optional[str]) -> Optional[bool]:
    """Parse an xsd:boolean attribute, keeping absence as None."""
    if value is None:
        return None
    return value in ("1", "true", "on")


def local_name(element: Any) -> str:
    """Local part of an element's tag."""
    return etree.QName(element).localname


def paragraph_layer(ppr: Any) -> dict[str, Any]:
    """Read paragraph-level properties from <a:pPr> or <a:lvlNpPr>."""
    if ppr is None:
        return {}

    layer: dict[str, Any] = {}
    algn = ppr.get("algn")
    if algn:
        layer["alignment"] = ALIGNMENT_MAP.get(algn, "left")

    if ppr.find("a:buNone", NAMESPACES) is not None:
        layer["bullet"] = ("none",)
    else:
        auto_num = ppr.find("a:buAutoNum", NAMESPACES)
        bu_char = ppr.find("a:buChar", NAMESPACES)
        if auto_num is not None:
            layer["bullet"] = (
                "number",
                auto_num.get("type", "arabicPeriod"),
                int(auto_num.get("startAt", "1")),
            )
        elif bu_char is not None:
            layer["bullet"] = ("char", bu_char.get("char") or DEFAULT_BULLET_CHAR)

    return layer


def run_layer(rpr: Any) -> dict[str, Any]:
    """Read character properties from <a:rPr> or <a:defRPr>."""
    if rpr is None:
        return {}

    layer: dict[str, Any] = {}
    sz = rpr.get("sz")
    if sz:
        layer["size"] = int(sz) / 100.0
    bold = parse_bool(rpr.get("b"))
    if bold is not None:
        layer["bold"] = bold
    italic = parse_bool(rpr.get("i"))
    if italic is not None:
        layer["italic"] = italic
    underline = rpr.get("u")
    if underline is not None:
        layer["underline"] = underline != "none"

    solid = rpr.find("a:solidFill", NAMESPACES)
    if solid is not None:
        color_elem = find_color_element(solid)
        if color_elem is not None:
            layer["color"] = color_elem

    latin = rpr.find("a:latin", NAMESPACES)
    if latin is not None and latin.get("typeface"):
        layer["font"] = latin.get("typeface")

    return layer


def font_ref_layer(font_ref: Any) -> dict[str, Any]:
    """Read the text color and theme font of a shape style's <a:fontRef>."""
    if font_ref is None:
        return {}

    layer: dict[str, Any] = {}
    color_elem = find_color_element(font_ref)
    if color_elem is not None:
        layer["color"] = color_elem
    idx = font_ref.get("idx")
    if idx in FONT_REF_TYPEFACES:
        layer["font"] = FONT_REF_TYPEFACES[idx]
    return layer


def body_layer(body_pr: Any) -> dict[str, Any]:
    """Read text-frame properties from <a:bodyPr>."""
    if body_pr is None:
        return {}

    layer: dict[str, Any] = {}
    anchor = body_pr.get("anchor")
    if anchor:
        layer["anchor"] = ANCHOR_MAP.get(anchor, "top")
    for attr in ("lIns", "rIns", "tIns", "bIns"):
        value = body_pr.get(attr)
        if value is not None:
            layer[attr] = int(value)
    return layer


def find_color_element(parent: Any) -> Optional[Any]:
    """Return the first color-choice child (srgbClr, schemeClr, ...)."""
    if parent is None:
        return None
    for child in parent:
        if child.tag in COLOR_CHOICE_TAGS:
            return child
    return None


# ============================================================================
# Colors
# ============================================================================


def read_color_map(master_root: Any, overrides: Iterable[Any] = ()) -> dict[str, str]:
    """Build the effective color map of a slide.

    Starts from the master's <p:clrMap>, then applies each part's
    <p:clrMapOvr><a:overrideClrMapping> in order (layout, then slide).
    """
    color_map = dict(DEFAULT_COLOR_MAP)
    if master_root is not None:
        clr_map = master_root.find("p:clrMap", NAMESPACES)
        if clr_map is not None:
            color_map.update(clr_map.attrib)

    for root in overrides:
        if root is None:
            continue
        override = root.find("p:clrMapOvr/a:overrideClrMapping", NAMESPACES)
        if override is not None:
            color_map.update(override.attrib)

    return color_map


def apply_color_modifiers(hex_color: str, color_elem: Any) -> str:
    """Apply lumMod/lumOff/tint/shade/satMod children of a color element."""
    r, g, b = (c / 255.0 for c in hex_to_rgb(hex_color))
    modified = False

    for mod in color_elem:
        if not isinstance(mod.tag, str):
            continue
        name = local_name(mod)
        try:
            val = int(mod.get("val", "100000")) / 100000.0
        except ValueError:
            continue

        if name == "tint":
            r, g, b = (c + (1.0 - c) * (1.0 - val) for c in (r, g, b))
        elif name == "shade":
            r, g, b = (c * val for c in (r, g, b))
        elif name in ("lumMod", "lumOff", "satMod"):
            h, l, s = colorsys.rgb_to_hls(r, g, b)
            if name == "lumMod":
                l = l * val
            elif name == "lumOff":
                l = l + val
            else:
                s = s * val
            r, g, b = colorsys.hls_to_rgb(h, clamp(l, 0.0, 1.0), clamp(s, 0.0, 1.0))
        else:
            continue
        modified = True

    if not modified:
        return hex_color
    return rgb_to_hex(*(int(round(clamp(c, 0.0, 1.0) * 255)) for c in (r, g, b)))


def preset_color_to_hex(name: str) -> Optional[str]:
    """Map an <a:prstClr> name (e.g. 'dkBlue', 'ltGray') to hex."""
    css_name = name
    for prefix, replacement in (("dk", "dark"), ("lt", "light"), ("med", "medium")):
        if css_name.startswith(prefix) and not css_name.startswith(replacement):
            css_name = replacement + css_name[len(prefix):]
            break
    try:
        return rgb_to_hex(*ImageColor.getrgb(css_name.lower())[:3])
    except ValueError:
        return None


class ColorResolver:
    """Resolves DrawingML color choices against a theme and color map."""

    def __init__(
        self,
        theme: Theme,
        color_map: Mapping[str, str],
        diagnostics: Diagnostics,
        fallback: str = FALLBACK_TEXT_COLOR,
    ) -> None:
        self.theme = theme
        self.color_map = color_map
        self.diagnostics = diagnostics
        self.fallback = fallback

    def solid_fill_color(self, parent: Any, placeholder_color: Optional[str] = None) -> Optional[str]:
        """Color of a <a:solidFill> child of ``parent``, if any."""
        if parent is None:
            return None
        solid = parent.find("a:solidFill", NAMESPACES)
        if solid is None:
            return None
        color_elem = find_color_element(solid)
        if color_elem is None:
            return None
        return self.resolve(color_elem, placeholder_color)

    def resolve(self, color_elem: Any, placeholder_color: Optional[str] = None) -> str:
        """Resolve a color-choice element to '#RRGGBB'.

        Args:
            color_elem: <a:srgbClr>, <a:schemeClr>, <a:sysClr>, <a:prstClr>,
                <a:scrgbClr> or <a:hslClr>.
            placeholder_color: Value substituted for ``phClr`` (theme style
                matrix entries).

        Returns:
            Hex color. Unresolvable references fall back to black and are
            recorded once per distinct reference.
        """
        name = local_name(color_elem)
        val = color_elem.get("val")
        base: Optional[str] = None

        if name == "srgbClr" and val:
            base = f"#{val.upper()}"
        elif name == "schemeClr":
            base = self._scheme_color(val, placeholder_color)
            if base is None:
                return self.fallback
        elif name == "sysClr":
            last_clr = color_elem.get("lastClr")
            base = f"#{last_clr.upper()}" if last_clr else SYSTEM_COLORS.get(val)
        elif name == "prstClr" and val:
            base = preset_color_to_hex(val)
        elif name == "scrgbClr":
            base = self._scrgb_to_hex(color_elem)
        elif name == "hslClr":
            base = hsl_element_to_hex(color_elem)

        if base is None:
            self.diagnostics.record(
                UnsupportedFeature,
                f"Unrecognized color <{name} val={val!r}>; using {self.fallback}",
            )
            return self.fallback

        return apply_color_modifiers(base, color_elem)

    def _scheme_color(self, val: Optional[str], placeholder_color: Optional[str]) -> Optional[str]:
        if val == "phClr" and placeholder_color:
            return placeholder_color

        slot = self.color_map.get(val, val) if val else None
        color = self.theme.color(slot) if slot else None
        if color is None:
            self.diagnostics.record(
                UnsupportedFeature,
                f"Unresolved scheme color {val!r}; using {self.fallback}",
            )
        return color

    @staticmethod
    def _scrgb_to_hex(color_elem: Any) -> Optional[str]:
        try:
            channels = [int(color_elem.get(c, "0")) / 100000.0 for c in ("r", "g", "b")]
        except ValueError:
            return None
        return rgb_to_hex(*(int(round(clamp(c, 0.0, 1.0) * 255)) for c in channels))


# ============================================================================
# Placeholders
# ============================================================================


@dataclass(frozen=True)
class PlaceholderKey:
    """Identity of a placeholder: its raw type and optional index."""

    raw_type: str
    idx: Optional[str] = None

    @property
    def category(self) -> PlaceholderType:
        """Coarse placeholder type used for style selection."""
        if self.raw_type == "title":
            return PlaceholderType.TITLE
        if self.raw_type == "ctrTitle":
            return PlaceholderType.CENTER_TITLE
        if self.raw_type == "subTitle":
            return PlaceholderType.SUBTITLE
        if self.raw_type in ("body", "obj"):
            return PlaceholderType.BODY
        return PlaceholderType.OTHER

    @property
    def is_title(self) -> bool:
        return self.category in (PlaceholderType.TITLE, PlaceholderType.CENTER_TITLE)


def placeholder_key(shape_el: Any) -> Optional[PlaceholderKey]:
    """Read <p:ph> from a shape's non-visual properties."""
    ph = shape_el.find("./*/p:nvPr/p:ph", NAMESPACES)
    if ph is None:
        return None
    return PlaceholderKey(raw_type=ph.get("type", "obj"), idx=ph.get("idx"))


@dataclass
class PlaceholderSource:
    """The placeholder shapes of a layout or master part."""

    part_name: str
    root: Any
    placeholders: list = field(default_factory=list)
    name: Optional[str] = None

    @classmethod
    def from_root(cls, part_name: str, root: Any) -> "PlaceholderSource":
        placeholders = []
        tree = root.find("p:cSld/p:spTree", NAMESPACES)
        if tree is not None:
            for shape_el in tree.iter(qn("p:sp"), qn("p:pic"), qn("p:graphicFrame")):
                key = placeholder_key(shape_el)
                if key is not None:
                    placeholders.append((key, shape_el))
        csld = root.find("p:cSld", NAMESPACES)
        return cls(
            part_name=part_name,
            root=root,
            placeholders=placeholders,
            name=csld.get("name") if csld is not None else None,
        )

    def match(self, key: PlaceholderKey) -> Optional[Any]:
        """Find the placeholder a shape with ``key`` inherits from.

        Tries, in order: same index (when types agree or either side is a
        generic content placeholder), same type, then the type fallbacks
        (ctrTitle → title, subTitle/obj → body).
        """
        if key.idx is not None:
            for candidate, shape_el in self.placeholders:
                if candidate.idx != key.idx:
                    continue
                if candidate.raw_type == key.raw_type or "obj" in (candidate.raw_type, key.raw_type):
                    return shape_el

        for candidate, shape_el in self.placeholders:
            if candidate.raw_type == key.raw_type:
                return shape_el

        for fallback_type in PLACEHOLDER_TYPE_FALLBACKS.get(key.raw_type, ()):
            for candidate, shape_el in self.placeholders:
                if candidate.raw_type == fallback_type:
                    return shape_el

        return None


# ============================================================================
# Slide context
# ============================================================================


@dataclass
class MasterStyle:
    """Everything a master contributes to its slides."""

    source: PlaceholderSource
    theme: Theme
    theme_part: Optional[str] = None

    def text_style(self, key: Optional[PlaceholderKey]) -> Optional[Any]:
        """The <p:txStyles> entry for a placeholder category."""
        if key is None:
            return None
        if key.is_title:
            tag = "p:titleStyle"
        elif key.category in (PlaceholderType.BODY, PlaceholderType.SUBTITLE):
            tag = "p:bodyStyle"
        else:
            tag = "p:otherStyle"
        return self.source.root.find(f"p:txStyles/{tag}", NAMESPACES)


@dataclass
class SlideContext:
    """Resolved layout/master/theme context for one slide."""

    slide_number: int
    part_name: str
    root: Any
    theme: Theme
    color_map: dict
    diagnostics: Diagnostics
    layout: Optional[PlaceholderSource] = None
    master: Optional[MasterStyle] = None
    default_text_style: Optional[Any] = None

    def colors(self) -> ColorResolver:
        """A color resolver bound to this slide's theme and color map."""
        return ColorResolver(self.theme, self.color_map, self.diagnostics)

    def inherited_placeholders(self, key: Optional[PlaceholderKey]) -> tuple[Optional[Any], Optional[Any]]:
        """Return the (layout, master) placeholder shapes a slide shape inherits from.

        The master placeholder is matched through the layout placeholder's own
        key when one was found, so idx-only slide placeholders still reach the
        master body.
        """
        if key is None:
            return None, None

        layout_el = self.layout.match(key) if self.layout is not None else None
        master_el = None
        if self.master is not None:
            master_key = placeholder_key(layout_el) if layout_el is not None else None
            master_el = self.master.source.match(master_key or key)
        return layout_el, master_el


# ============================================================================
# Text formatting
# ============================================================================


@dataclass(frozen=True)
class ParagraphFormat:
    """Resolved paragraph formatting."""

    alignment: str = "left"
    bullet: Optional[tuple] = None


@dataclass(frozen=True)
class RunFormat:
    """Resolved character formatting."""

    bold: bool = False
    italic: bool = False
    underline: bool = False
    size: float = FALLBACK_FONT_SIZE_PT
    color: str = FALLBACK_TEXT_COLOR
    font: str = ""


class TextStyleResolver:
    """Resolves the effective formatting of one shape's text.

    List-style sources, most specific first:
    the shape's own <a:lstStyle>, the matching layout placeholder, the
    matching master placeholder, the master <p:txStyles> entry for the
    placeholder category, and the presentation <p:defaultTextStyle>.
    Shapes that are not placeholders skip the layout and master entries.
    The shape style's <a:fontRef> sits between the placeholder list styles
    and the master text styles.
    """

    def __init__(self, context: SlideContext, shape_el: Any, colors: Optional[ColorResolver] = None) -> None:
        self.context = context
        self.colors = colors or context.colors()
        self.key = placeholder_key(shape_el)
        layout_el, master_el = context.inherited_placeholders(self.key)

        own_body = shape_el.find("p:txBody", NAMESPACES)
        self.list_styles = [
            self._list_style(shape_el),
            self._list_style(layout_el),
            self._list_style(master_el),
            context.master.text_style(self.key) if context.master is not None else None,
            context.default_text_style,
        ]
        self.font_ref = font_ref_layer(shape_el.find("p:style/a:fontRef", NAMESPACES))
        self.body_layers = [
            body_layer(own_body.find("a:bodyPr", NAMESPACES) if own_body is not None else None),
            body_layer(self._body_pr(layout_el)),
            body_layer(self._body_pr(master_el)),
        ]
        self.font_scale = self._font_scale(own_body)
        self._level_cache: dict[int, tuple[list, list]] = {}

    @staticmethod
    def _list_style(shape_el: Any) -> Optional[Any]:
        if shape_el is None:
            return None
        return shape_el.find("p:txBody/a:lstStyle", NAMESPACES)

    @staticmethod
    def _body_pr(shape_el: Any) -> Optional[Any]:
        if shape_el is None:
            return None
        return shape_el.find("p:txBody/a:bodyPr", NAMESPACES)

    @staticmethod
    def _font_scale(tx_body: Any) -> float:
        if tx_body is None:
            return 1.0
        autofit = tx_body.find("a:bodyPr/a:normAutofit", NAMESPACES)
        if autofit is None or autofit.get("fontScale") is None:
            return 1.0
        return int(autofit.get("fontScale")) / 100000.0

    def _level_layers(self, level: int) -> tuple[list, list]:
        """Paragraph and run layers contributed by list styles at a level."""
        cached = self._level_cache.get(level)
        if cached is not None:
            return cached

        paragraph_layers: list = []
        run_layers: list = []
        for index, lst_style in enumerate(self.list_styles):
            if index == INHERITED_STYLE_INDEX:
                run_layers.append(self.font_ref)
            if lst_style is None:
                continue
            lvl = lst_style.find(f"a:lvl{level + 1}pPr", NAMESPACES)
            if lvl is None:
                continue
            paragraph_layers.append(paragraph_layer(lvl))
            run_layers.append(run_layer(lvl.find("a:defRPr", NAMESPACES)))

        self._level_cache[level] = (paragraph_layers, run_layers)
        return paragraph_layers, run_layers

    def paragraph_format(self, ppr: Any, level: int) -> ParagraphFormat:
        """Resolve alignment and bullet of a paragraph."""
        paragraph_layers, _ = self._level_layers(level)
        layers = [paragraph_layer(ppr), *paragraph_layers]
        bullet = resolve_first(layers, "bullet")
        return ParagraphFormat(
            alignment=resolve_first(layers, "alignment") or "left",
            bullet=None if bullet == ("none",) else bullet,
        )

    def run_format(self, rpr: Any, level: int) -> RunFormat:
        """Resolve the character formatting of a run."""
        _, run_layers = self._level_layers(level)
        layers = [run_layer(rpr), *run_layers]

        color_elem = resolve_first(layers, "color")
        color = self.colors.resolve(color_elem) if color_elem is not None else FALLBACK_TEXT_COLOR
        size = resolve_first(layers, "size") or FALLBACK_FONT_SIZE_PT

        return RunFormat(
            bold=bool(resolve_first(layers, "bold")),
            italic=bool(resolve_first(layers, "italic")),
            underline=bool(resolve_first(layers, "underline")),
            size=round(size * self.font_scale, 2),
            color=color,
            font=self._theme_font(resolve_first(layers, "font")),
        )

    def _theme_font(self, typeface: Optional[str]) -> str:
        theme = self.context.theme
        if typeface is None:
            return theme.major_font if self.key is not None and self.key.is_title else theme.minor_font
        if typeface.startswith("+mj"):
            return theme.major_font
        if typeface.startswith("+mn"):
            return theme.minor_font
        return typeface

    def vertical_anchor(self) -> str:
        """Resolve the text anchor (top/middle/bottom)."""
        return resolve_first(self.body_layers, "anchor") or "top"

    def insets(self) -> TextInsets:
        """Resolve body insets."""
        layers = self.body_layers
        return TextInsets(
            left=_first_int(layers, "lIns", DEFAULT_INSET_LEFT_EMU),
            right=_first_int(layers, "rIns", DEFAULT_INSET_RIGHT_EMU),
            top=_first_int(layers, "tIns", DEFAULT_INSET_TOP_EMU),
            bottom=_first_int(layers, "bIns", DEFAULT_INSET_BOTTOM_EMU),
        )


def _first_int(layers: list, key: str, default: int) -> int:
    value = resolve_first(layers, key)
    return default if value is None else value
