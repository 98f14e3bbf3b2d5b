"""Turn one slide's shape tree into a ParsedSlide.

Walks <p:spTree> depth-first in document order, flattening groups into slide
coordinates, and classifies every leaf shape as text, image or generic
geometry. Every leaf visited takes the next z-index, so sorting elements by
z-index reproduces the document's painting order.

Failures are contained per shape: a shape that cannot be read is skipped with
a warning and the walk continues with its siblings.
"""

import logging
from typing import Any, Optional

from lxml import etree
from pptx.oxml.ns import namespaces, qn

from pptxconvert.dsl.schema import (
    GeometryElement,
    GradientBackground,
    GradientStop,
    ImageBackground,
    ImageData,
    ImageElement,
    NoBackground,
    ParsedSlide,
    SolidBackground,
    TextElement,
    TextParagraph,
    TextRun,
    Transform,
)
from pptxconvert.errors import DecodeFailure, MissingPart, RecoverableError, UnsupportedFeature
from pptxconvert.parser.media import MediaExtractor
from pptxconvert.parser.relationships import RelationshipResolver
from pptxconvert.parser.style_extractor import Fill, StyleExtractor
from pptxconvert.parser.style_resolver import (
    PlaceholderKey,
    RunFormat,
    SlideContext,
    TextStyleResolver,
    local_name,
    placeholder_key,
)
from pptxconvert.parser.transform_parser import GroupFrame, TransformParser, to_slide_space

logger = logging.getLogger(__name__)

# XML namespaces for Office Open XML
NAMESPACES = namespaces("a", "p", "r")
MC_NAMESPACE = "http://schemas.openxmlformats.org/markup-compatibility/2006"

# Errors contained to the shape being read
SHAPE_ERRORS = (RecoverableError, ValueError, TypeError, KeyError, etree.LxmlError)

# Preset geometries drawn (approximately) by the renderer
SUPPORTED_GEOMETRIES = frozenset(
    {
        "rect",
        "roundRect",
        "snip1Rect",
        "snip2SameRect",
        "round1Rect",
        "round2SameRect",
        "ellipse",
        "triangle",
        "rtTriangle",
        "diamond",
        "parallelogram",
        "trapezoid",
        "pentagon",
        "hexagon",
        "octagon",
        "homePlate",
        "chevron",
        "plaque",
        "frame",
        "flowChartProcess",
        "flowChartAlternateProcess",
        "flowChartDecision",
        "flowChartTerminator",
        "rightArrow",
        "leftArrow",
        "upArrow",
        "downArrow",
        "line",
        "straightConnector1",
        "bentConnector2",
        "bentConnector3",
        "curvedConnector3",
        "textBox",
    }
)


class _SlideWalk:
    """Mutable state of one slide walk."""

    def __init__(self, context: SlideContext) -> None:
        self.context = context
        self.colors = context.colors()
        self.styles = StyleExtractor(self.colors, context.theme)
        self._next_z = 0

    @property
    def diagnostics(self):
        return self.context.diagnostics

    def next_z(self) -> int:
        z_index = self._next_z
        self._next_z += 1
        return z_index


class SlideParser:
    """Parses the shape tree and background of slides."""

    def __init__(self, relationships: RelationshipResolver, media: MediaExtractor) -> None:
        self.relationships = relationships
        self.media = media
        self.transform_parser = TransformParser()

    def parse(self, context: SlideContext) -> ParsedSlide:
        """Parse one slide.

        Args:
            context: The slide's XML with its resolved layout, master, theme
                and color map.

        Returns:
            ParsedSlide with the background and elements in document order.
        """
        walk = _SlideWalk(context)

        try:
            background = self.extract_background(walk)
        except SHAPE_ERRORS as e:
            self._record(walk, e, f"Background of slide {context.slide_number} ignored")
            background = NoBackground()

        elements: list = []
        tree = context.root.find("p:cSld/p:spTree", NAMESPACES)
        if tree is None:
            walk.diagnostics.record(MissingPart, f"Slide {context.slide_number} has no shape tree")
        else:
            self._walk(tree, (), walk, elements)

        layout_name = context.layout.name if context.layout is not None else None
        logger.debug(f"Slide {context.slide_number}: {len(elements)} elements")

        return ParsedSlide(
            slide_number=context.slide_number,
            background=background,
            elements=elements,
            layout_name=layout_name,
            part_name=context.part_name,
        )

    # ------------------------------------------------------------------
    # Shape tree
    # ------------------------------------------------------------------

    def _walk(self, container: Any, frames: tuple, walk: _SlideWalk, out: list) -> None:
        for child in container:
            if not isinstance(child.tag, str):
                continue

            if child.tag == f"{{{MC_NAMESPACE}}}AlternateContent":
                fallback = child.find(f"{{{MC_NAMESPACE}}}Fallback")
                if fallback is not None:
                    self._walk(fallback, frames, walk, out)
                continue

            tag = local_name(child)
            if tag == "grpSp":
                try:
                    frame = self.transform_parser.extract_group_frame(child)
                except SHAPE_ERRORS as e:
                    self._record(walk, e, f"Group {self._shape_name(child)!r} on slide {walk.context.slide_number} skipped")
                    continue
                self._walk(child, (*frames, frame), walk, out)

            elif tag in ("sp", "pic", "cxnSp", "graphicFrame", "contentPart"):
                z_index = walk.next_z()
                try:
                    element = self._parse_shape(tag, child, frames, z_index, walk)
                except SHAPE_ERRORS as e:
                    self._record(walk, e, f"Shape {self._shape_name(child)!r} on slide {walk.context.slide_number} skipped")
                    continue
                if element is not None:
                    out.append(element)

    def _parse_shape(
        self,
        tag: str,
        element: Any,
        frames: tuple[GroupFrame, ...],
        z_index: int,
        walk: _SlideWalk,
    ) -> Optional[Any]:
        context = walk.context
        name = self._shape_name(element)
        key = placeholder_key(element)

        transform = self._resolve_transform(element, key, frames, context)
        if transform is None:
            walk.diagnostics.record(
                MissingPart, f"Shape {name!r} on slide {context.slide_number} has no position; skipped"
            )
            return None

        rotation = self.transform_parser.extract_rotation(element)
        if rotation:
            walk.diagnostics.record(
                UnsupportedFeature,
                f"Shape {name!r} on slide {context.slide_number} is rotated {rotation:g} degrees; drawn unrotated",
            )

        base = {
            "transform": transform,
            "z_index": z_index,
            "name": name,
            "placeholder_type": key.category if key is not None else None,
        }

        if tag == "pic":
            return self._parse_picture(element, base, walk)

        if tag in ("graphicFrame", "contentPart"):
            walk.diagnostics.record(
                UnsupportedFeature,
                f"Shape {name!r} on slide {context.slide_number} is a table, chart or diagram; kept as an empty box",
            )
            return GeometryElement(geometry=tag, supported=False, **base)

        if tag == "cxnSp":
            return self._parse_connector(element, base, walk)

        return self._parse_sp(element, base, walk)

    def _resolve_transform(
        self,
        element: Any,
        key: Optional[PlaceholderKey],
        frames: tuple[GroupFrame, ...],
        context: SlideContext,
    ) -> Optional[Transform]:
        """Own transform, else the matching layout/master placeholder's."""
        transform = self.transform_parser.extract_transform(element)
        if transform is None and key is not None:
            for inherited in context.inherited_placeholders(key):
                if inherited is None:
                    continue
                transform = self.transform_parser.extract_transform(inherited)
                if transform is not None:
                    break
        if transform is None:
            return None
        return to_slide_space(transform, frames)

    def _parse_sp(self, element: Any, base: dict, walk: _SlideWalk) -> Optional[Any]:
        sp_pr = element.find("p:spPr", NAMESPACES)
        style_el = element.find("p:style", NAMESPACES)

        resolver = TextStyleResolver(walk.context, element, walk.colors)
        paragraphs = self._parse_text_body(element.find("p:txBody", NAMESPACES), resolver)

        fill = walk.styles.extract_shape_fill(sp_pr, style_el)
        if fill is not None and fill.kind == "picture":
            image_data, target = self._load_image(fill.embed, walk.context.part_name, walk)
            if image_data is not None:
                return ImageElement(
                    image_data=image_data,
                    image_ref=fill.embed,
                    image_target=target,
                    paragraphs=paragraphs,
                    **base,
                )
            fill = None

        fill_color = fill.primary_color if fill is not None else None
        stroke_color, stroke_width = walk.styles.extract_stroke(sp_pr, style_el)
        geometry, supported = self._geometry(sp_pr)

        if not supported:
            walk.diagnostics.record(
                UnsupportedFeature,
                f"Shape {base['name']!r} on slide {walk.context.slide_number} uses {geometry} geometry; "
                "kept as an empty box",
            )
            if not paragraphs:
                return GeometryElement(geometry=geometry, supported=False, **base)
            fill_color = stroke_color = None

        if paragraphs:
            return TextElement(
                paragraphs=paragraphs,
                vertical_anchor=resolver.vertical_anchor(),
                insets=resolver.insets(),
                fill_color=fill_color,
                stroke_color=stroke_color,
                stroke_width=stroke_width if stroke_color else None,
                **base,
            )

        if fill_color is None and stroke_color is None:
            return None

        return GeometryElement(
            geometry=geometry,
            fill_color=fill_color,
            stroke_color=stroke_color,
            stroke_width=stroke_width if stroke_color else None,
            **base,
        )

    def _parse_connector(self, element: Any, base: dict, walk: _SlideWalk) -> Optional[GeometryElement]:
        sp_pr = element.find("p:spPr", NAMESPACES)
        stroke_color, stroke_width = walk.styles.extract_stroke(sp_pr, element.find("p:style", NAMESPACES))
        if stroke_color is None:
            return None
        geometry, _ = self._geometry(sp_pr)
        return GeometryElement(
            geometry=geometry if geometry != "rect" else "line",
            stroke_color=stroke_color,
            stroke_width=stroke_width,
            **base,
        )

    def _parse_picture(self, element: Any, base: dict, walk: _SlideWalk) -> Optional[ImageElement]:
        blip = element.find("p:blipFill/a:blip", NAMESPACES)
        rid = blip.get(qn("r:embed")) if blip is not None else None
        if not rid:
            walk.diagnostics.record(
                MissingPart,
                f"Picture {base['name']!r} on slide {walk.context.slide_number} has no embedded image",
            )
            return None

        image_data, target = self._load_image(rid, walk.context.part_name, walk)
        if image_data is None:
            return None
        return ImageElement(image_data=image_data, image_ref=rid, image_target=target, **base)

    def _load_image(self, rid: str, part_name: str, walk: _SlideWalk) -> tuple[Optional[ImageData], Optional[str]]:
        """Resolve an r:embed id of a part to decoded image data."""
        target = self.relationships.resolve(part_name, rid, walk.diagnostics)
        if target is None:
            walk.diagnostics.record(
                MissingPart,
                f"Image reference {rid} in {part_name} does not resolve to a package part",
            )
            return None, None
        return self.media.get(target, walk.diagnostics), target

    @staticmethod
    def _geometry(sp_pr: Any) -> tuple[str, bool]:
        """Preset geometry name and whether the renderer can draw it."""
        if sp_pr is None:
            return "rect", True
        if sp_pr.find("a:custGeom", NAMESPACES) is not None:
            return "custom", False
        prst_geom = sp_pr.find("a:prstGeom", NAMESPACES)
        if prst_geom is None:
            return "rect", True
        prst = prst_geom.get("prst", "rect")
        return prst, prst in SUPPORTED_GEOMETRIES

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def _parse_text_body(self, tx_body: Any, resolver: TextStyleResolver) -> list[TextParagraph]:
        """Extract formatted paragraphs, dropping those with no visible text."""
        if tx_body is None:
            return []

        paragraphs: list[TextParagraph] = []
        for p in tx_body.findall("a:p", NAMESPACES):
            ppr = p.find("a:pPr", NAMESPACES)
            level = min(int(ppr.get("lvl", "0")), 8) if ppr is not None else 0

            runs: list[TextRun] = []
            for child in p:
                if not isinstance(child.tag, str):
                    continue
                tag = local_name(child)
                if tag in ("r", "fld"):
                    t = child.find("a:t", NAMESPACES)
                    text = t.text if t is not None and t.text else ""
                    if text:
                        runs.append(_text_run(text, resolver.run_format(child.find("a:rPr", NAMESPACES), level)))
                elif tag == "br":
                    runs.append(_text_run("\n", resolver.run_format(child.find("a:rPr", NAMESPACES), level)))

            if not any(run.text.strip() for run in runs):
                continue

            fmt = resolver.paragraph_format(ppr, level)
            bullet = fmt.bullet or ()
            paragraphs.append(
                TextParagraph(
                    runs=runs,
                    alignment=fmt.alignment,
                    bullet_char=bullet[1] if bullet[:1] == ("char",) else None,
                    bullet_level=level,
                    is_numbered=bullet[:1] == ("number",),
                    numbering_scheme=bullet[1] if bullet[:1] == ("number",) else None,
                    numbering_start=max(bullet[2], 1) if bullet[:1] == ("number",) else 1,
                )
            )

        return paragraphs

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    def extract_background(self, walk: _SlideWalk) -> Any:
        """Resolve the background: slide, then layout, then master.

        Theme-referenced backgrounds (<p:bgRef>) resolve through the theme's
        background fill styles. Slides with no background anywhere in the
        chain get NoBackground.
        """
        context = walk.context
        sources = [(context.root, context.part_name)]
        if context.layout is not None:
            sources.append((context.layout.root, context.layout.part_name))
        if context.master is not None:
            sources.append((context.master.source.root, context.master.source.part_name))

        for root, part_name in sources:
            bg = root.find("p:cSld/p:bg", NAMESPACES)
            if bg is None:
                continue
            fill = walk.styles.extract_background(bg)
            if fill is None:
                continue
            return self._background_from_fill(fill, part_name, walk)

        return NoBackground()

    def _background_from_fill(self, fill: Fill, part_name: str, walk: _SlideWalk) -> Any:
        if fill.kind == "solid" and fill.color:
            return SolidBackground(color=fill.color)
        if fill.kind == "gradient":
            return GradientBackground(
                stops=[GradientStop(position=pos, color=color) for pos, color in fill.stops],
                angle=fill.angle,
            )
        if fill.kind == "picture":
            image_data, _ = self._load_image(fill.embed, part_name, walk)
            if image_data is not None:
                return ImageBackground(image_data=image_data, image_ref=fill.embed)
        return NoBackground()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _shape_name(element: Any) -> Optional[str]:
        c_nv_pr = element.find("./*/p:cNvPr", NAMESPACES)
        return c_nv_pr.get("name") if c_nv_pr is not None else None

    @staticmethod
    def _record(walk: _SlideWalk, error: Exception, message: str) -> None:
        kind = type(error) if isinstance(error, RecoverableError) else DecodeFailure
        walk.diagnostics.record(kind, f"{message}: {error}")


def _text_run(text: str, fmt: RunFormat) -> TextRun:
    return TextRun(
        text=text,
        bold=fmt.bold,
        italic=fmt.italic,
        underline=fmt.underline,
        font_size=fmt.size,
        color=fmt.color,
        font_family=fmt.font,
    )
