"""Extract position and size from shape XML.

Parses <a:xfrm> (or <p:xfrm> on graphic frames) into a Transform in EMU and
maps children of group shapes from the group's child coordinate space into
slide space.

Rotation is stored in 60,000ths of a degree in PPTX and converted to degrees.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from pptx.oxml.ns import namespaces

from pptxconvert.dsl.schema import Transform


# XML namespaces for Office Open XML
NAMESPACES = namespaces("a", "p")


@dataclass(frozen=True)
class GroupFrame:
    """Coordinate mapping established by a <p:grpSp>.

    Children are positioned in the group's child space (chOff/chExt); the
    group itself occupies off/ext in its parent's space.
    """

    off_x: int = 0
    off_y: int = 0
    ext_cx: int = 0
    ext_cy: int = 0
    ch_off_x: int = 0
    ch_off_y: int = 0
    ch_ext_cx: int = 0
    ch_ext_cy: int = 0

    @property
    def scale_x(self) -> float:
        return self.ext_cx / self.ch_ext_cx if self.ch_ext_cx else 1.0

    @property
    def scale_y(self) -> float:
        return self.ext_cy / self.ch_ext_cy if self.ch_ext_cy else 1.0

    def apply(self, transform: Transform) -> Transform:
        """Map a child transform into the group's parent space."""
        return Transform(
            x=round(self.off_x + (transform.x - self.ch_off_x) * self.scale_x),
            y=round(self.off_y + (transform.y - self.ch_off_y) * self.scale_y),
            width=round(transform.width * self.scale_x),
            height=round(transform.height * self.scale_y),
        )


class TransformParser:
    """Extracts transformation properties from PPTX shape XML."""

    def find_xfrm_element(self, element: Any) -> Optional[Any]:
        """Find the transform element of a shape.

        The xfrm element can be in different locations depending on the shape type:
        - <p:sp><p:spPr><a:xfrm> for normal shapes, pictures and connectors
        - <p:grpSp><p:grpSpPr><a:xfrm> for groups
        - <p:graphicFrame><p:xfrm> for tables and charts

        Args:
            element: The shape's XML element.

        Returns:
            The xfrm element or None if not found.
        """
        search_paths = [
            "p:spPr/a:xfrm",
            "p:grpSpPr/a:xfrm",
            "p:xfrm",
        ]

        for path in search_paths:
            xfrm = element.find(path, NAMESPACES)
            if xfrm is not None:
                return xfrm

        return None

    def extract_transform(self, element: Any) -> Optional[Transform]:
        """Extract the bounding box of a shape in its parent's space.

        Args:
            element: The shape's XML element.

        Returns:
            Transform in EMU, or None when the shape has no complete
            <a:off>/<a:ext> pair (placeholders inheriting their position).

        XML structure example:
            <a:xfrm rot="5400000" flipH="1">
                <a:off x="914400" y="914400"/>
                <a:ext cx="2743200" cy="914400"/>
            </a:xfrm>
        """
        xfrm = self.find_xfrm_element(element)
        if xfrm is None:
            return None

        off = xfrm.find("a:off", NAMESPACES)
        ext = xfrm.find("a:ext", NAMESPACES)
        if off is None or ext is None:
            return None

        return Transform(
            x=int(off.get("x", "0")),
            y=int(off.get("y", "0")),
            width=max(int(ext.get("cx", "0")), 0),
            height=max(int(ext.get("cy", "0")), 0),
        )

    def extract_rotation(self, element: Any) -> float:
        """Rotation of a shape in degrees, normalized to 0-360."""
        xfrm = self.find_xfrm_element(element)
        if xfrm is None:
            return 0.0
        rot_attr = xfrm.get("rot")
        if not rot_attr:
            return 0.0
        return normalize_rotation(int(rot_attr) / 60000.0)

    def extract_group_frame(self, group_el: Any) -> GroupFrame:
        """Read the child coordinate mapping of a <p:grpSp>.

        Groups have <a:chOff> and <a:chExt> for child coordinate space. A
        group without them maps its children one to one.
        """
        xfrm = group_el.find("p:grpSpPr/a:xfrm", NAMESPACES)
        if xfrm is None:
            return GroupFrame()

        def _pair(tag: str, first: str, second: str) -> tuple[int, int]:
            node = xfrm.find(tag, NAMESPACES)
            if node is None:
                return 0, 0
            return int(node.get(first, "0")), int(node.get(second, "0"))

        off_x, off_y = _pair("a:off", "x", "y")
        ext_cx, ext_cy = _pair("a:ext", "cx", "cy")
        ch_off_x, ch_off_y = _pair("a:chOff", "x", "y")
        ch_ext_cx, ch_ext_cy = _pair("a:chExt", "cx", "cy")

        if xfrm.find("a:chOff", NAMESPACES) is None:
            ch_off_x, ch_off_y = off_x, off_y
        if xfrm.find("a:chExt", NAMESPACES) is None:
            ch_ext_cx, ch_ext_cy = ext_cx, ext_cy

        return GroupFrame(
            off_x=off_x,
            off_y=off_y,
            ext_cx=ext_cx,
            ext_cy=ext_cy,
            ch_off_x=ch_off_x,
            ch_off_y=ch_off_y,
            ch_ext_cx=ch_ext_cx,
            ch_ext_cy=ch_ext_cy,
        )


def to_slide_space(transform: Transform, frames: Iterable[GroupFrame]) -> Transform:
    """Map a transform through nested groups, outermost frame first in ``frames``."""
    for frame in reversed(list(frames)):
        transform = frame.apply(transform)
    return transform


def normalize_rotation(degrees: float) -> float:
    """Normalize rotation to 0-360 range.

    Args:
        degrees: Rotation in degrees (may be negative or >360).

    Returns:
        Normalized rotation in 0-360 range.
    """
    normalized = degrees % 360.0
    if normalized < 0:
        normalized += 360.0
    return normalized
