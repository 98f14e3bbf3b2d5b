"""High-level PPTX reading and parsing."""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union

from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pptx.oxml.ns import namespaces, qn

from pptxconvert.dsl.schema import ParsedPresentation, ParsedSlide, SlideSize
from pptxconvert.errors import CorruptArchive, DecodeFailure, MissingPart, RecoverableError
from pptxconvert.parser.archive import PackageArchive
from pptxconvert.parser.diagnostics import Diagnostics
from pptxconvert.parser.media import MediaExtractor
from pptxconvert.parser.relationships import RelationshipResolver
from pptxconvert.parser.slide_parser import SHAPE_ERRORS, SlideParser
from pptxconvert.parser.style_resolver import MasterStyle, PlaceholderSource, SlideContext, read_color_map
from pptxconvert.parser.theme_parser import Theme, ThemeParser

logger = logging.getLogger(__name__)

# XML namespaces for Office Open XML
NAMESPACES = namespaces("a", "p", "r")

DEFAULT_PRESENTATION_PART = "ppt/presentation.xml"
SLIDE_PART_PATTERN = re.compile(r"^ppt/slides/slide(\d+)\.xml$")


class PPTXReader:
    """Reads PPTX packages into ParsedPresentation models."""

    def __init__(self, max_workers: int = 1) -> None:
        """Initialize the PPTX reader.

        Args:
            max_workers: Slides parsed concurrently. 1 parses sequentially.
        """
        self.theme_parser = ThemeParser()
        self.max_workers = max(1, max_workers)

    def read(self, source: Union[bytes, str, Path, BinaryIO]) -> ParsedPresentation:
        """Read a PPTX package and parse every slide.

        Args:
            source: Package bytes, path to a PPTX file, or file-like object.

        Returns:
            ParsedPresentation with slides in presentation order.

        Raises:
            CorruptArchive: If the package is unreadable or has no slides.
        """
        with PackageArchive(source) as archive:
            session = _PackageSession(archive, self.theme_parser)
            return session.parse(self.max_workers)

    def read_slide(self, source: Union[bytes, str, Path, BinaryIO], slide_number: int = 1) -> ParsedSlide:
        """Read a specific slide from a PPTX package.

        Args:
            source: Package bytes, path to a PPTX file, or file-like object.
            slide_number: 1-based slide number to extract.

        Returns:
            ParsedSlide for the specified slide.

        Raises:
            IndexError: If slide_number is out of range.
        """
        slides = self.read(source).slides
        if slide_number < 1 or slide_number > len(slides):
            raise IndexError(f"Slide {slide_number} not found. File has {len(slides)} slides.")
        return slides[slide_number - 1]


class _PackageSession:
    """Parse state for one package: caches, warnings and the slide parser."""

    def __init__(self, archive: PackageArchive, theme_parser: ThemeParser) -> None:
        self.archive = archive
        self.theme_parser = theme_parser
        self.diagnostics = Diagnostics()
        self.relationships = RelationshipResolver(archive, self.diagnostics)
        self.media = MediaExtractor(archive, self.diagnostics)
        self.slide_parser = SlideParser(self.relationships, self.media)
        self._layouts: dict[str, Optional[PlaceholderSource]] = {}
        self._masters: dict[str, Optional[MasterStyle]] = {}

    def parse(self, max_workers: int) -> ParsedPresentation:
        presentation_part = self._presentation_part()
        pres_root = self._read_xml(presentation_part, self.diagnostics)

        slide_size = self._slide_size(pres_root)
        slide_parts = self._slide_parts(presentation_part, pres_root)
        if not slide_parts:
            raise CorruptArchive("Package contains no slides")

        default_text_style = pres_root.find("p:defaultTextStyle", NAMESPACES) if pres_root is not None else None

        # Contexts share layout/master caches and are built in slide order
        prepared = [
            self._prepare_slide(number, part, default_text_style)
            for number, part in enumerate(slide_parts, start=1)
        ]

        if max_workers > 1 and len(prepared) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                slides = list(pool.map(self._parse_prepared, prepared))
        else:
            slides = [self._parse_prepared(job) for job in prepared]

        for _, _, slide_diagnostics in prepared:
            self.diagnostics.extend(slide_diagnostics)

        media_files = self.media.freeze()
        logger.info(
            f"Parsed {len(slides)} slides, {len(media_files)} images, {len(self.diagnostics)} warnings"
        )

        return ParsedPresentation(
            slide_size=slide_size,
            slides=slides,
            media_files=media_files,
            warnings=self.diagnostics.messages,
        )

    # ------------------------------------------------------------------
    # Presentation part
    # ------------------------------------------------------------------

    def _presentation_part(self) -> str:
        """Locate the main presentation part through the package relationships."""
        if self.archive.has_part("_rels/.rels"):
            target = self.relationships.first_of_type("", RT.OFFICE_DOCUMENT)
            if target:
                return target
        return DEFAULT_PRESENTATION_PART

    def _slide_size(self, pres_root: Any) -> SlideSize:
        sld_sz = pres_root.find("p:sldSz", NAMESPACES) if pres_root is not None else None
        if sld_sz is None:
            return SlideSize()
        try:
            return SlideSize(width=int(sld_sz.get("cx")), height=int(sld_sz.get("cy")))
        except (TypeError, ValueError):
            self.diagnostics.record(DecodeFailure, "Invalid <p:sldSz>; using the default 4:3 slide size")
            return SlideSize()

    def _slide_parts(self, presentation_part: str, pres_root: Any) -> list[str]:
        """Slide part names in presentation order.

        Follows <p:sldIdLst>; packages without a usable list fall back to
        ``ppt/slides/slideN.xml`` in numeric order.
        """
        parts: list[str] = []
        id_list = pres_root.find("p:sldIdLst", NAMESPACES) if pres_root is not None else None
        if id_list is not None:
            for sld_id in id_list.findall("p:sldId", NAMESPACES):
                rid = sld_id.get(qn("r:id"))
                target = self.relationships.resolve(presentation_part, rid) if rid else None
                if target is None:
                    self.diagnostics.record(
                        MissingPart, f"Slide id {sld_id.get('id')} ({rid}) does not resolve to a slide part"
                    )
                    continue
                parts.append(target)

        if parts:
            return parts

        numbered = []
        for name in self.archive.part_names:
            match = SLIDE_PART_PATTERN.match(name)
            if match:
                numbered.append((int(match.group(1)), name))
        return [name for _, name in sorted(numbered)]

    # ------------------------------------------------------------------
    # Slide contexts
    # ------------------------------------------------------------------

    def _prepare_slide(
        self,
        slide_number: int,
        part_name: str,
        default_text_style: Any,
    ) -> tuple[int, Optional[SlideContext], Diagnostics]:
        diagnostics = Diagnostics()
        try:
            context = self._slide_context(slide_number, part_name, default_text_style, diagnostics)
        except SHAPE_ERRORS as e:
            kind = type(e) if isinstance(e, RecoverableError) else MissingPart
            diagnostics.record(kind, f"Slide {slide_number} could not be read: {e}")
            context = None
        return slide_number, context, diagnostics

    def _parse_prepared(self, job: tuple[int, Optional[SlideContext], Diagnostics]) -> ParsedSlide:
        slide_number, context, diagnostics = job
        if context is None:
            return ParsedSlide(slide_number=slide_number)
        try:
            return self.slide_parser.parse(context)
        except SHAPE_ERRORS as e:
            kind = type(e) if isinstance(e, RecoverableError) else MissingPart
            diagnostics.record(kind, f"Slide {slide_number} could not be parsed: {e}")
            return ParsedSlide(slide_number=slide_number, part_name=context.part_name)

    def _slide_context(
        self,
        slide_number: int,
        part_name: str,
        default_text_style: Any,
        diagnostics: Diagnostics,
    ) -> SlideContext:
        root = self.archive.get_xml(part_name)
        if root is None:
            raise MissingPart(f"Slide part {part_name} is missing")

        layout = None
        layout_part = self.relationships.first_of_type(part_name, RT.SLIDE_LAYOUT, diagnostics)
        if layout_part is None:
            diagnostics.record(MissingPart, f"Slide {slide_number} has no slide layout; inherited formatting unavailable")
        else:
            layout = self._layout(layout_part, diagnostics)

        master = None
        if layout is not None:
            master_part = self.relationships.first_of_type(layout.part_name, RT.SLIDE_MASTER, diagnostics)
            if master_part is None:
                diagnostics.record(MissingPart, f"Layout {layout.part_name} has no slide master")
            else:
                master = self._master(master_part, diagnostics)

        color_map = read_color_map(
            master.source.root if master is not None else None,
            [layout.root if layout is not None else None, root],
        )

        return SlideContext(
            slide_number=slide_number,
            part_name=part_name,
            root=root,
            theme=master.theme if master is not None else Theme(),
            color_map=color_map,
            diagnostics=diagnostics,
            layout=layout,
            master=master,
            default_text_style=default_text_style,
        )

    def _layout(self, part_name: str, diagnostics: Diagnostics) -> Optional[PlaceholderSource]:
        if part_name not in self._layouts:
            root = self._read_xml(part_name, diagnostics)
            self._layouts[part_name] = PlaceholderSource.from_root(part_name, root) if root is not None else None
        return self._layouts[part_name]

    def _master(self, part_name: str, diagnostics: Diagnostics) -> Optional[MasterStyle]:
        if part_name in self._masters:
            return self._masters[part_name]

        master = None
        root = self._read_xml(part_name, diagnostics)
        if root is not None:
            theme_part = self.relationships.first_of_type(part_name, RT.THEME, diagnostics)
            theme_root = self._read_xml(theme_part, diagnostics) if theme_part else None
            if theme_root is None:
                diagnostics.record(
                    MissingPart, f"Master {part_name} has no readable theme; scheme colors cannot be resolved"
                )
            master = MasterStyle(
                source=PlaceholderSource.from_root(part_name, root),
                theme=self.theme_parser.parse(theme_root),
                theme_part=theme_part,
            )

        self._masters[part_name] = master
        return master

    def _read_xml(self, part_name: str, diagnostics: Diagnostics) -> Optional[Any]:
        """Parse an XML part, recording absence or malformed XML as a warning."""
        with diagnostics.capture():
            root = self.archive.get_xml(part_name)
            if root is None:
                raise MissingPart(f"Part {part_name} is missing from the package")
            return root
        return None


def parse_presentation(
    source: Union[bytes, str, Path, BinaryIO],
    max_workers: int = 1,
) -> ParsedPresentation:
    """Parse a PPTX package into the normalized slide model.

    Args:
        source: Package bytes, path, or binary file object.
        max_workers: Slides parsed concurrently.

    Returns:
        The ParsedPresentation.

    Raises:
        CorruptArchive: If the package is unreadable or contains no slides.
    """
    return PPTXReader(max_workers=max_workers).read(source)
