"""Resolve OPC relationships between package parts.

Every referencing part ``dir/name.xml`` may have a sibling
``dir/_rels/name.xml.rels`` listing ``<Relationship Id Type Target>`` entries.
Targets are relative to ``dir``; this module resolves them to absolute part
names so callers can walk slide → layout → master → theme chains and look up
``r:embed`` image references.
"""

import logging
import posixpath
import threading
from dataclasses import dataclass
from typing import Optional

from pptxconvert.errors import MissingPart, XmlParseError
from pptxconvert.parser.archive import PackageArchive, normalize_part_name
from pptxconvert.parser.diagnostics import Diagnostics

logger = logging.getLogger(__name__)

RELS_NAMESPACE = "http://schemas.openxmlformats.org/package/2006/relationships"
RELATIONSHIP_TAG = f"{{{RELS_NAMESPACE}}}Relationship"


@dataclass(frozen=True)
class Relationship:
    """A single resolved relationship."""

    id: str
    type: str
    target: str
    external: bool = False


def rels_path_for(part_name: str) -> str:
    """Return the relationships part name for a part.

    Example:
        ppt/slides/slide1.xml -> ppt/slides/_rels/slide1.xml.rels
    """
    part_name = normalize_part_name(part_name)
    directory, filename = posixpath.split(part_name)
    return posixpath.join(directory, "_rels", f"{filename}.rels")


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship target against the source part's directory.

    Absolute targets (leading slash) are package-rooted; relative ones are
    joined to the source directory and normalized.
    """
    if target.startswith("/"):
        return normalize_part_name(posixpath.normpath(target))
    base_dir = posixpath.dirname(normalize_part_name(source_part))
    return normalize_part_name(posixpath.normpath(posixpath.join(base_dir, target)))


class RelationshipResolver:
    """Parses and caches the relationship map of each part."""

    def __init__(self, archive: PackageArchive, diagnostics: Diagnostics) -> None:
        self.archive = archive
        self.diagnostics = diagnostics
        self._cache: dict[str, dict[str, Relationship]] = {}
        self._lock = threading.Lock()

    def relationships_for(
        self,
        part_name: str,
        diagnostics: Optional[Diagnostics] = None,
    ) -> dict[str, Relationship]:
        """Return the id → Relationship map for a part.

        A missing or unreadable relationships file yields an empty map and a
        warning; it is never fatal.

        Args:
            part_name: Source part name (e.g. ``ppt/slides/slide1.xml``).
            diagnostics: Log to record warnings in, defaults to the
                resolver's own.

        Returns:
            Mapping from relationship id to Relationship.
        """
        part_name = normalize_part_name(part_name)
        with self._lock:
            cached = self._cache.get(part_name)
        if cached is not None:
            return cached

        log = diagnostics if diagnostics is not None else self.diagnostics
        rels = self._load(part_name, log)
        with self._lock:
            return self._cache.setdefault(part_name, rels)

    def _load(self, part_name: str, log: Diagnostics) -> dict[str, Relationship]:
        rels_name = rels_path_for(part_name)
        try:
            root = self.archive.get_xml(rels_name)
        except XmlParseError as e:
            log.record_error(e)
            return {}

        if root is None:
            log.record(MissingPart, f"No relationships file for {part_name}; references from it cannot be resolved")
            return {}

        rels: dict[str, Relationship] = {}
        for rel in root.iter(RELATIONSHIP_TAG):
            rid = rel.get("Id")
            target = rel.get("Target")
            if not rid or not target:
                continue
            external = rel.get("TargetMode") == "External"
            rels[rid] = Relationship(
                id=rid,
                type=rel.get("Type", ""),
                target=target if external else resolve_target(part_name, target),
                external=external,
            )

        logger.debug(f"{part_name}: {len(rels)} relationships")
        return rels

    def resolve(
        self,
        part_name: str,
        rid: str,
        diagnostics: Optional[Diagnostics] = None,
    ) -> Optional[str]:
        """Resolve a relationship id of a part to the target part name."""
        rel = self.relationships_for(part_name, diagnostics).get(rid)
        if rel is None or rel.external:
            return None
        return rel.target

    def first_of_type(
        self,
        part_name: str,
        rel_type: str,
        diagnostics: Optional[Diagnostics] = None,
    ) -> Optional[str]:
        """Return the target of the first internal relationship of a type."""
        for rel in self.relationships_for(part_name, diagnostics).values():
            if rel.type == rel_type and not rel.external:
                return rel.target
        return None
