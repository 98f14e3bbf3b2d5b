"""Zip container access for .pptx packages.

Exposes named parts as raw bytes or parsed XML. Nothing is extracted to disk:
the archive is read from the in-memory bytes handed in by the caller.
"""

import io
import logging
import threading
import zipfile
import zlib
from pathlib import Path
from typing import BinaryIO, Optional, Union

from lxml import etree

from pptxconvert.errors import CorruptArchive, DecodeFailure, XmlParseError

logger = logging.getLogger(__name__)

# OLE2 compound document signature (PowerPoint 97-2003 .ppt)
OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_PARSER_LOCAL = threading.local()


def _xml_parser() -> etree.XMLParser:
    """Per-thread parser; lxml parser objects must not be shared across threads."""
    parser = getattr(_PARSER_LOCAL, "parser", None)
    if parser is None:
        parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)
        _PARSER_LOCAL.parser = parser
    return parser


def normalize_part_name(path: str) -> str:
    """Normalize a part name to the zip member form (no leading slash)."""
    return path.lstrip("/").replace("\\", "/")


class PackageArchive:
    """Read-only view over the parts of an OPC package."""

    def __init__(self, source: Union[bytes, str, Path, BinaryIO]) -> None:
        """Open the package.

        Args:
            source: Package bytes, a path, or a binary file object.

        Raises:
            CorruptArchive: If the zip central directory cannot be read.
        """
        data = self._read_source(source)
        if not data:
            raise CorruptArchive("Empty input: no package bytes to read")
        if data.startswith(OLE_SIGNATURE):
            raise CorruptArchive(
                "Legacy PowerPoint 97-2003 (.ppt) files are not supported; save the file as .pptx"
            )

        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
            raise CorruptArchive("Package is not a readable zip archive", cause=e) from e

        self._names = {
            info.filename: info for info in self._zip.infolist() if not info.is_dir()
        }
        logger.debug(f"Opened package with {len(self._names)} parts")

    @classmethod
    def from_bytes(cls, data: bytes) -> "PackageArchive":
        """Open a package from raw bytes."""
        return cls(data)

    @staticmethod
    def _read_source(source: Union[bytes, str, Path, BinaryIO]) -> bytes:
        if isinstance(source, (bytes, bytearray, memoryview)):
            return bytes(source)
        if isinstance(source, (str, Path)):
            try:
                return Path(source).read_bytes()
            except OSError as e:
                raise CorruptArchive(f"Cannot read package file {source}", cause=e) from e
        return source.read()

    @property
    def part_names(self) -> list[str]:
        """All part names in archive order."""
        return list(self._names)

    def has_part(self, path: str) -> bool:
        """Check whether a part exists."""
        return normalize_part_name(path) in self._names

    def get_part(self, path: str) -> Optional[bytes]:
        """Return the raw bytes of a part, or None if it is absent.

        Raises:
            DecodeFailure: If the member exists but its compressed data is
                unreadable.
        """
        name = normalize_part_name(path)
        if name not in self._names:
            return None
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, zlib.error) as e:
            raise DecodeFailure(f"Part {name} is corrupt", cause=e) from e

    def get_xml(self, path: str) -> Optional[etree._Element]:
        """Return the parsed root element of an XML part, or None if absent.

        Raises:
            XmlParseError: If the part is present but not well-formed.
        """
        data = self.get_part(path)
        if data is None:
            return None
        try:
            return etree.fromstring(data, _xml_parser())
        except etree.XMLSyntaxError as e:
            raise XmlParseError(f"Part {normalize_part_name(path)} is not well-formed XML", cause=e) from e

    def close(self) -> None:
        """Release the underlying zip handle."""
        self._zip.close()

    def __enter__(self) -> "PackageArchive":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

