"""Decode embedded images once per presentation.

Images are keyed by their media part path, so two shapes on different slides
that point at the same ``ppt/media/imageN.png`` share one decoded ImageData.
Formats are sniffed from magic bytes; vector formats (EMF, WMF, SVG) are
reported as unsupported and skipped.
"""

import base64
import io
import logging
import threading
from typing import Optional

from PIL import Image, UnidentifiedImageError

from pptxconvert.dsl.schema import ImageData
from pptxconvert.errors import DecodeFailure, MissingPart, RecoverableError, UnsupportedFeature
from pptxconvert.parser.archive import PackageArchive, normalize_part_name
from pptxconvert.parser.diagnostics import Diagnostics

logger = logging.getLogger(__name__)

# Magic byte prefixes of the raster formats the renderer can embed
IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "PNG"),
    (b"\xff\xd8\xff", "JPEG"),
    (b"GIF87a", "GIF"),
    (b"GIF89a", "GIF"),
)

MIME_TYPES = {"PNG": "image/png", "JPEG": "image/jpeg", "GIF": "image/gif"}


def sniff_image_format(data: bytes) -> Optional[str]:
    """Identify PNG, JPEG or GIF bytes by their signature."""
    for signature, image_format in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return image_format
    return None


class MediaExtractor:
    """Per-presentation cache of decoded images.

    The cache is write-once per target: concurrent callers racing on the same
    image keep whichever decode landed first. Failed targets are remembered
    so a broken image is reported once, however many shapes use it.
    """

    def __init__(self, archive: PackageArchive, diagnostics: Diagnostics) -> None:
        self.archive = archive
        self.diagnostics = diagnostics
        self._cache: dict[str, ImageData] = {}
        self._failed: set[str] = set()
        self._frozen = False
        self._lock = threading.Lock()

    def get(self, target: str, diagnostics: Optional[Diagnostics] = None) -> Optional[ImageData]:
        """Return the decoded image for a media part.

        Args:
            target: Media part path, as resolved from a relationship.
            diagnostics: Log to record failures in, defaults to the
                extractor's own.

        Returns:
            ImageData, or None when the image is missing, undecodable or in
            an unsupported format.

        Raises:
            RuntimeError: If called for an uncached target after freeze().
        """
        target = normalize_part_name(target)
        with self._lock:
            cached = self._cache.get(target)
            if cached is not None:
                return cached
            if target in self._failed:
                return None
            if self._frozen:
                raise RuntimeError("Media cache is frozen; parsing has finished")

        log = diagnostics if diagnostics is not None else self.diagnostics
        try:
            image = self._decode(target)
        except RecoverableError as e:
            with self._lock:
                self._failed.add(target)
            log.record_error(e)
            return None

        with self._lock:
            return self._cache.setdefault(target, image)

    def _decode(self, target: str) -> ImageData:
        data = self.archive.get_part(target)
        if data is None:
            raise MissingPart(f"Image part {target} is missing from the package")

        image_format = sniff_image_format(data)
        if image_format is None:
            raise UnsupportedFeature(f"Image {target} is not PNG, JPEG or GIF; omitted")

        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                width, height = img.size
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
            raise DecodeFailure(f"Image {target} could not be decoded", cause=e) from e

        encoded = base64.b64encode(data).decode("ascii")
        logger.debug(f"Decoded {target}: {image_format} {width}x{height}")
        return ImageData(
            data=f"data:{MIME_TYPES[image_format]};base64,{encoded}",
            format=image_format,
            width=width,
            height=height,
            target=target,
        )

    def freeze(self) -> dict[str, ImageData]:
        """Stop accepting new entries and return the cache snapshot."""
        with self._lock:
            self._frozen = True
            return dict(self._cache)

    def __len__(self) -> int:
        return len(self._cache)
