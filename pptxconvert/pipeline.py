"""Parse-then-render convenience pipeline."""

import logging
from pathlib import Path
from typing import BinaryIO, Optional, Union

from pptxconvert.config import ConverterSettings
from pptxconvert.dsl.schema import ConversionResult, RenderOptions
from pptxconvert.parser.pptx_reader import PPTXReader
from pptxconvert.renderer.pdf_writer import PDFWriter

logger = logging.getLogger(__name__)


def convert(
    source: Union[bytes, str, Path, BinaryIO],
    options: Optional[RenderOptions] = None,
    settings: Optional[ConverterSettings] = None,
) -> ConversionResult:
    """Convert a .pptx package to a PDF document.

    Args:
        source: Package bytes, path, or binary file object.
        options: Explicit render options. When omitted they are derived from
            ``settings``, or fitted to the slide aspect ratio.
        settings: Converter settings (workers, fonts, page defaults). The
            environment is only consulted if the caller passes settings
            obtained from it.

    Returns:
        ConversionResult with the PDF bytes, page count, and parse then
        render warnings.

    Raises:
        CorruptArchive: If the package is unreadable or has no slides.
    """
    workers = settings.parse_workers if settings is not None else 1
    presentation = PPTXReader(max_workers=workers).read(source)

    if options is None:
        if settings is not None:
            options = settings.render_options(presentation.slide_size)
        else:
            options = RenderOptions.fit_to_slide(presentation.slide_size)

    writer = PDFWriter(font_path=settings.font_path if settings is not None else None)
    document = writer.write(presentation, options)
    warnings = [*presentation.warnings, *writer.diagnostics.messages]

    logger.info(f"Converted {len(presentation.slides)} slides with {len(warnings)} warnings")
    return ConversionResult(
        document=document,
        page_count=len(presentation.slides),
        warnings=warnings,
    )
