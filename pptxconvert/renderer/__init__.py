"""Renderer module - draws parsed presentations as PDF pages or bitmaps.

Renders ParsedPresentation models including:
- Slide-to-page fitting with centered or top-left letterboxing
- Solid, gradient and picture backgrounds
- Generic shapes approximated by their bounding boxes
- Images fitted to their frames
- Wrapped, aligned text with bullets and numbering
- A vector PDF mode (reportlab) and a raster mode (Pillow)
"""

from pptxconvert.renderer.geometry import Box, PageGeometry
from pptxconvert.renderer.pdf_writer import PDFWriter, render_presentation
from pptxconvert.renderer.raster_renderer import RasterRenderer, render_images
from pptxconvert.renderer.text_layout import TextLayout

__all__ = [
    "Box",
    "PageGeometry",
    "PDFWriter",
    "RasterRenderer",
    "TextLayout",
    "render_images",
    "render_presentation",
]
