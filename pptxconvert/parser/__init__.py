"""PPTX parser module - reads a .pptx package into the normalized slide model.

This module provides:
- Zip part access and OPC relationship resolution
- Theme colors, fonts and background styles from slide masters
- Effective text formatting over the slide → layout → master → theme cascade
- Shapes flattened out of groups into slide coordinates
- Embedded images decoded once per presentation
- A warning log of every recoverable anomaly
"""

from pptxconvert.parser.archive import PackageArchive
from pptxconvert.parser.diagnostics import Diagnostics
from pptxconvert.parser.media import MediaExtractor
from pptxconvert.parser.pptx_reader import PPTXReader, parse_presentation
from pptxconvert.parser.relationships import RelationshipResolver
from pptxconvert.parser.slide_parser import SlideParser
from pptxconvert.parser.style_extractor import StyleExtractor
from pptxconvert.parser.style_resolver import ColorResolver, TextStyleResolver, resolve_first
from pptxconvert.parser.theme_parser import Theme, ThemeParser
from pptxconvert.parser.transform_parser import TransformParser

__all__ = [
    "ColorResolver",
    "Diagnostics",
    "MediaExtractor",
    "PackageArchive",
    "PPTXReader",
    "RelationshipResolver",
    "SlideParser",
    "StyleExtractor",
    "TextStyleResolver",
    "Theme",
    "ThemeParser",
    "TransformParser",
    "parse_presentation",
    "resolve_first",
]
