"""Converter configuration and logging setup."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pptxconvert.dsl.schema import RenderOptions, SlideSize
from pptxconvert.engine.units import A4_LONG_EDGE_MM, A4_SHORT_EDGE_MM


class ConverterSettings(BaseSettings):
    """Converter settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PPTXCONVERT_",
        extra="ignore",
    )

    # Page settings (None fits the page to the slide aspect ratio within A4)
    default_page_width_mm: Optional[float] = Field(default=None, gt=0)
    default_page_height_mm: Optional[float] = Field(default=None, gt=0)
    letterbox_anchor: Literal["center", "top-left"] = "center"

    # Render settings
    render_mode: Literal["vector", "raster"] = "vector"
    raster_dpi: int = Field(default=150, ge=24, le=600)
    draw_slide_numbers: bool = False
    font_path: Optional[Path] = None  # TrueType font used for all text

    # Parse settings
    parse_workers: int = Field(default=1, ge=1)

    log_level: str = "INFO"

    def render_options(self, slide_size: SlideSize) -> RenderOptions:
        """Build render options for a presentation with the given slide size."""
        shared = {
            "mode": self.render_mode,
            "raster_dpi": self.raster_dpi,
            "anchor": self.letterbox_anchor,
            "draw_slide_numbers": self.draw_slide_numbers,
        }
        if self.default_page_width_mm is None and self.default_page_height_mm is None:
            return RenderOptions.fit_to_slide(slide_size, **shared)
        return RenderOptions(
            page_width=self.default_page_width_mm or A4_LONG_EDGE_MM,
            page_height=self.default_page_height_mm or A4_SHORT_EDGE_MM,
            **shared,
        )


@lru_cache()
def get_settings() -> ConverterSettings:
    """Get cached converter settings instance."""
    return ConverterSettings()


def configure_logging(settings: Optional[ConverterSettings] = None) -> None:
    """Configure root logging for host applications and scripts."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
