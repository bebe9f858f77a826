# src/stackreview/config.py
"""
Configuration structs for the stack review core.

Each struct is frozen and validated once at construction, then passed by
reference to the component that needs it. Defaults reproduce the fixed
constants of the review workflow (quality 0.95, brightness/contrast 50-150%,
zoom 50-200%, playback interval 100-2000 ms).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import ConfigError


IMAGE_SUFFIXES: Tuple[str, ...] = ('.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.webp')


def _check_range(name: str, value: Tuple[int, int]) -> None:
    low, high = value
    if low > high:
        raise ConfigError(f"{name} must satisfy low <= high, got {value}")


def clamp(value: float, bounds: Tuple[int, int]) -> float:
    """Clamp value into the inclusive [low, high] bounds."""
    low, high = bounds
    return max(low, min(high, value))


# ═══════════════════════════════════════════════════════════════════════════════
# EXTRACTION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ExtractorConfig:
    """Configuration for archive extraction."""

    # Recognized image suffixes (compared case-insensitively)
    image_suffixes: Tuple[str, ...] = IMAGE_SUFFIXES

    # Entries read between cooperative yields to the event loop
    yield_every: int = 8

    # Optional wall-clock limit; None means extraction is never aborted
    timeout_seconds: Optional[float] = None

    def __post_init__(self):
        if not self.image_suffixes:
            raise ConfigError("image_suffixes must not be empty")
        object.__setattr__(
            self, 'image_suffixes', tuple(s.lower() for s in self.image_suffixes)
        )
        if self.yield_every < 1:
            raise ConfigError(f"yield_every must be >= 1, got {self.yield_every}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ConfigError(
                f"timeout_seconds must be positive when set, got {self.timeout_seconds}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# EDITING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EditorConfig:
    """Configuration for a raster edit session."""
    brightness_range: Tuple[int, int] = (50, 150)
    contrast_range: Tuple[int, int] = (50, 150)
    zoom_range: Tuple[int, int] = (50, 200)

    # Quality factor for lossy encodings (JPEG, WebP)
    export_quality: float = 0.95

    # Initial crop side as a fraction of min(width, height)
    initial_crop_fraction: float = 0.8

    # Height/width ratio of the initial crop when aspect lock is off
    unlocked_crop_aspect: float = 0.75

    def __post_init__(self):
        _check_range('brightness_range', self.brightness_range)
        _check_range('contrast_range', self.contrast_range)
        _check_range('zoom_range', self.zoom_range)
        for name in ('brightness_range', 'contrast_range', 'zoom_range'):
            low, high = getattr(self, name)
            if not low <= 100 <= high:
                raise ConfigError(f"{name} must contain the neutral value 100")
        if not 0 < self.export_quality <= 1:
            raise ConfigError(f"export_quality must be in (0, 1], got {self.export_quality}")
        if not 0 < self.initial_crop_fraction <= 1:
            raise ConfigError(
                f"initial_crop_fraction must be in (0, 1], got {self.initial_crop_fraction}"
            )
        if not 0 < self.unlocked_crop_aspect <= 1:
            raise ConfigError(
                f"unlocked_crop_aspect must be in (0, 1], got {self.unlocked_crop_aspect}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# PLAYBACK
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PlaybackConfig:
    """Configuration for stack playback."""
    interval_range: Tuple[int, int] = (100, 2000)
    default_interval_ms: int = 500

    def __post_init__(self):
        _check_range('interval_range', self.interval_range)
        if self.interval_range[0] <= 0:
            raise ConfigError("interval_range must be strictly positive")
        low, high = self.interval_range
        if not low <= self.default_interval_ms <= high:
            raise ConfigError(
                f"default_interval_ms {self.default_interval_ms} outside {self.interval_range}"
            )
