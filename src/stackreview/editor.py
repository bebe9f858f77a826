# src/stackreview/editor.py
"""
Raster Edit Session
===================

Interactive crop + brightness/contrast/zoom editing for ONE source image,
followed by an atomic export.

Coordinate spaces:
- Display space: the size the image is shown at. CropRegion lives here.
- Natural space: the decoded source pixels. Export works here.

The two are related by the scale factor natural/display per axis.

Export contract:
- Output size == crop size in natural pixels (never affected by zoom)
- Brightness and contrast are baked in, zoom is preview-only
- Output keeps the source MIME type; lossy encoders use the configured
  quality factor (0.95 by default)
- Full blob or ExportUnavailable, never a partial result
"""
from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from .config import EditorConfig, clamp
from .errors import ExportUnavailable

logger = logging.getLogger(__name__)


# MIME type → (Pillow format, lossy)
ENCODERS = {
    'image/jpeg': ('JPEG', True),
    'image/jpg': ('JPEG', True),
    'image/png': ('PNG', False),
    'image/bmp': ('BMP', False),
    'image/tiff': ('TIFF', False),
    'image/webp': ('WEBP', True),
}

# Modes the filter math handles directly: mode → number of color channels
_FILTER_MODES = {'L': 1, 'LA': 1, 'RGB': 3, 'RGBA': 3}

# Single-channel modes filtered at their native depth: mode → full-scale value.
# 'F' follows Pillow's own convention of treating float samples as 0-255.
_HIGH_BIT_MODES = {'I;16': 65535, 'I;16L': 65535, 'I;16B': 65535, 'I': 65535, 'F': 255.0}
_HIGH_BIT_DTYPES = {'I;16': np.uint16, 'I;16L': np.uint16, 'I;16B': np.uint16, 'I': np.int32, 'F': np.float32}

# Pillow format → high-bit modes it can store without rescaling
_HIGH_BIT_ENCODERS = {
    'PNG': frozenset({'I;16', 'I'}),
    'TIFF': frozenset({'I;16', 'I;16L', 'I;16B', 'I', 'F'}),
}


# ═══════════════════════════════════════════════════════════════════════════════
# DATA MODEL
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CropRegion:
    """Rectangle in display-space pixels."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def is_within(self, width: float, height: float) -> bool:
        return (
            self.x >= 0 and self.y >= 0
            and self.width > 0 and self.height > 0
            and self.right <= width and self.bottom <= height
        )

    def squared(self) -> 'CropRegion':
        """Square with the same origin, side = min(width, height)."""
        side = min(self.width, self.height)
        return replace(self, width=side, height=side)

    def clamped(self, width: float, height: float) -> 'CropRegion':
        """Shrink and shift into the [0, width] x [0, height] bounds."""
        w = clamp(self.width, (1, width))
        h = clamp(self.height, (1, height))
        x = clamp(self.x, (0, width - w))
        y = clamp(self.y, (0, height - h))
        return CropRegion(x=x, y=y, width=w, height=h)


@dataclass
class AdjustmentState:
    """Filter and zoom percentages. 100 means unchanged."""
    brightness: float = 100
    contrast: float = 100
    zoom: float = 100
    aspect_locked: bool = False

    @property
    def is_neutral(self) -> bool:
        return self.brightness == 100 and self.contrast == 100


@dataclass
class EditedImage:
    """Result of a successful export."""
    name: str
    data: bytes
    content_type: str
    width: int
    height: int

    @property
    def size_bytes(self) -> int:
        return len(self.data)


# ═══════════════════════════════════════════════════════════════════════════════
# PIXEL OPERATIONS
# ═══════════════════════════════════════════════════════════════════════════════

def _has_alpha(image: Image.Image) -> bool:
    return 'A' in image.getbands() or 'transparency' in image.info


def _composite(color: np.ndarray, brightness: float, contrast: float, full_scale: float) -> None:
    pivot = full_scale / 2.0
    color *= brightness / 100.0
    np.clip(color, 0, full_scale, out=color)

    color -= pivot
    color *= contrast / 100.0
    color += pivot
    np.clip(color, 0, full_scale, out=color)


def apply_filters(image: Image.Image, brightness: float, contrast: float) -> Image.Image:
    """
    Composite brightness then contrast over the color channels.

    Brightness scales linearly (value * b). Contrast pivots around mid-gray
    ((value - mid) * c + mid). Alpha is left untouched. Results are clipped
    to the mode's range after each step.

    16-bit and float grayscale are filtered at their native depth, with
    mid-gray at half their full scale, and keep their mode.
    """
    if brightness == 100 and contrast == 100:
        return image.copy()

    if image.mode in _HIGH_BIT_MODES:
        full_scale = _HIGH_BIT_MODES[image.mode]
        arr = np.array(image, dtype=np.float64)
        _composite(arr, brightness, contrast, full_scale)
        dtype = _HIGH_BIT_DTYPES[image.mode]
        if image.mode != 'F':
            arr = np.rint(arr)
        return Image.fromarray(arr.astype(dtype))

    if image.mode not in _FILTER_MODES:
        image = image.convert('RGBA' if _has_alpha(image) else 'RGB')

    arr = np.array(image, dtype=np.float32)
    channels = _FILTER_MODES[image.mode]
    color = arr if arr.ndim == 2 else arr[..., :channels]
    _composite(color, brightness, contrast, 255.0)

    return Image.fromarray(np.rint(arr).astype(np.uint8))


def to_display_range(image: Image.Image) -> Image.Image:
    """
    Rescale high-bit-depth grayscale into 8-bit 'L'.

    Values are scaled by 255 / full scale, never clipped at 255. Other
    modes are returned unchanged.
    """
    full_scale = _HIGH_BIT_MODES.get(image.mode)
    if full_scale is None:
        return image
    arr = np.array(image, dtype=np.float64) * (255.0 / full_scale)
    return Image.fromarray(np.rint(np.clip(arr, 0, 255)).astype(np.uint8))


def _prepare_for_encoder(image: Image.Image, pil_format: str) -> Image.Image:
    if image.mode in _HIGH_BIT_MODES and image.mode not in _HIGH_BIT_ENCODERS.get(pil_format, ()):
        image = to_display_range(image)
    if pil_format == 'JPEG' and image.mode not in ('L', 'RGB', 'CMYK'):
        return image.convert('RGB')
    if pil_format == 'BMP' and image.mode not in ('1', 'L', 'P', 'RGB', 'RGBA'):
        return image.convert('RGBA' if _has_alpha(image) else 'RGB')
    return image


def image_to_data_uri(image: Image.Image) -> str:
    """Encode a preview raster as a PNG data URI."""
    buffered = io.BytesIO()
    image.save(buffered, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffered.getvalue()).decode()


# ═══════════════════════════════════════════════════════════════════════════════
# SESSION
# ═══════════════════════════════════════════════════════════════════════════════

class RasterEditSession:
    """
    Stateful editor scoped to exactly one source image.

    Lifecycle:
        session = RasterEditSession(name, data, content_type)
        session.load()                  # decode, set initial crop
        session.set_brightness(120)
        edited = session.export()       # atomic
        session.cancel()                # release everything

    Independent instances share no mutable state.
    """

    def __init__(
        self,
        name: str,
        data: bytes,
        content_type: str,
        *,
        display_size: Optional[Tuple[float, float]] = None,
        config: Optional[EditorConfig] = None,
    ):
        self.name = name
        self.data = data
        self.content_type = content_type.lower()
        self.config = config or EditorConfig()
        self.adjustments = AdjustmentState()

        self._requested_display_size = display_size
        self._display_size: Optional[Tuple[float, float]] = None
        self._source: Optional[Image.Image] = None
        self._crop: Optional[CropRegion] = None
        self._preview_uri: Optional[str] = None
        self._cancelled = False

    @classmethod
    def open(cls, name: str, data: bytes, content_type: str, **kwargs) -> 'RasterEditSession':
        """Construct and load in one step."""
        session = cls(name, data, content_type, **kwargs)
        session.load()
        return session

    # ─── Loading ───────────────────────────────────────────────────────────────

    def load(self) -> None:
        """
        Decode the source and place the initial crop.

        Raises:
            ExportUnavailable: the session was cancelled or the bytes do not
                decode as an image
        """
        if self._cancelled:
            raise ExportUnavailable("Edit session was cancelled")
        try:
            image = Image.open(io.BytesIO(self.data))
            image.load()
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ExportUnavailable(f"Source image could not be decoded: {exc}") from exc

        self._source = image
        self._display_size = self._requested_display_size or (float(image.width), float(image.height))
        self._crop = self._initial_crop()
        logger.debug(
            f"Loaded {self.name}: natural={image.size}, display={self._display_size}"
        )

    @property
    def is_loaded(self) -> bool:
        return self._source is not None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def natural_size(self) -> Optional[Tuple[int, int]]:
        return self._source.size if self._source is not None else None

    @property
    def display_size(self) -> Optional[Tuple[float, float]]:
        return self._display_size

    @property
    def scale_factors(self) -> Tuple[float, float]:
        """(scale_x, scale_y) from display to natural pixels."""
        if self._source is None or self._display_size is None:
            return (1.0, 1.0)
        dw, dh = self._display_size
        return (self._source.width / dw, self._source.height / dh)

    def set_display_size(self, width: float, height: float) -> None:
        """Change the display size, keeping the crop on the same natural region."""
        if width <= 0 or height <= 0:
            raise ValueError(f"display size must be positive, got {(width, height)}")
        if self._display_size is not None and self._crop is not None:
            fx = width / self._display_size[0]
            fy = height / self._display_size[1]
            crop = self._crop
            self._crop = CropRegion(
                x=crop.x * fx, y=crop.y * fy, width=crop.width * fx, height=crop.height * fy,
            ).clamped(width, height)
        self._requested_display_size = (width, height)
        if self._display_size is not None:
            self._display_size = (width, height)

    def _initial_crop(self) -> CropRegion:
        dw, dh = self._display_size
        size = min(dw, dh) * self.config.initial_crop_fraction
        height = size if self.adjustments.aspect_locked else size * self.config.unlocked_crop_aspect
        return CropRegion(x=(dw - size) / 2, y=(dh - size) / 2, width=size, height=height)

    # ─── Crop ──────────────────────────────────────────────────────────────────

    @property
    def crop(self) -> Optional[CropRegion]:
        return self._crop

    def set_crop(self, region: Optional[CropRegion]) -> Optional[CropRegion]:
        """
        Set the crop (display space), clamped into bounds.

        Squared when the aspect lock is on. None clears the crop.
        Returns the crop actually applied.
        """
        if region is None or self._display_size is None:
            self._crop = None
            return None
        region = region.clamped(*self._display_size)
        if self.adjustments.aspect_locked:
            region = region.squared()
        self._crop = region
        return self._crop

    def toggle_aspect_lock(self) -> bool:
        """Flip the aspect lock; enabling it squares the current crop."""
        self.adjustments.aspect_locked = not self.adjustments.aspect_locked
        if self.adjustments.aspect_locked and self._crop is not None:
            self._crop = self._crop.squared()
        return self.adjustments.aspect_locked

    def natural_crop(self) -> Optional[Tuple[int, int, int, int]]:
        """
        Crop as a (left, top, right, bottom) box in natural pixels.

        Falls back to the whole image when no crop is set. None until loaded.
        """
        if self._source is None:
            return None
        nw, nh = self._source.size
        if self._crop is None:
            return (0, 0, nw, nh)

        sx, sy = self.scale_factors
        left = min(max(int(round(self._crop.x * sx)), 0), nw - 1)
        top = min(max(int(round(self._crop.y * sy)), 0), nh - 1)
        width = min(max(int(round(self._crop.width * sx)), 1), nw - left)
        height = min(max(int(round(self._crop.height * sy)), 1), nh - top)
        return (left, top, left + width, top + height)

    # ─── Adjustments ───────────────────────────────────────────────────────────

    def set_brightness(self, value: float) -> float:
        self.adjustments.brightness = clamp(value, self.config.brightness_range)
        return self.adjustments.brightness

    def set_contrast(self, value: float) -> float:
        self.adjustments.contrast = clamp(value, self.config.contrast_range)
        return self.adjustments.contrast

    def set_zoom(self, value: float) -> float:
        self.adjustments.zoom = clamp(value, self.config.zoom_range)
        return self.adjustments.zoom

    def reset(self) -> None:
        """Restore neutral brightness/contrast/zoom and clear the crop."""
        self.adjustments.brightness = 100
        self.adjustments.contrast = 100
        self.adjustments.zoom = 100
        self._crop = None

    # ─── Preview ───────────────────────────────────────────────────────────────

    def render_preview(self) -> Image.Image:
        """Filtered, zoomed preview of the full source (never exported)."""
        source = self._require_source()
        preview = apply_filters(source, self.adjustments.brightness, self.adjustments.contrast)
        preview = to_display_range(preview)
        if self.adjustments.zoom != 100:
            factor = self.adjustments.zoom / 100.0
            size = (max(1, round(preview.width * factor)), max(1, round(preview.height * factor)))
            preview = preview.resize(size)
        return preview

    def preview_data_uri(self) -> str:
        """Preview as a data URI; the handle is released by cancel()."""
        self._preview_uri = image_to_data_uri(self.render_preview())
        return self._preview_uri

    @property
    def has_preview_handle(self) -> bool:
        return self._preview_uri is not None

    # ─── Export ────────────────────────────────────────────────────────────────

    def export(self) -> EditedImage:
        """
        Bake crop + brightness + contrast into a new encoded blob.

        Returns:
            EditedImage named after the source, same content type

        Raises:
            ExportUnavailable: source not loaded, session cancelled, or no
                encoder for the content type
        """
        source = self._require_source()

        encoder = ENCODERS.get(self.content_type)
        if encoder is None:
            raise ExportUnavailable(f"No encoder available for {self.content_type}")
        pil_format, lossy = encoder

        box = self.natural_crop()
        region = source.crop(box)
        region = apply_filters(region, self.adjustments.brightness, self.adjustments.contrast)
        region = _prepare_for_encoder(region, pil_format)

        params = {}
        if lossy:
            params['quality'] = int(round(self.config.export_quality * 100))

        buffer = io.BytesIO()
        try:
            region.save(buffer, format=pil_format, **params)
        except (OSError, KeyError, ValueError) as exc:
            raise ExportUnavailable(f"Encoding {self.content_type} failed: {exc}") from exc

        edited = EditedImage(
            name=self.name,
            data=buffer.getvalue(),
            content_type=self.content_type,
            width=region.width,
            height=region.height,
        )
        logger.info(
            f"Exported {self.name}: {edited.width}x{edited.height} {self.content_type} "
            f"({edited.size_bytes} bytes)"
        )
        return edited

    def _require_source(self) -> Image.Image:
        if self._cancelled:
            raise ExportUnavailable("Edit session was cancelled")
        if self._source is None:
            raise ExportUnavailable("Source image has not finished loading")
        return self._source

    # ─── Teardown ──────────────────────────────────────────────────────────────

    def cancel(self) -> None:
        """Discard all session state and release the preview handle. Idempotent."""
        self._preview_uri = None
        self._crop = None
        self.adjustments = AdjustmentState()
        if self._source is not None:
            self._source.close()
            self._source = None
        self._display_size = None
        self._cancelled = True

    def __enter__(self) -> 'RasterEditSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()
