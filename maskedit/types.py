"""Core data types for maskedit.

Every pipeline stage produces/consumes these types.  Pixel buffers are numpy
``uint8`` arrays in RGB(A) channel order, shaped ``(H, W)`` for single-channel
data and ``(H, W, C)`` otherwise.  Buffers are made read-only on construction;
every transform returns a new object.
"""

from __future__ import annotations

import base64
import enum
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from PIL import Image
from pydantic import BaseModel, ConfigDict, Field

from maskedit.errors import InvalidImageDimensions, InvalidImageFormat, InvalidPrompt


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MaskEncoding(str, enum.Enum):
    """How a backend expects the edit region to be marked."""

    grayscale_white_edit = "grayscale_white_edit"
    grayscale_white_keep = "grayscale_white_keep"
    alpha = "alpha"  # RGBA, alpha=0 where the backend may paint


# ---------------------------------------------------------------------------
# Raster buffers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class RasterImage:
    """Immutable pixel buffer with 1, 3 or 4 channels."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        arr = np.asarray(self.pixels)
        if arr.dtype != np.uint8:
            raise ValueError(f"RasterImage requires uint8 pixels, got {arr.dtype}")
        if arr.ndim == 3 and arr.shape[2] == 1:
            arr = arr[:, :, 0]
        if arr.ndim not in (2, 3):
            raise ValueError(f"RasterImage requires a 2-D or 3-D array, got shape {arr.shape}")
        if arr.ndim == 3 and arr.shape[2] not in (3, 4):
            raise ValueError(f"Unsupported channel count: {arr.shape[2]}")
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValueError(f"RasterImage cannot be empty, got shape {arr.shape}")
        arr = np.array(arr, dtype=np.uint8, copy=True)
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def size(self) -> tuple[int, int]:
        """(width, height), PIL order."""
        return self.width, self.height

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    def same_pixels(self, other: RasterImage) -> bool:
        return self.pixels.shape == other.pixels.shape and bool(
            np.array_equal(self.pixels, other.pixels)
        )

    def with_alpha(self) -> RasterImage:
        """Return an RGBA copy; grayscale is expanded, existing alpha kept."""
        if self.channels == 4:
            return self
        if self.channels == 1:
            rgb = np.repeat(self.pixels[:, :, None], 3, axis=2)
        else:
            rgb = self.pixels
        alpha = np.full((self.height, self.width, 1), 255, dtype=np.uint8)
        return RasterImage(np.concatenate([rgb, alpha], axis=2))

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    @classmethod
    def from_pil(cls, img: Image.Image) -> RasterImage:
        """Convert a PIL image, normalizing palette/bilevel/LA modes."""
        if img.mode in ("1", "I", "I;16", "F"):
            img = img.convert("L")
        elif img.mode in ("P", "LA", "PA", "RGBa", "La"):
            img = img.convert("RGBA")
        elif img.mode in ("CMYK", "YCbCr", "LAB", "HSV"):
            img = img.convert("RGB")
        return cls(np.array(img, dtype=np.uint8))


@dataclass(frozen=True, eq=False)
class CanonicalMask(RasterImage):
    """Single-channel binary mask: 255 = region to regenerate, 0 = preserve."""

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.channels != 1:
            raise ValueError(f"CanonicalMask must have 1 channel, got {self.channels}")
        if not np.all((self.pixels == 0) | (self.pixels == 255)):
            raise ValueError("CanonicalMask values must be exactly 0 or 255")

    @classmethod
    def from_bool(cls, edit: np.ndarray) -> CanonicalMask:
        return cls(np.where(np.asarray(edit, dtype=bool), 255, 0).astype(np.uint8))

    @property
    def edit_region(self) -> np.ndarray:
        """Boolean array, True where the backend may regenerate pixels."""
        return self.pixels == 255

    @property
    def coverage(self) -> float:
        """Fraction of pixels marked for regeneration."""
        return float(np.count_nonzero(self.pixels)) / self.pixels.size

    def inverted(self) -> CanonicalMask:
        return CanonicalMask(255 - self.pixels)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkingGeometry:
    """Resolution at which a backend is invoked."""

    width: int
    height: int

    @property
    def pixels(self) -> int:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def parse(cls, text: str) -> WorkingGeometry:
        """Parse a ``"WxH"`` catalog entry."""
        try:
            w, h = (int(part) for part in text.lower().split("x"))
        except ValueError as exc:
            raise ValueError(f"Invalid size string: {text!r} (expected 'WxH')") from exc
        if w <= 0 or h <= 0:
            raise ValueError(f"Invalid size string: {text!r} (dimensions must be positive)")
        return cls(w, h)


@dataclass(frozen=True)
class ContentBox:
    """Where the scaled content sits inside a letterboxed working canvas."""

    x: int
    y: int
    width: int
    height: int
    canvas: WorkingGeometry

    @property
    def is_full(self) -> bool:
        return (
            self.x == 0 and self.y == 0
            and self.width == self.canvas.width and self.height == self.canvas.height
        )


# ---------------------------------------------------------------------------
# Requests and results
# ---------------------------------------------------------------------------


class EditOptions(BaseModel):
    """Provider tuning parameters.  Unknown keys pass through to the backend."""

    model_config = ConfigDict(extra="allow")

    negative_prompt: str | None = None
    style: str | None = Field(None, description="Style preset (Stability style_preset, Recraft style)")
    substyle: str | None = None
    model: str | None = Field(None, description="Override the backend's configured model")
    cfg_scale: float | None = None
    samples: int | None = Field(None, ge=1, description="Number of images to generate")
    steps: int | None = Field(None, ge=1)
    seed: int | None = None

    def extras(self) -> dict[str, Any]:
        """Provider-specific keys not modelled above."""
        return dict(self.model_extra or {})


@dataclass(frozen=True, eq=False)
class EditRequest:
    """One user edit: original image, drawn mask, prompt and tuning options."""

    original_image: RasterImage
    user_mask: RasterImage
    prompt: str
    options: EditOptions = field(default_factory=EditOptions)
    source_size: int | None = None  # bytes of the uploaded original, when known

    def validate(self) -> None:
        """Check backend-independent invariants.  Raises an InputError."""
        if self.original_image.channels not in (3, 4):
            raise InvalidImageFormat(
                f"Original image must have 3 or 4 channels, got {self.original_image.channels}"
            )
        if self.original_image.size != self.user_mask.size:
            raise InvalidImageDimensions(
                "Mask dimensions ({}x{}) do not match image dimensions ({}x{})".format(
                    *self.user_mask.size, *self.original_image.size,
                )
            )
        if not self.prompt or not self.prompt.strip():
            raise InvalidPrompt("Prompt is required")

    @classmethod
    def from_bytes(
        cls,
        image_bytes: bytes,
        mask: bytes | str,
        prompt: str,
        options: EditOptions | dict[str, Any] | None = None,
    ) -> EditRequest:
        """Build a request from uploaded bytes.

        *mask* may be raw PNG bytes or a ``data:image/png;base64,...`` URI as
        produced by a browser canvas.
        """
        from maskedit.utils.image import decode_data_uri, decode_image

        mask_bytes = decode_data_uri(mask) if isinstance(mask, str) else mask
        if isinstance(options, dict):
            options = EditOptions.model_validate(options)
        return cls(
            original_image=decode_image(image_bytes, what="image"),
            user_mask=decode_image(mask_bytes, what="mask"),
            prompt=prompt,
            options=options or EditOptions(),
            source_size=len(image_bytes),
        )


@dataclass(frozen=True, eq=False)
class EditResult:
    """One delivered artifact, numbered from 1 in backend return order."""

    pixels: RasterImage
    sequence_number: int
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.sequence_number < 1:
            raise ValueError(f"sequence_number must be >= 1, got {self.sequence_number}")

    def png_bytes(self) -> bytes:
        from maskedit.utils.image import encode_png

        return encode_png(self.pixels)

    def to_base64(self) -> str:
        return base64.b64encode(self.png_bytes()).decode("ascii")


@dataclass(frozen=True)
class ArtifactSource:
    """Where a backend put one generated image: inline base64 or a URL.

    ``failure`` is set when the backend itself flagged the artifact as unusable.
    """

    index: int
    b64: str | None = None
    url: str | None = None
    failure: str | None = None
