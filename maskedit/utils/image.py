"""Image codecs: PNG bytes, base64, data URIs and file I/O."""

from __future__ import annotations

import base64
import binascii
import io
import re
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from maskedit.errors import InvalidImageFormat, InvalidMaskFormat
from maskedit.types import RasterImage

_DATA_URI_PATTERN = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Bytes <-> RasterImage
# ---------------------------------------------------------------------------


def encode_png(image: RasterImage) -> bytes:
    """Encode a RasterImage as lossless PNG bytes."""
    buf = io.BytesIO()
    image.to_pil().save(buf, format="PNG")
    return buf.getvalue()


def decode_image(data: bytes, what: str = "image") -> RasterImage:
    """Decode encoded image bytes (PNG, JPEG, WebP, ...).

    Raises InvalidMaskFormat when *what* is ``"mask"``, InvalidImageFormat otherwise.
    """
    error_cls = InvalidMaskFormat if what == "mask" else InvalidImageFormat
    if not data:
        raise error_cls(f"Empty {what} data")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return RasterImage.from_pil(img)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise error_cls(f"Cannot decode {what}: {exc}") from exc


def decode_base64_image(b64: str, what: str = "image") -> RasterImage:
    """Decode an inline base64 payload, with or without a data-URI prefix."""
    return decode_image(decode_data_uri(b64, what=what), what=what)


def decode_data_uri(value: str, what: str = "mask") -> bytes:
    """Strip a ``data:image/...;base64,`` prefix (if any) and decode."""
    payload = _DATA_URI_PATTERN.sub("", value.strip())
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        error_cls = InvalidMaskFormat if what == "mask" else InvalidImageFormat
        raise error_cls(f"Invalid base64 {what} data: {exc}") from exc


def to_data_uri(image: RasterImage) -> str:
    """Encode as a ``data:image/png;base64,`` URI (JSON-bodied backends)."""
    return "data:image/png;base64," + base64.b64encode(encode_png(image)).decode("ascii")


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def save_image(image: RasterImage, path: Path) -> Path:
    """Write a RasterImage as PNG, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_png(image))
    return path
