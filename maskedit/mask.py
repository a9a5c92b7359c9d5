"""Conversion of user-drawn masks into the canonical binary mask.

Browser canvases hand us masks in several shapes:

* RGBA: the brush paints opaque pixels; alpha is the paintedness.
* RGB: dark strokes on a light background.
* Grayscale: dark strokes on a light background.

All of them collapse to a :class:`~maskedit.types.CanonicalMask` (255 = edit).
Soft brush edges become hard here so later nearest-neighbour resampling has a
single well-defined target.
"""

from __future__ import annotations

import logging

import numpy as np

from maskedit.errors import InvalidMaskFormat
from maskedit.types import CanonicalMask, RasterImage

logger = logging.getLogger(__name__)

# Brightness at or above this counts as background for RGB/grayscale masks
VISUAL_MIDPOINT = 128


def to_canonical_mask(mask: RasterImage | np.ndarray) -> CanonicalMask:
    """Normalize a user mask into a CanonicalMask.

    An existing CanonicalMask is returned unchanged.  Raw arrays are accepted
    so that unsupported channel layouts (e.g. 2-channel) surface as
    InvalidMaskFormat rather than a generic ValueError.
    """
    if isinstance(mask, CanonicalMask):
        return mask

    data = mask.pixels if isinstance(mask, RasterImage) else np.asarray(mask)
    if data.dtype != np.uint8:
        raise InvalidMaskFormat(f"Mask must be 8-bit, got {data.dtype}")
    if data.ndim == 3 and data.shape[2] == 1:
        data = data[:, :, 0]
    if data.ndim == 2:
        channels = 1
    elif data.ndim == 3:
        channels = data.shape[2]
    else:
        raise InvalidMaskFormat(f"Mask must be a 2-D or 3-D array, got shape {data.shape}")

    if channels == 4:
        painted = data[:, :, 3] > 0
    elif channels == 3:
        brightness = data.astype(np.uint16).sum(axis=2) / 3.0
        painted = brightness < VISUAL_MIDPOINT
    elif channels == 1:
        painted = data < VISUAL_MIDPOINT
    else:
        raise InvalidMaskFormat(f"Unsupported mask channel count: {channels} (expected 1, 3 or 4)")

    canonical = CanonicalMask.from_bool(painted)
    logger.debug(
        "Canonical mask %dx%d from %d-channel input, coverage %.3f",
        canonical.width, canonical.height, channels, canonical.coverage,
    )
    return canonical
