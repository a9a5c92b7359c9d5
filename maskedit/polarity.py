"""Per-backend mask encodings.

| Encoding              | Wire format        | From canonical (255 = edit)     |
|-----------------------|--------------------|---------------------------------|
| grayscale_white_edit  | 1 channel          | identity                        |
| grayscale_white_keep  | 1 channel          | 255 - v                         |
| alpha                 | RGBA, white pixels | alpha = 255 - v (0 where edit)  |

Decoding thresholds at the midpoint so slightly lossy backend imagery still
maps back onto a binary mask; for binary input it is the exact inverse.
"""

from __future__ import annotations

import numpy as np

from maskedit.errors import InvalidMaskFormat
from maskedit.resample import Resampler
from maskedit.types import CanonicalMask, MaskEncoding, RasterImage, WorkingGeometry

_MIDPOINT = 128


class PolarityAdapter:
    """Translate CanonicalMask to and from one backend's mask encoding."""

    def __init__(self, encoding: MaskEncoding, resampler: Resampler | None = None) -> None:
        self.encoding = MaskEncoding(encoding)
        self.resampler = resampler or Resampler()

    def encode(self, mask: CanonicalMask) -> RasterImage:
        if self.encoding is MaskEncoding.grayscale_white_edit:
            return RasterImage(mask.pixels)
        if self.encoding is MaskEncoding.grayscale_white_keep:
            return RasterImage(255 - mask.pixels)
        alpha = 255 - mask.pixels
        rgba = np.empty((mask.height, mask.width, 4), dtype=np.uint8)
        rgba[:, :, :3] = 255
        rgba[:, :, 3] = alpha
        return RasterImage(rgba)

    def decode(self, encoded: RasterImage) -> CanonicalMask:
        if self.encoding is MaskEncoding.alpha:
            if encoded.channels != 4:
                raise InvalidMaskFormat(
                    f"Alpha-encoded mask must have 4 channels, got {encoded.channels}"
                )
            return CanonicalMask.from_bool(encoded.pixels[:, :, 3] < _MIDPOINT)

        if encoded.channels == 1:
            values = encoded.pixels
        elif encoded.channels == 3:
            values = encoded.pixels.astype(np.uint16).sum(axis=2) / 3.0
        else:
            raise InvalidMaskFormat(
                f"Grayscale-encoded mask must have 1 or 3 channels, got {encoded.channels}"
            )
        if self.encoding is MaskEncoding.grayscale_white_edit:
            return CanonicalMask.from_bool(values >= _MIDPOINT)
        return CanonicalMask.from_bool(values < _MIDPOINT)

    def prepare(self, mask: CanonicalMask, geometry: WorkingGeometry) -> RasterImage:
        """Resample to the working geometry, then encode for the wire.

        Resampling happens on the canonical form so letterbox padding always
        means "preserve" whatever the backend's polarity.
        """
        return self.encode(self.resampler.fit_mask(mask, geometry))
