"""Merge backend output back into the original image.

The mask is a hard per-pixel switch at native resolution: where it is 255 the
regenerated pixel is used, where it is 0 the original pixel is copied through
bit-for-bit.  Both layers get a complementary binary alpha ("dest-in") and are
alpha-composited onto a transparent canvas, regenerated layer first.  The
alphas are disjoint and binary, so no pixel is ever actually blended.
"""

from __future__ import annotations

import logging

import numpy as np

from maskedit.resample import resize_image, resize_mask
from maskedit.types import CanonicalMask, RasterImage

logger = logging.getLogger(__name__)


def apply_alpha_mask(image: RasterImage, alpha_mask: np.ndarray) -> RasterImage:
    """Multiply *image*'s alpha by a single-channel mask (255 keeps, 0 clears)."""
    rgba = image.with_alpha().pixels.copy()
    rgba[:, :, 3] = (rgba[:, :, 3].astype(np.uint16) * alpha_mask.astype(np.uint16) // 255).astype(np.uint8)
    return RasterImage(rgba)


def alpha_over(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
    """Porter-Duff "over" for straight-alpha RGBA uint8 arrays.

    Opaque sources, sources over a fully transparent destination, and
    destinations under a fully transparent source are copied exactly rather
    than blended.
    """
    s = src.astype(np.float64)
    d = dst.astype(np.float64)
    sa = s[:, :, 3:4] / 255.0
    da = d[:, :, 3:4] / 255.0
    out_a = sa + da * (1.0 - sa)
    safe_a = np.where(out_a > 0, out_a, 1.0)
    out_rgb = (s[:, :, :3] * sa + d[:, :, :3] * da * (1.0 - sa)) / safe_a
    out = np.concatenate([out_rgb, out_a * 255.0], axis=2)
    out = np.clip(np.rint(out), 0, 255).astype(np.uint8)

    src_alpha = src[:, :, 3]
    dst_clear = dst[:, :, 3] == 0
    keep_dst = (src_alpha == 0) & ~dst_clear
    out[keep_dst] = dst[keep_dst]
    take_src = (src_alpha == 255) | dst_clear
    out[take_src] = src[take_src]
    return out


class Compositor:
    """Combine a regenerated image with the original under a CanonicalMask."""

    def merge(
        self,
        original: RasterImage,
        regenerated: RasterImage,
        mask: CanonicalMask,
    ) -> RasterImage:
        """Return an RGBA image at the original's native resolution."""
        native = original.size
        if regenerated.size != native:
            logger.debug("Resampling regenerated image %s -> %s", regenerated.size, native)
            regenerated = resize_image(regenerated, native)
        if mask.size != native:
            mask = resize_mask(mask, native)

        edit_alpha = mask.pixels
        keep_alpha = 255 - edit_alpha
        kept = apply_alpha_mask(original, keep_alpha)
        edited = apply_alpha_mask(regenerated, edit_alpha)

        canvas = np.zeros((original.height, original.width, 4), dtype=np.uint8)
        canvas = alpha_over(canvas, edited.pixels)
        canvas = alpha_over(canvas, kept.pixels)
        return RasterImage(canvas)
