"""Resampling between native and working resolution.

Photographic layers use Lanczos interpolation; masks use nearest-neighbour
only, so a CanonicalMask stays strictly binary through any resize.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np

from maskedit.types import CanonicalMask, ContentBox, RasterImage, WorkingGeometry

logger = logging.getLogger(__name__)

FIT_CONTAIN = "contain"  # preserve aspect ratio, letterbox the remainder
FIT_FILL = "fill"  # stretch to the target size


def resize_image(image: RasterImage, size: tuple[int, int]) -> RasterImage:
    """Lanczos resize to (width, height)."""
    if image.size == tuple(size):
        return image
    out = cv2.resize(image.pixels, tuple(size), interpolation=cv2.INTER_LANCZOS4)
    return RasterImage(out)


def resize_mask(mask: CanonicalMask, size: tuple[int, int]) -> CanonicalMask:
    """Nearest-neighbour resize to (width, height); output stays binary."""
    if mask.size == tuple(size):
        return mask
    out = cv2.resize(mask.pixels, tuple(size), interpolation=cv2.INTER_NEAREST)
    return CanonicalMask(out)


def compute_content_box(
    native: tuple[int, int], geometry: WorkingGeometry, fit: str = FIT_CONTAIN,
) -> ContentBox:
    """Place native content inside the working canvas."""
    if fit == FIT_FILL:
        return ContentBox(0, 0, geometry.width, geometry.height, geometry)
    if fit != FIT_CONTAIN:
        raise ValueError(f"Unknown fit mode: {fit!r}. Use 'contain' or 'fill'.")
    nw, nh = native
    scale = min(geometry.width / nw, geometry.height / nh)
    cw = min(geometry.width, max(1, int(round(nw * scale))))
    ch = min(geometry.height, max(1, int(round(nh * scale))))
    x = (geometry.width - cw) // 2
    y = (geometry.height - ch) // 2
    return ContentBox(x, y, cw, ch, geometry)


def _pad(pixels: np.ndarray, box: ContentBox, value: int | tuple[int, ...]) -> np.ndarray:
    return cv2.copyMakeBorder(
        pixels,
        box.y,
        box.canvas.height - box.y - box.height,
        box.x,
        box.canvas.width - box.x - box.width,
        cv2.BORDER_CONSTANT,
        value=value,
    )


class Resampler:
    """Scale image and mask buffers into and out of a working geometry."""

    def __init__(self, fit: str = FIT_CONTAIN) -> None:
        if fit not in (FIT_CONTAIN, FIT_FILL):
            raise ValueError(f"Unknown fit mode: {fit!r}. Use 'contain' or 'fill'.")
        self.fit = fit

    def layout(self, native: tuple[int, int], geometry: WorkingGeometry) -> ContentBox:
        return compute_content_box(native, geometry, self.fit)

    def fit_image(self, image: RasterImage, geometry: WorkingGeometry) -> tuple[RasterImage, ContentBox]:
        """Scale *image* into *geometry*; letterbox padding is fully transparent."""
        box = self.layout(image.size, geometry)
        scaled = resize_image(image, (box.width, box.height))
        if box.is_full:
            return scaled, box
        rgba = scaled.with_alpha()
        padded = _pad(rgba.pixels, box, (0, 0, 0, 0))
        logger.debug("Letterboxed %s into %s at (%d, %d)", image.size, geometry, box.x, box.y)
        return RasterImage(padded), box

    def fit_mask(self, mask: CanonicalMask, geometry: WorkingGeometry) -> CanonicalMask:
        """Scale *mask* into *geometry*; letterbox padding is 0 (preserve)."""
        box = self.layout(mask.size, geometry)
        scaled = resize_mask(mask, (box.width, box.height))
        if box.is_full:
            return scaled
        return CanonicalMask(_pad(scaled.pixels, box, 0))

    def restore(self, image: RasterImage, box: ContentBox, native: tuple[int, int]) -> RasterImage:
        """Crop the content area back out of a backend result and resize to native.

        The backend may answer at a size other than the working canvas; the
        content box is scaled proportionally to whatever came back.
        """
        rw, rh = image.size
        if box.is_full:
            return resize_image(image, native)
        sx = rw / box.canvas.width
        sy = rh / box.canvas.height
        x0 = int(round(box.x * sx))
        y0 = int(round(box.y * sy))
        x1 = max(x0 + 1, min(rw, int(round((box.x + box.width) * sx))))
        y1 = max(y0 + 1, min(rh, int(round((box.y + box.height) * sy))))
        cropped = RasterImage(image.pixels[y0:y1, x0:x1])
        return resize_image(cropped, native)
