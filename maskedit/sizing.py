"""Working-resolution negotiation.

Backends either publish a fixed catalog of sizes (catalog mode) or a
continuous range bounded by pixel-count and per-side limits plus a grid
alignment (continuous mode).  :class:`SizeNegotiator` picks a legal
:class:`~maskedit.types.WorkingGeometry` for a native image size.
"""

from __future__ import annotations

import logging
import math

from maskedit.config import BackendLimits
from maskedit.errors import InvalidImageDimensions, InvalidImageFormat
from maskedit.types import WorkingGeometry

logger = logging.getLogger(__name__)


class SizeNegotiator:
    """Choose a backend-legal working geometry for a native image size."""

    def __init__(self, limits: BackendLimits) -> None:
        self.limits = limits

    @property
    def is_catalog(self) -> bool:
        return self.limits.supported_sizes is not None

    def fit(self, width: int, height: int) -> WorkingGeometry:
        if width <= 0 or height <= 0:
            raise InvalidImageDimensions(f"Image dimensions must be positive, got {width}x{height}")
        catalog = self.limits.catalog
        if catalog is not None:
            geometry = select_catalog_size(width, height, catalog)
        else:
            geometry = fit_continuous(width, height, self.limits)
        logger.info("Negotiated working size %s for native %dx%d", geometry, width, height)
        return geometry

    def check_input(self, width: int, height: int, source_size: int | None = None) -> None:
        """Reject originals the backend cannot accept at all."""
        check_input_limits(width, height, self.limits, source_size)


# ---------------------------------------------------------------------------
# Catalog mode
# ---------------------------------------------------------------------------


def catalog_score(width: int, height: int, entry: WorkingGeometry) -> float:
    """Shape error plus relative scale error; lower is better."""
    native_max = max(width, height)
    aspect_score = abs(width / height - entry.aspect_ratio)
    size_score = abs(native_max - max(entry.width, entry.height)) / native_max
    return aspect_score + size_score


def select_catalog_size(width: int, height: int, catalog: list[WorkingGeometry]) -> WorkingGeometry:
    """Return the minimum-score catalog entry; ties go to the earliest entry."""
    if not catalog:
        raise ValueError("Size catalog is empty")
    best = catalog[0]
    best_score = math.inf
    for entry in catalog:
        score = catalog_score(width, height, entry)
        if score < best_score:
            best, best_score = entry, score
    return best


# ---------------------------------------------------------------------------
# Continuous mode
# ---------------------------------------------------------------------------


def round_to_multiple(value: float, multiple: int) -> int:
    """Round half up to the nearest multiple; never returns 0."""
    rounded = int(math.floor(value / multiple + 0.5)) * multiple
    return rounded if rounded > 0 else multiple


def aligned_bounds(limits: BackendLimits) -> tuple[int, int]:
    """Smallest and largest per-side sizes that are also pixel multiples."""
    pm = limits.pixel_multiple
    lo = max(pm, math.ceil(limits.min_dimension / pm) * pm)
    hi = (limits.max_dimension // pm) * pm
    return lo, hi


def fit_continuous(width: int, height: int, limits: BackendLimits) -> WorkingGeometry:
    """Scale uniformly into the pixel-count range, then align and clamp.

    Raises InvalidImageDimensions if no size satisfies every constraint for
    this aspect ratio.
    """
    pm = limits.pixel_multiple
    max_res = limits.max_resolution
    min_res = limits.min_resolution
    aspect = width / height

    target_w, target_h = float(width), float(height)
    native_pixels = width * height
    if max_res is not None and native_pixels > max_res:
        target_h = math.sqrt(max_res / aspect)
        target_w = target_h * aspect
    elif native_pixels < min_res:
        target_h = math.sqrt(min_res / aspect)
        target_w = target_h * aspect

    w = round_to_multiple(target_w, pm)
    h = round_to_multiple(target_h, pm)
    w, h = _shrink(w, h, pm, max_res, floor=pm)

    lo, hi = aligned_bounds(limits)
    if lo > hi:
        raise InvalidImageDimensions(
            f"No multiple of {pm} lies within [{limits.min_dimension}, {limits.max_dimension}]"
        )
    w = min(max(w, lo), hi)
    h = min(max(h, lo), hi)

    # Clamping can push the area back out of range
    w, h = _shrink(w, h, pm, max_res, floor=lo)
    w, h = _grow(w, h, pm, min_res, max_res, ceiling=hi)

    geometry = WorkingGeometry(w, h)
    if not is_legal(geometry, limits):
        raise InvalidImageDimensions(
            f"Image {width}x{height} (aspect {aspect:.3f}) cannot be fitted to the backend's "
            f"limits; closest candidate was {geometry}"
        )
    return geometry


def _shrink(w: int, h: int, pm: int, max_res: int | None, floor: int) -> tuple[int, int]:
    if max_res is None:
        return w, h
    while w * h > max_res:
        if w > h and w - pm >= floor:
            w -= pm
        elif h - pm >= floor:
            h -= pm
        elif w - pm >= floor:
            w -= pm
        else:
            break
    return w, h


def _grow(
    w: int, h: int, pm: int, min_res: int, max_res: int | None, ceiling: int,
) -> tuple[int, int]:
    def fits(nw: int, nh: int) -> bool:
        return nw <= ceiling and nh <= ceiling and (max_res is None or nw * nh <= max_res)

    while w * h < min_res:
        if w <= h and fits(w + pm, h):
            w += pm
        elif fits(w, h + pm):
            h += pm
        elif fits(w + pm, h):
            w += pm
        else:
            break
    return w, h


def is_legal(geometry: WorkingGeometry, limits: BackendLimits) -> bool:
    """Check divisibility, per-side bounds and total-pixel bounds together."""
    catalog = limits.catalog
    if catalog is not None:
        return geometry in catalog
    pm = limits.pixel_multiple
    w, h = geometry.width, geometry.height
    if w % pm or h % pm:
        return False
    if not (limits.min_dimension <= w <= limits.max_dimension):
        return False
    if not (limits.min_dimension <= h <= limits.max_dimension):
        return False
    if geometry.pixels < limits.min_resolution:
        return False
    if limits.max_resolution is not None and geometry.pixels > limits.max_resolution:
        return False
    return True


# ---------------------------------------------------------------------------
# Input checks
# ---------------------------------------------------------------------------


def check_input_limits(
    width: int, height: int, limits: BackendLimits, source_size: int | None = None,
) -> None:
    """Validate an original image against the backend's upload limits."""
    if source_size is not None and limits.max_file_size is not None and source_size > limits.max_file_size:
        raise InvalidImageFormat(
            f"Image file size ({source_size / 1024 / 1024:.2f}MB) exceeds maximum allowed "
            f"({limits.max_file_size / 1024 / 1024:.2f}MB)"
        )
    if limits.max_input_dimension is not None and max(width, height) > limits.max_input_dimension:
        raise InvalidImageDimensions(
            f"Image dimensions ({width}x{height}) exceed max allowed "
            f"{limits.max_input_dimension}px on a side"
        )
    if limits.min_input_dimension is not None and min(width, height) < limits.min_input_dimension:
        raise InvalidImageDimensions(
            f"Image dimensions ({width}x{height}) below minimum required "
            f"{limits.min_input_dimension}px on a side"
        )
    if limits.max_input_resolution is not None and width * height > limits.max_input_resolution:
        raise InvalidImageDimensions(
            f"Image resolution ({width * height} pixels) exceeds maximum allowed "
            f"({limits.max_input_resolution} pixels)"
        )
    if limits.max_aspect_ratio is not None:
        ratio = max(width, height) / min(width, height)
        if ratio > limits.max_aspect_ratio:
            raise InvalidImageDimensions(
                f"Image aspect ratio {ratio:.2f}:1 exceeds maximum {limits.max_aspect_ratio:.2f}:1"
            )
