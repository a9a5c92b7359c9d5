"""maskedit: mask-guided image editing across remote inpainting backends."""

__version__ = "0.1.0"

from maskedit.config import MaskEditConfig
from maskedit.types import CanonicalMask, EditOptions, EditRequest, EditResult, RasterImage

__all__ = [
    "CanonicalMask",
    "EditOptions",
    "EditRequest",
    "EditResult",
    "MaskEditConfig",
    "RasterImage",
    "__version__",
]
