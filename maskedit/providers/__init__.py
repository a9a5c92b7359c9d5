"""Inpainting backend adapters.

- :class:`GrayscaleBinaryProvider`: synchronous multipart endpoint, single-channel mask
- :class:`InpaintProvider`: synchronous multipart endpoint, single-channel mask, size catalog
- :class:`AlphaMaskProvider`: synchronous multipart endpoint, RGBA mask, size catalog
- :class:`PollingProvider`: asynchronous prediction API polled until it resolves
"""

from maskedit.providers.alpha import AlphaMaskProvider
from maskedit.providers.base import AdapterState, EditJob, PreparedRequest, ProviderAdapter
from maskedit.providers.factory import ProviderFactory
from maskedit.providers.grayscale import GrayscaleBinaryProvider
from maskedit.providers.inpaint import InpaintProvider
from maskedit.providers.polling import PollingProvider

__all__ = [
    "AdapterState",
    "AlphaMaskProvider",
    "EditJob",
    "GrayscaleBinaryProvider",
    "InpaintProvider",
    "PollingProvider",
    "PreparedRequest",
    "ProviderAdapter",
    "ProviderFactory",
]
