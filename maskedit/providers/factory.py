"""Backend name -> provider adapter."""

from __future__ import annotations

import logging

import requests

from maskedit.config import BackendConfig, BackendKind, MaskEditConfig
from maskedit.providers.alpha import AlphaMaskProvider
from maskedit.providers.base import ProviderAdapter
from maskedit.providers.grayscale import GrayscaleBinaryProvider
from maskedit.providers.inpaint import InpaintProvider
from maskedit.providers.polling import PollingProvider

logger = logging.getLogger(__name__)

ADAPTERS: dict[BackendKind, type[ProviderAdapter]] = {
    BackendKind.grayscale: GrayscaleBinaryProvider,
    BackendKind.inpaint: InpaintProvider,
    BackendKind.alpha: AlphaMaskProvider,
    BackendKind.polling: PollingProvider,
}


class ProviderFactory:
    """Create adapters for the backends named in a :class:`MaskEditConfig`.

    Adapters are built fresh per call, so concurrent requests never share
    request state.  An HTTP session, if given, is shared by all of them.
    """

    def __init__(self, config: MaskEditConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session

    def supported_backends(self) -> list[str]:
        return list(self.config.backends)

    def backend_config(self, name: str) -> BackendConfig:
        try:
            return self.config.backends[name]
        except KeyError:
            raise ValueError(
                f"Unknown inpainting backend: {name!r}. "
                f"Supported backends: {', '.join(self.supported_backends())}"
            ) from None

    def get_provider(self, name: str | None = None, *, require_credentials: bool = True) -> ProviderAdapter:
        """Return an adapter for *name*, or for the default backend.

        Pass ``require_credentials=False`` for adapters that only plan requests.
        """
        name = name or self.config.default_backend
        backend = self.backend_config(name)
        adapter_cls = ADAPTERS[backend.kind]
        logger.debug("Creating %s for backend %r", adapter_cls.__name__, name)
        return adapter_cls(
            name, backend, self.session,
            max_workers=self.config.max_workers, require_credentials=require_credentials,
        )

    def default_provider(self) -> ProviderAdapter:
        return self.get_provider(self.config.default_backend)
