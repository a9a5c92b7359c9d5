"""OpenAI-style image edits: RGBA mask where alpha=0 marks the edit region."""

from __future__ import annotations

import logging
from typing import Any

from maskedit.config import BackendConfig
from maskedit.providers.base import PreparedRequest, ProviderAdapter
from maskedit.types import ArtifactSource, MaskEncoding
from maskedit.utils.image import encode_png

logger = logging.getLogger(__name__)

# Tuning options the edits endpoint has no field for
_UNSUPPORTED_OPTIONS = ("negative_prompt", "style", "substyle", "seed")


class AlphaMaskProvider(ProviderAdapter):
    """Backend with a ``/images/edits`` multipart endpoint and a size catalog.

    Response shape::

        {"data": [{"b64_json": "..."} | {"url": "https://..."}, ...]}
    """

    def __init__(self, name: str, config: BackendConfig, session=None, **kwargs: Any) -> None:
        if config.encoding is not MaskEncoding.alpha:
            raise ValueError(
                f"{type(self).__name__} needs the alpha mask encoding, got {config.encoding.value!r}"
            )
        super().__init__(name, config, session, **kwargs)

    @property
    def url(self) -> str:
        return f"{self.config.endpoint.rstrip('/')}/images/edits"

    def encode_request(self, prepared: PreparedRequest) -> dict[str, Any]:
        options = prepared.options
        n = min(options.samples or self.config.max_images, self.config.max_images)
        data: dict[str, Any] = {
            "prompt": prepared.request.prompt,
            "model": options.model or self.config.model,
            "n": str(n),
            "size": str(prepared.geometry),
        }
        ignored = [key for key in _UNSUPPORTED_OPTIONS if getattr(options, key) is not None]
        if ignored:
            logger.warning("[%s] Ignoring options the backend does not accept: %s", self.name, ", ".join(ignored))
        data.update({k: str(v) for k, v in options.extras().items()})

        files = {
            "image": ("image.png", encode_png(prepared.image), "image/png"),
            "mask": ("mask.png", encode_png(prepared.wire_mask), "image/png"),
        }
        return {"data": data, "files": files}

    def submit(self, payload: dict[str, Any]) -> Any:
        response = self._request("POST", self.url, data=payload["data"], files=payload["files"])
        return self._json(response)

    def decode_response(self, response: Any) -> list[ArtifactSource]:
        return self._decode_data_list(response)
