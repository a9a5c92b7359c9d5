"""Recraft-style ``/images/inpaint`` endpoint: grayscale mask, size catalog, URL results."""

from __future__ import annotations

from typing import Any

from maskedit.config import BackendConfig
from maskedit.providers.base import PreparedRequest, ProviderAdapter
from maskedit.types import ArtifactSource, MaskEncoding
from maskedit.utils.image import encode_png

_GRAYSCALE = (MaskEncoding.grayscale_white_edit, MaskEncoding.grayscale_white_keep)


class InpaintProvider(ProviderAdapter):
    """Backend that takes ``image`` + a single-channel ``mask`` at a catalog size.

    Results are requested as URLs and downloaded afterwards; inline
    ``b64_json`` entries are accepted too.
    """

    response_format = "url"

    def __init__(self, name: str, config: BackendConfig, session=None, **kwargs: Any) -> None:
        if config.encoding not in _GRAYSCALE:
            raise ValueError(
                f"{type(self).__name__} needs a grayscale mask encoding, got {config.encoding.value!r}"
            )
        super().__init__(name, config, session, **kwargs)

    @property
    def url(self) -> str:
        return f"{self.config.endpoint.rstrip('/')}/images/inpaint"

    def encode_request(self, prepared: PreparedRequest) -> dict[str, Any]:
        options = prepared.options
        data: dict[str, Any] = {
            "prompt": prepared.request.prompt,
            "model": options.model or self.config.model,
            "response_format": self.response_format,
        }
        style = options.style or self.config.default_style
        if style:
            data["style"] = style
        if options.substyle:
            data["substyle"] = options.substyle
        if options.negative_prompt:
            data["negative_prompt"] = options.negative_prompt
        if self.config.max_images > 1:
            data["n"] = str(min(options.samples or self.config.max_images, self.config.max_images))
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
