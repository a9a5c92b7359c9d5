"""Stability-style masking endpoint: grayscale mask, multipart upload, synchronous."""

from __future__ import annotations

import logging
from typing import Any

from maskedit.config import BackendConfig
from maskedit.errors import RemoteApiError
from maskedit.providers.base import PreparedRequest, ProviderAdapter
from maskedit.types import ArtifactSource, MaskEncoding
from maskedit.utils.image import encode_png

logger = logging.getLogger(__name__)

_MASK_SOURCES = {
    MaskEncoding.grayscale_white_edit: "MASK_IMAGE_WHITE",
    MaskEncoding.grayscale_white_keep: "MASK_IMAGE_BLACK",
}


class GrayscaleBinaryProvider(ProviderAdapter):
    """Backend that takes ``init_image`` + a single-channel ``mask_image``.

    Response shape::

        {"artifacts": [{"base64": "...", "seed": 1, "finishReason": "SUCCESS"}, ...]}

    Artifacts whose ``finishReason`` is not ``SUCCESS`` (for example
    ``CONTENT_FILTERED``) are skipped.
    """

    def __init__(self, name: str, config: BackendConfig, session=None, **kwargs: Any) -> None:
        if config.encoding not in _MASK_SOURCES:
            raise ValueError(
                f"{type(self).__name__} needs a grayscale mask encoding, got {config.encoding.value!r}"
            )
        super().__init__(name, config, session, **kwargs)

    @property
    def mask_source(self) -> str:
        return _MASK_SOURCES[self.config.encoding]

    @property
    def url(self) -> str:
        return f"{self.config.endpoint.rstrip('/')}/v1/generation/{self.config.model}/image-to-image/masking"

    def resolve_style(self, style: str | None) -> str | None:
        """Return *style* if it is a known preset, else the backend default."""
        if style and style in self.config.style_presets:
            return style
        if style:
            logger.warning("[%s] Unknown style preset %r; using %r", self.name, style, self.config.default_style)
        return self.config.default_style

    def encode_request(self, prepared: PreparedRequest) -> dict[str, Any]:
        options = prepared.options
        samples = min(options.samples or self.config.max_images, self.config.max_images)

        data: list[tuple[str, str]] = [
            ("mask_source", self.mask_source),
            ("text_prompts[0][text]", prepared.request.prompt),
            ("text_prompts[0][weight]", "1"),
        ]
        if options.negative_prompt:
            data.append(("text_prompts[1][text]", options.negative_prompt))
            data.append(("text_prompts[1][weight]", "-1"))
        data.append(("samples", str(samples)))
        if options.cfg_scale is not None:
            data.append(("cfg_scale", str(options.cfg_scale)))
        if options.steps is not None:
            data.append(("steps", str(options.steps)))
        if options.seed is not None:
            data.append(("seed", str(options.seed)))
        style = self.resolve_style(options.style)
        if style:
            data.append(("style_preset", style))
        for key, value in options.extras().items():
            data.append((key, str(value)))

        files = {
            "init_image": ("init_image.png", encode_png(prepared.image), "image/png"),
            "mask_image": ("mask_image.png", encode_png(prepared.wire_mask), "image/png"),
        }
        return {"data": data, "files": files}

    def submit(self, payload: dict[str, Any]) -> Any:
        response = self._request(
            "POST",
            self.url,
            headers={"Accept": "application/json"},
            data=payload["data"],
            files=payload["files"],
        )
        return self._json(response)

    def decode_response(self, response: Any) -> list[ArtifactSource]:
        artifacts = response.get("artifacts") if isinstance(response, dict) else None
        if not artifacts:
            raise RemoteApiError(self.name, "No images were generated in the response")

        sources: list[ArtifactSource] = []
        for index, artifact in enumerate(artifacts):
            reason = artifact.get("finishReason", "SUCCESS")
            if reason != "SUCCESS":
                sources.append(ArtifactSource(index, failure=f"finishReason={reason}"))
            elif not artifact.get("base64"):
                sources.append(ArtifactSource(index, failure="artifact has no image data"))
            else:
                sources.append(ArtifactSource(index, b64=artifact["base64"]))
        return sources
