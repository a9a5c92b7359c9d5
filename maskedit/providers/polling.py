"""Replicate-style prediction API: submit a job, then poll it until it resolves."""

from __future__ import annotations

import logging
import threading
from typing import Any

from maskedit.errors import RemoteApiError, RemoteError, RemoteTimeout, RequestCancelled
from maskedit.providers.base import EditJob, PreparedRequest, ProviderAdapter
from maskedit.types import ArtifactSource
from maskedit.utils.image import to_data_uri

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


class PollingProvider(ProviderAdapter):
    """Backend whose submit call returns a prediction record to poll.

    The model is either ``owner/name`` (latest version, submitted to
    ``/models/{owner}/{name}/predictions``) or ``owner/name:version``
    (submitted to ``/predictions`` with the version id).  Image and mask
    travel inline as data URIs; outputs come back as URLs.
    """

    @property
    def base_url(self) -> str:
        return self.config.endpoint.rstrip("/")

    def submit_url(self, model: str) -> tuple[str, dict[str, Any]]:
        """Return (url, extra body fields) for creating a prediction."""
        if ":" in model:
            return f"{self.base_url}/predictions", {"version": model.split(":", 1)[1]}
        return f"{self.base_url}/models/{model}/predictions", {}

    def encode_request(self, prepared: PreparedRequest) -> dict[str, Any]:
        options = prepared.options
        inputs: dict[str, Any] = {
            "image": to_data_uri(prepared.image),
            "mask": to_data_uri(prepared.wire_mask),
            "prompt": prepared.request.prompt,
            "num_outputs": min(options.samples or self.config.max_images, self.config.max_images),
            "width": prepared.geometry.width,
            "height": prepared.geometry.height,
        }
        if options.cfg_scale is not None:
            inputs["guidance_scale"] = options.cfg_scale
        if options.steps is not None:
            inputs["num_inference_steps"] = options.steps
        if options.seed is not None:
            inputs["seed"] = options.seed
        if options.negative_prompt:
            inputs["negative_prompt"] = options.negative_prompt
        inputs.update(options.extras())

        url, body = self.submit_url(options.model or self.config.model)
        body["input"] = inputs
        return {"url": url, "json": body}

    def submit(self, payload: dict[str, Any]) -> Any:
        response = self._request("POST", payload["url"], json=payload["json"])
        prediction = self._json(response)
        logger.info("[%s] Prediction created: %s", self.name, prediction.get("id"))
        return prediction

    def await_result(
        self, submission: Any, *, job: EditJob, cancel: threading.Event | None = None,
    ) -> Any:
        try:
            prediction = self._poll(
                submission,
                self.get_prediction,
                lambda p: p.get("status") in TERMINAL_STATUSES,
                job=job,
                cancel=cancel,
            )
        except (RequestCancelled, RemoteTimeout):
            self.cancel_prediction(submission)
            raise

        status = prediction.get("status")
        if status != "succeeded":
            raise RemoteApiError(
                self.name, f"Prediction {status}: {prediction.get('error') or 'Unknown error'}",
            )
        return prediction

    def get_prediction(self, prediction: dict[str, Any]) -> dict[str, Any]:
        url = (prediction.get("urls") or {}).get("get") or f"{self.base_url}/predictions/{prediction['id']}"
        current = self._json(self._request("GET", url))
        logger.info("[%s] Prediction status: %s", self.name, current.get("status"))
        return current

    def cancel_prediction(self, prediction: dict[str, Any]) -> None:
        """Ask the backend to stop a running prediction; failures are only logged."""
        url = (prediction.get("urls") or {}).get("cancel")
        if not url and prediction.get("id"):
            url = f"{self.base_url}/predictions/{prediction['id']}/cancel"
        if not url:
            return
        try:
            self._request("POST", url)
        except RemoteError as exc:
            logger.warning("[%s] Could not cancel prediction: %s", self.name, exc)

    def decode_response(self, response: Any) -> list[ArtifactSource]:
        output = response.get("output") if isinstance(response, dict) else None
        outputs = output if isinstance(output, list) else [output] if output else []
        if not outputs:
            raise RemoteApiError(self.name, "No images returned")
        logger.info("[%s] Received %d image(s)", self.name, len(outputs))
        return [
            ArtifactSource(index, url=url) if url else ArtifactSource(index, failure="empty output")
            for index, url in enumerate(outputs)
        ]
