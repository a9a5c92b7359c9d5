"""Shared provider-adapter pipeline.

Every adapter runs the same per-request state machine::

    validating -> encoding -> negotiating_size -> resampling_request
      -> calling_remote -> (poll_pending <-> poll_checking)*
      -> resampling_response -> compositing -> done

with ``failed`` reachable from any state.  Subclasses only supply the wire
format: :meth:`ProviderAdapter.encode_request`, :meth:`ProviderAdapter.submit`,
:meth:`ProviderAdapter.await_result` (polling backends) and
:meth:`ProviderAdapter.decode_response`.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import requests

from maskedit.compositor import Compositor
from maskedit.config import BackendConfig
from maskedit.errors import (
    MaskEditError,
    NoArtifactsProduced,
    PartialArtifactFailure,
    RemoteApiError,
    RemoteAuthError,
    RemoteError,
    RemoteTimeout,
    RequestCancelled,
)
from maskedit.mask import to_canonical_mask
from maskedit.polarity import PolarityAdapter
from maskedit.resample import Resampler
from maskedit.sizing import SizeNegotiator
from maskedit.storage import ArtifactSink
from maskedit.types import (
    ArtifactSource,
    CanonicalMask,
    ContentBox,
    EditOptions,
    EditRequest,
    EditResult,
    RasterImage,
    WorkingGeometry,
)
from maskedit.utils.image import decode_base64_image, decode_image

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request state machine
# ---------------------------------------------------------------------------


class AdapterState(str, enum.Enum):
    validating = "validating"
    encoding = "encoding"
    negotiating_size = "negotiating_size"
    resampling_request = "resampling_request"
    calling_remote = "calling_remote"
    poll_pending = "poll_pending"
    poll_checking = "poll_checking"
    resampling_response = "resampling_response"
    compositing = "compositing"
    done = "done"
    failed = "failed"


_TRANSITIONS: dict[AdapterState, set[AdapterState]] = {
    AdapterState.validating: {AdapterState.encoding},
    AdapterState.encoding: {AdapterState.negotiating_size},
    AdapterState.negotiating_size: {AdapterState.resampling_request},
    AdapterState.resampling_request: {AdapterState.calling_remote},
    AdapterState.calling_remote: {AdapterState.poll_pending, AdapterState.resampling_response},
    AdapterState.poll_pending: {AdapterState.poll_checking},
    AdapterState.poll_checking: {AdapterState.poll_pending, AdapterState.resampling_response},
    AdapterState.resampling_response: {AdapterState.compositing},
    AdapterState.compositing: {AdapterState.done},
    AdapterState.done: set(),
    AdapterState.failed: set(),
}


@dataclass
class EditJob:
    """Per-request bookkeeping.  Never shared between requests."""

    backend: str
    history: list[AdapterState] = field(default_factory=lambda: [AdapterState.validating])
    geometry: WorkingGeometry | None = None
    results: list[EditResult] = field(default_factory=list)
    failures: list[PartialArtifactFailure] = field(default_factory=list)
    sink_failures: list[str] = field(default_factory=list)

    @property
    def state(self) -> AdapterState:
        return self.history[-1]

    def transition(self, new_state: AdapterState) -> None:
        current = self.state
        if new_state is not AdapterState.failed and new_state not in _TRANSITIONS[current]:
            raise RuntimeError(f"Illegal state transition {current.value} -> {new_state.value}")
        if current is AdapterState.failed:
            return
        self.history.append(new_state)
        logger.info("[%s] %s -> %s", self.backend, current.value, new_state.value)

    def record_failure(self, failure: PartialArtifactFailure) -> None:
        logger.warning("[%s] Skipping %s", self.backend, failure)
        self.failures.append(failure)


@dataclass(frozen=True, eq=False)
class PreparedRequest:
    """Everything the wire layer needs, already at working resolution."""

    request: EditRequest
    mask: CanonicalMask  # native resolution
    geometry: WorkingGeometry
    image: RasterImage  # working resolution
    wire_mask: RasterImage  # working resolution, backend polarity
    content_box: ContentBox
    options: EditOptions

    @property
    def native_size(self) -> tuple[int, int]:
        return self.request.original_image.size


# ---------------------------------------------------------------------------
# Adapter base class
# ---------------------------------------------------------------------------


class ProviderAdapter(ABC):
    """One inpainting backend behind the uniform ``edit_image`` contract."""

    def __init__(
        self,
        name: str,
        config: BackendConfig,
        session: requests.Session | None = None,
        *,
        max_workers: int = 4,
        require_credentials: bool = True,
    ) -> None:
        self.name = name
        self.config = config
        self._api_key = config.secret()
        if require_credentials and not self._api_key:
            env_hint = f" (set {config.api_key_env_var})" if config.api_key_env_var else ""
            raise RemoteAuthError(name, f"API key is not configured{env_hint}")
        self.session = session if session is not None else requests.Session()
        self.max_workers = max_workers
        self.resampler = Resampler()
        self.negotiator = SizeNegotiator(config.limits)
        self.polarity = PolarityAdapter(config.encoding, self.resampler)
        self.compositor = Compositor()
        self._clock: Callable[[], float] = time.monotonic

    # ------------------------------------------------------------------
    # Wire-format hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def encode_request(self, prepared: PreparedRequest) -> dict[str, Any]:
        """Build the backend payload for a prepared request."""

    @abstractmethod
    def submit(self, payload: dict[str, Any]) -> Any:
        """Send the payload; return the backend's immediate response."""

    def await_result(
        self, submission: Any, *, job: EditJob, cancel: threading.Event | None = None,
    ) -> Any:
        """Block until *submission* has resolved.  Synchronous backends return it as-is."""
        return submission

    @abstractmethod
    def decode_response(self, response: Any) -> list[ArtifactSource]:
        """List the artifacts in a resolved response, in backend order."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def edit_image(
        self,
        request: EditRequest,
        *,
        cancel: threading.Event | None = None,
        sink: ArtifactSink | None = None,
    ) -> list[EditResult]:
        """Run an edit request; return results numbered from 1 in backend order."""
        return self.run(request, cancel=cancel, sink=sink).results

    def run(
        self,
        request: EditRequest,
        *,
        cancel: threading.Event | None = None,
        sink: ArtifactSink | None = None,
    ) -> EditJob:
        """Like :meth:`edit_image` but returns the full job record."""
        job = EditJob(backend=self.name)
        try:
            prepared = self._prepare(request, job)
            job.transition(AdapterState.calling_remote)
            payload = self.encode_request(prepared)
            logger.info("[%s] Calling %s at %s", self.name, self.config.endpoint, prepared.geometry)
            submission = self._submit_with_retries(payload, cancel)
            response = self.await_result(submission, job=job, cancel=cancel)
            sources = self.decode_response(response)
            job.results = self._process_artifacts(prepared, sources, job, cancel)
            self._store_results(job, sink)
            job.transition(AdapterState.done)
        except MaskEditError as exc:
            job.transition(AdapterState.failed)
            logger.error("[%s] Edit failed: %s", self.name, exc)
            raise
        except Exception:
            job.transition(AdapterState.failed)
            raise
        logger.info(
            "[%s] Produced %d image(s), %d skipped",
            self.name, len(job.results), len(job.failures),
        )
        return job

    def plan(self, request: EditRequest) -> PreparedRequest:
        """Validate and prepare *request* without contacting the backend."""
        return self._prepare(request, EditJob(backend=self.name))

    def validate(self, request: EditRequest) -> None:
        """Raise an InputError if the request cannot be sent to this backend."""
        request.validate()
        width, height = request.original_image.size
        self.negotiator.check_input(width, height, request.source_size)

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def _prepare(self, request: EditRequest, job: EditJob) -> PreparedRequest:
        self.validate(request)

        job.transition(AdapterState.encoding)
        mask = to_canonical_mask(request.user_mask)
        if not mask.edit_region.any():
            logger.warning("[%s] Mask selects no pixels; result will equal the original", self.name)

        job.transition(AdapterState.negotiating_size)
        geometry = self.negotiator.fit(*request.original_image.size)
        job.geometry = geometry

        job.transition(AdapterState.resampling_request)
        image, box = self.resampler.fit_image(request.original_image, geometry)
        wire_mask = self.polarity.prepare(mask, geometry)

        return PreparedRequest(
            request=request,
            mask=mask,
            geometry=geometry,
            image=image,
            wire_mask=wire_mask,
            content_box=box,
            options=self._merge_options(request.options),
        )

    def _merge_options(self, options: EditOptions) -> EditOptions:
        merged = dict(self.config.default_options)
        merged.update(options.model_dump(exclude_none=True))
        return EditOptions.model_validate(merged)

    def _process_artifacts(
        self,
        prepared: PreparedRequest,
        sources: list[ArtifactSource],
        job: EditJob,
        cancel: threading.Event | None,
    ) -> list[EditResult]:
        job.transition(AdapterState.resampling_response)
        usable: list[ArtifactSource] = []
        for source in sources:
            if source.failure:
                job.record_failure(PartialArtifactFailure(source.index, source.failure))
            else:
                usable.append(source)

        restored = self._map_artifacts(
            lambda s: self._restore_artifact(prepared, s), usable, job, cancel,
        )

        job.transition(AdapterState.compositing)
        ready = [s for s in usable if s.index in restored]
        composited = self._map_artifacts(
            lambda s: self.compositor.merge(
                prepared.request.original_image, restored[s.index], prepared.mask,
            ),
            ready, job, cancel,
        )

        # Backend order, renumbered without gaps
        results: list[EditResult] = []
        for source in ready:
            if source.index not in composited:
                continue
            results.append(EditResult(
                pixels=composited[source.index],
                sequence_number=len(results) + 1,
                metadata={
                    "backend": self.name,
                    "model": prepared.options.model or self.config.model,
                    "prompt": prepared.request.prompt,
                    "working_size": str(prepared.geometry),
                    "backend_index": source.index + 1,
                },
            ))
        if not results:
            raise NoArtifactsProduced(self.name, job.failures)
        return results

    def _map_artifacts(
        self,
        fn: Callable[[ArtifactSource], RasterImage],
        sources: list[ArtifactSource],
        job: EditJob,
        cancel: threading.Event | None,
    ) -> dict[int, RasterImage]:
        """Apply *fn* to every artifact in parallel; failures are recorded, not raised."""
        self._check_cancel(cancel)
        done: dict[int, RasterImage] = {}
        if not sources:
            return done

        def guarded(source: ArtifactSource) -> RasterImage:
            self._check_cancel(cancel)
            return fn(source)

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(sources))) as pool:
            futures = [(source, pool.submit(guarded, source)) for source in sources]
            for source, future in futures:
                try:
                    done[source.index] = future.result()
                except RequestCancelled:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
                except Exception as exc:
                    job.record_failure(PartialArtifactFailure(source.index, str(exc)))
        return done

    def _restore_artifact(self, prepared: PreparedRequest, source: ArtifactSource) -> RasterImage:
        regenerated = self.fetch_artifact(source)
        return self.resampler.restore(regenerated, prepared.content_box, prepared.native_size)

    def fetch_artifact(self, source: ArtifactSource) -> RasterImage:
        """Decode inline base64 or download a URL artifact."""
        if source.b64:
            return decode_base64_image(source.b64, what="image")
        if source.url:
            response = self._request("GET", source.url, authenticated=False)
            return decode_image(response.content, what="image")
        raise RemoteApiError(self.name, f"Artifact {source.index + 1} has no image data")

    def _decode_data_list(self, response: Any) -> list[ArtifactSource]:
        """Artifacts from a ``{"data": [{"b64_json": ...} | {"url": ...}]}`` body."""
        items = response.get("data") if isinstance(response, dict) else None
        if not items:
            raise RemoteApiError(self.name, "No images were generated in the response")

        sources: list[ArtifactSource] = []
        for index, item in enumerate(items):
            if item.get("b64_json"):
                sources.append(ArtifactSource(index, b64=item["b64_json"]))
            elif item.get("url"):
                sources.append(ArtifactSource(index, url=item["url"]))
            else:
                sources.append(ArtifactSource(index, failure="artifact has no image data"))
        return sources

    def _store_results(self, job: EditJob, sink: ArtifactSink | None) -> None:
        if sink is None:
            return
        for result in job.results:
            try:
                sink.store(result)
            except Exception as exc:
                message = f"result {result.sequence_number}: {exc}"
                logger.warning("[%s] Could not persist %s", self.name, message)
                job.sink_failures.append(message)

    # ------------------------------------------------------------------
    # Remote calls
    # ------------------------------------------------------------------

    def _submit_with_retries(self, payload: dict[str, Any], cancel: threading.Event | None) -> Any:
        """Call :meth:`submit`, retrying retryable errors with exponential backoff."""
        for attempt in range(self.config.max_retries):
            self._check_cancel(cancel)
            try:
                return self.submit(payload)
            except RemoteError as e:
                if e.retryable and attempt < self.config.max_retries - 1:
                    delay = self.config.retry_delay_seconds * (2 ** attempt)
                    logger.warning(
                        "Retryable error (attempt %d): %s; retrying in %.1fs", attempt + 1, e, delay,
                    )
                    self._wait(delay, cancel)
                else:
                    raise
        raise RemoteApiError(self.name, "No attempts made (max_retries < 1)")

    def _poll(
        self,
        initial: Any,
        fetch: Callable[[Any], Any],
        is_terminal: Callable[[Any], bool],
        *,
        job: EditJob,
        cancel: threading.Event | None,
    ) -> Any:
        """Re-query *fetch* at a fixed interval until *is_terminal* or timeout."""
        deadline = self._clock() + self.config.poll_timeout_seconds
        current = initial
        while not is_terminal(current):
            job.transition(AdapterState.poll_pending)
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise RemoteTimeout(
                    self.name,
                    f"Prediction timed out after {self.config.poll_timeout_seconds:.0f} seconds",
                )
            self._wait(min(self.config.poll_interval_seconds, remaining), cancel)
            job.transition(AdapterState.poll_checking)
            current = fetch(current)
        return current

    def _wait(self, seconds: float, cancel: threading.Event | None) -> None:
        """Block for *seconds*, returning early (with RequestCancelled) on cancel."""
        if seconds <= 0:
            self._check_cancel(cancel)
            return
        if cancel is None:
            time.sleep(seconds)
            return
        if cancel.wait(seconds):
            raise RequestCancelled(f"[{self.name}] Request cancelled")

    def _check_cancel(self, cancel: threading.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            raise RequestCancelled(f"[{self.name}] Request cancelled")

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _request(self, method: str, url: str, *, authenticated: bool = True, **kwargs: Any) -> requests.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if authenticated:
            headers.update(self.auth_headers())
        kwargs.setdefault("timeout", self.config.request_timeout_seconds)
        try:
            response = self.session.request(method, url, headers=headers, **kwargs)
        except requests.RequestException as exc:
            raise RemoteApiError(self.name, self._redact(str(exc)), retryable=True) from exc

        status = response.status_code
        if 200 <= status < 300:
            return response
        body = self._redact(_response_text(response))
        message = f"API error: {status} {getattr(response, 'reason', '') or ''} - {body}".strip()
        if status in (401, 403):
            raise RemoteAuthError(self.name, message)
        retryable = status == 429 or status >= 500 or _is_retryable(body)
        raise RemoteApiError(self.name, message, status_code=status, retryable=retryable)

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteApiError(
                self.name, f"Invalid JSON response: {self._redact(_response_text(response))[:200]}",
            ) from exc

    def _redact(self, text: str) -> str:
        if self._api_key:
            text = text.replace(self._api_key, "***")
        return text


def _response_text(response: requests.Response) -> str:
    text = getattr(response, "text", "")
    return text if isinstance(text, str) else ""


def _is_retryable(text: str) -> bool:
    msg = text.lower()
    return any(kw in msg for kw in ("rate limit", "timeout", "unavailable"))
