"""Configuration models for maskedit.

Pydantic v2 models with sensible defaults; works without a config file.
Credentials are resolved from the environment only when a config is loaded
(:meth:`MaskEditConfig.with_env_credentials`); the pipeline itself never
reads process-wide state.
"""

from __future__ import annotations

import enum
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from maskedit.types import MaskEncoding, WorkingGeometry


class BackendKind(str, enum.Enum):
    """Which provider adapter drives a backend."""

    grayscale = "grayscale"
    inpaint = "inpaint"
    alpha = "alpha"
    polling = "polling"


_DEFAULT_ENCODINGS: dict[BackendKind, MaskEncoding] = {
    BackendKind.grayscale: MaskEncoding.grayscale_white_edit,
    BackendKind.inpaint: MaskEncoding.grayscale_white_edit,
    BackendKind.alpha: MaskEncoding.alpha,
    BackendKind.polling: MaskEncoding.grayscale_white_edit,
}


class BackendLimits(BaseModel):
    """Geometry constraints a backend imposes on its inputs."""

    pixel_multiple: int = Field(1, ge=1, description="Width/height must be divisible by this")
    min_resolution: int = Field(0, ge=0, description="Minimum total pixel count")
    max_resolution: int | None = Field(None, ge=1, description="Maximum total pixel count")
    min_dimension: int = Field(1, ge=1, description="Minimum pixels per side")
    max_dimension: int = Field(4096, ge=1, description="Maximum pixels per side")
    supported_sizes: list[str] | None = Field(
        None, description="Fixed catalog of 'WxH' sizes; selects catalog sizing when set",
    )

    # Limits applied to the uploaded original before any resampling
    max_input_dimension: int | None = Field(None, description="Reject originals larger than this per side")
    min_input_dimension: int | None = Field(None, description="Reject originals smaller than this per side")
    max_input_resolution: int | None = Field(None, description="Reject originals with more pixels than this")
    max_aspect_ratio: float | None = Field(
        None, gt=1.0, description="Reject originals whose long/short side ratio exceeds this",
    )
    max_file_size: int | None = Field(None, description="Reject uploads larger than this many bytes")

    @field_validator("supported_sizes")
    @classmethod
    def _check_sizes(cls, value: list[str] | None) -> list[str] | None:
        if value is not None:
            if not value:
                raise ValueError("supported_sizes must not be empty when set")
            for entry in value:
                WorkingGeometry.parse(entry)
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> BackendLimits:
        if self.min_dimension > self.max_dimension:
            raise ValueError("min_dimension must not exceed max_dimension")
        if self.max_resolution is not None and self.min_resolution > self.max_resolution:
            raise ValueError("min_resolution must not exceed max_resolution")
        return self

    @property
    def catalog(self) -> list[WorkingGeometry] | None:
        if self.supported_sizes is None:
            return None
        return [WorkingGeometry.parse(s) for s in self.supported_sizes]


class BackendConfig(BaseModel):
    """Configuration for one inpainting backend."""

    kind: BackendKind = Field(BackendKind.grayscale, description="Adapter: grayscale, inpaint, alpha or polling")
    display_name: str = Field("", description="Human-readable backend name for listings")
    endpoint: str = Field("", description="Base URL of the backend API")
    model: str = Field("", description="Engine / model / version identifier")
    api_key: SecretStr | None = None
    api_key_env_var: str | None = Field(None, description="Env var holding the API key")
    mask_encoding: MaskEncoding | None = Field(
        None, description="Override the adapter's default mask polarity",
    )
    limits: BackendLimits = Field(default_factory=BackendLimits)
    max_images: int = Field(1, ge=1, description="Artifacts requested per call")
    request_timeout_seconds: float = Field(120.0, gt=0, description="Per-HTTP-call timeout")
    max_retries: int = Field(3, ge=1, description="Max attempts for the submit call")
    retry_delay_seconds: float = Field(1.0, ge=0, description="Exponential backoff base")
    poll_interval_seconds: float = Field(1.0, gt=0, description="Status check interval (polling only)")
    poll_timeout_seconds: float = Field(60.0, gt=0, description="Wall-clock polling budget (polling only)")
    style_presets: list[str] = Field(default_factory=list, description="Accepted style names")
    default_style: str | None = None
    default_options: dict[str, Any] = Field(
        default_factory=dict, description="Tuning defaults merged under per-request options",
    )

    @property
    def encoding(self) -> MaskEncoding:
        return self.mask_encoding or _DEFAULT_ENCODINGS[self.kind]

    def secret(self) -> str | None:
        return self.api_key.get_secret_value() if self.api_key is not None else None


def default_backends() -> dict[str, BackendConfig]:
    """Built-in backends."""
    return {
        "stabilityai": BackendConfig(
            kind=BackendKind.grayscale,
            display_name="Stability AI",
            endpoint="https://api.stability.ai",
            model="stable-diffusion-xl-1024-v1-0",
            api_key_env_var="STABILITY_API_KEY",
            limits=BackendLimits(
                pixel_multiple=64,
                min_resolution=262144,
                max_resolution=1048576,
                min_dimension=256,
                max_dimension=2048,
                max_aspect_ratio=4.0,
                max_file_size=10 * 1024 * 1024,
            ),
            max_images=5,
            style_presets=[
                "enhance", "anime", "photographic", "digital-art", "comic-book",
                "fantasy-art", "line-art", "analog-film", "neon-punk", "isometric",
                "low-poly", "origami", "modeling-compound", "cinematic", "3d-model",
                "pixel-art",
            ],
            default_style="photographic",
            default_options={"cfg_scale": 7.0, "steps": 30},
        ),
        "recraft": BackendConfig(
            kind=BackendKind.inpaint,
            display_name="Recraft AI",
            endpoint="https://external.api.recraft.ai/v1",
            model="recraftv3",
            api_key_env_var="RECRAFT_API_KEY",
            limits=BackendLimits(
                supported_sizes=[
                    "1024x1024", "1365x1024", "1024x1365", "1536x1024", "1024x1536",
                    "1820x1024", "1024x1820", "1024x2048", "2048x1024", "1434x1024",
                    "1024x1434", "1024x1280", "1280x1024", "1024x1707", "1707x1024",
                ],
                min_input_dimension=256,
                max_input_dimension=4096,
                max_input_resolution=16 * 1024 * 1024,
                max_file_size=5 * 1024 * 1024,
            ),
            max_images=1,
            default_style="realistic_image",
        ),
        "openai": BackendConfig(
            kind=BackendKind.alpha,
            display_name="OpenAI image edits",
            endpoint="https://api.openai.com/v1",
            model="gpt-image-1",
            api_key_env_var="OPENAI_API_KEY",
            limits=BackendLimits(
                supported_sizes=["256x256", "512x512", "1024x1024"],
                max_file_size=4 * 1024 * 1024,
            ),
            max_images=3,
        ),
        "replicate": BackendConfig(
            kind=BackendKind.polling,
            display_name="Replicate SDXL inpainting",
            endpoint="https://api.replicate.com/v1",
            model="stability-ai/sdxl-inpainting",
            api_key_env_var="REPLICATE_API_TOKEN",
            limits=BackendLimits(
                pixel_multiple=8,
                min_resolution=262144,
                max_resolution=1048576,
                min_dimension=256,
                max_dimension=2048,
                max_input_dimension=4096,
                max_file_size=10 * 1024 * 1024,
            ),
            max_images=1,
            poll_interval_seconds=1.0,
            poll_timeout_seconds=60.0,
            default_options={"cfg_scale": 7.5, "steps": 25},
        ),
    }


class MaskEditConfig(BaseModel):
    """Top-level configuration for maskedit."""

    default_backend: str = Field("stabilityai", description="Backend used when none is named")
    backends: dict[str, BackendConfig] = Field(default_factory=default_backends)
    max_workers: int = Field(4, ge=1, description="Threads for per-artifact post-processing")

    @model_validator(mode="after")
    def _check_default(self) -> MaskEditConfig:
        if self.default_backend not in self.backends:
            raise ValueError(
                f"default_backend {self.default_backend!r} is not configured "
                f"(known: {sorted(self.backends)})"
            )
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> MaskEditConfig:
        """Load configuration from a YAML file.

        Entries under ``backends`` are deep-merged over the built-in backends,
        so a file only needs to list the fields it changes.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MaskEditConfig:
        merged = dict(data)
        builtin = {name: cfg.model_dump() for name, cfg in default_backends().items()}
        overrides = merged.get("backends") or {}
        merged["backends"] = _deep_merge(builtin, overrides)
        return cls.model_validate(merged)

    @classmethod
    def default(cls) -> MaskEditConfig:
        """Return configuration with all defaults."""
        return cls()

    def with_env_credentials(self, environ: Mapping[str, str] | None = None) -> MaskEditConfig:
        """Return a copy with missing API keys filled from *environ*."""
        env = os.environ if environ is None else environ
        backends: dict[str, BackendConfig] = {}
        for name, backend in self.backends.items():
            if backend.api_key is None and backend.api_key_env_var:
                value = env.get(backend.api_key_env_var)
                if value:
                    backend = backend.model_copy(update={"api_key": SecretStr(value)})
            backends[name] = backend
        return self.model_copy(update={"backends": backends})


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
