"""Shared test fixtures for maskedit."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import numpy as np
import pytest
import requests
from pydantic import SecretStr

from maskedit.config import BackendConfig, default_backends
from maskedit.types import CanonicalMask, RasterImage
from maskedit.utils.image import encode_png

TEST_API_KEY = "sk-test-123456"


def png_b64(image: RasterImage) -> str:
    return base64.b64encode(encode_png(image)).decode("ascii")


def solid_image(width: int, height: int, color=(200, 30, 30)) -> RasterImage:
    pixels = np.zeros((height, width, len(color)), dtype=np.uint8)
    pixels[:, :] = color
    return RasterImage(pixels)


def noise_image(width: int, height: int, channels: int = 3, seed: int = 0) -> RasterImage:
    rng = np.random.default_rng(seed)
    return RasterImage(rng.integers(0, 256, (height, width, channels), dtype=np.uint8))


def box_mask(width: int, height: int, box: tuple[int, int, int, int]) -> CanonicalMask:
    """CanonicalMask with the (x0, y0, x1, y1) rectangle marked for editing."""
    x0, y0, x1, y1 = box
    edit = np.zeros((height, width), dtype=bool)
    edit[y0:y1, x0:x1] = True
    return CanonicalMask.from_bool(edit)


def make_response(
    status_code: int = 200,
    json_body=None,
    content: bytes = b"",
    text: str = "",
) -> MagicMock:
    """A stand-in for ``requests.Response``."""
    response = MagicMock()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Error"
    response.content = content
    response.text = text
    if json_body is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = json_body
    return response


def _with_test_key(config: BackendConfig, **overrides) -> BackendConfig:
    update = {"api_key": SecretStr(TEST_API_KEY), "retry_delay_seconds": 0.0}
    update.update(overrides)
    return config.model_copy(update=update)


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def stability_config() -> BackendConfig:
    return _with_test_key(default_backends()["stabilityai"])


@pytest.fixture
def openai_config() -> BackendConfig:
    return _with_test_key(default_backends()["openai"])


@pytest.fixture
def replicate_config() -> BackendConfig:
    return _with_test_key(
        default_backends()["replicate"],
        poll_interval_seconds=0.01,
        poll_timeout_seconds=5.0,
    )


@pytest.fixture
def recraft_config() -> BackendConfig:
    return _with_test_key(default_backends()["recraft"])
