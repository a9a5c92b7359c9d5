"""Tests for maskedit.providers.alpha."""

from __future__ import annotations

import numpy as np
import pytest

from maskedit.errors import RemoteApiError
from maskedit.providers.alpha import AlphaMaskProvider
from maskedit.types import EditOptions, EditRequest, MaskEncoding
from maskedit.utils.image import decode_image, encode_png

from tests.conftest import box_mask, make_response, noise_image, png_b64, solid_image


@pytest.fixture
def provider(openai_config, session):
    return AlphaMaskProvider("openai", openai_config, session)


@pytest.fixture
def landscape_request():
    return EditRequest(
        original_image=noise_image(1000, 667, seed=11),
        user_mask=box_mask(1000, 667, (400, 200, 600, 400)),
        prompt="a wooden bench",
    )


class TestConstruction:
    def test_requires_alpha_encoding(self, openai_config):
        cfg = openai_config.model_copy(update={"mask_encoding": MaskEncoding.grayscale_white_edit})
        with pytest.raises(ValueError, match="alpha"):
            AlphaMaskProvider("openai", cfg)


class TestEncodeRequest:
    def test_catalog_size_and_letterbox(self, provider, landscape_request):
        prepared = provider.plan(landscape_request)
        assert str(prepared.geometry) == "1024x1024"
        assert prepared.content_box.y == 170

        payload = provider.encode_request(prepared)
        assert payload["data"]["size"] == "1024x1024"
        assert payload["data"]["model"] == "gpt-image-1"
        assert payload["data"]["n"] == "3"

        mask = decode_image(payload["files"]["mask"][1], what="mask")
        assert mask.channels == 4
        assert mask.size == (1024, 1024)
        assert mask.pixels[0, 0, 3] == 255  # letterbox: preserve
        assert mask.pixels[170 + 300, 512, 3] == 0  # inside the edit box
        image = decode_image(payload["files"]["image"][1])
        assert image.pixels[0, 0, 3] == 0  # transparent padding

    def test_options_forwarded(self, provider, landscape_request):
        req = EditRequest(
            landscape_request.original_image, landscape_request.user_mask, "x",
            EditOptions(samples=1, quality="high"),
        )
        data = provider.encode_request(provider.plan(req))["data"]
        assert data["n"] == "1"
        assert data["quality"] == "high"

    def test_unsupported_options_not_sent(self, provider, landscape_request):
        req = EditRequest(
            landscape_request.original_image, landscape_request.user_mask, "x",
            EditOptions(style="realistic_image", substyle="hdr", negative_prompt="fog", seed=3),
        )
        data = provider.encode_request(provider.plan(req))["data"]
        assert set(data) == {"prompt", "model", "n", "size"}


class TestEditImage:
    def test_b64_response(self, provider, session, landscape_request):
        session.request.return_value = make_response(json_body={"data": [
            {"b64_json": png_b64(noise_image(1024, 1024, seed=12))},
            {"b64_json": png_b64(noise_image(1024, 1024, seed=13))},
        ]})
        results = provider.edit_image(landscape_request)
        assert [r.sequence_number for r in results] == [1, 2]
        for result in results:
            assert result.pixels.size == (1000, 667)
            keep = ~landscape_request.user_mask.edit_region
            original = landscape_request.original_image.with_alpha().pixels
            assert np.array_equal(result.pixels.pixels[keep], original[keep])

        method, url = session.request.call_args.args
        assert (method, url) == ("POST", "https://api.openai.com/v1/images/edits")

    def test_url_response_downloaded(self, provider, session):
        generated = encode_png(solid_image(256, 256, (0, 0, 255)))

        def fake_request(method, url, **kwargs):
            if url.endswith("/images/edits"):
                return make_response(json_body={"data": [{"url": "https://cdn.example/img.png"}]})
            assert "Authorization" not in kwargs["headers"]
            return make_response(content=generated)

        session.request.side_effect = fake_request
        req = EditRequest(solid_image(256, 256), box_mask(256, 256, (0, 0, 256, 256)), "sky")
        result = provider.edit_image(req)[0]
        assert result.pixels.pixels[5, 5].tolist() == [0, 0, 255, 255]

    def test_download_failure_skips_artifact(self, provider, session):
        def fake_request(method, url, **kwargs):
            if url.endswith("/images/edits"):
                return make_response(json_body={"data": [
                    {"url": "https://cdn.example/gone.png"},
                    {"b64_json": png_b64(solid_image(256, 256, (1, 2, 3)))},
                ]})
            return make_response(404, text="not found")

        session.request.side_effect = fake_request
        req = EditRequest(solid_image(256, 256), box_mask(256, 256, (0, 0, 10, 10)), "x")
        job = provider.run(req)
        assert len(job.results) == 1
        assert job.results[0].metadata["backend_index"] == 2
        assert "404" in job.failures[0].reason

    def test_empty_data(self, provider, session, landscape_request):
        session.request.return_value = make_response(json_body={"data": []})
        with pytest.raises(RemoteApiError):
            provider.edit_image(landscape_request)
