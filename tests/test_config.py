"""Tests for maskedit.config."""

from __future__ import annotations

import pytest
from pydantic import SecretStr, ValidationError

from maskedit.config import BackendConfig, BackendKind, BackendLimits, MaskEditConfig
from maskedit.types import MaskEncoding, WorkingGeometry


class TestBackendLimits:
    def test_defaults(self):
        limits = BackendLimits()
        assert limits.pixel_multiple == 1
        assert limits.catalog is None

    def test_catalog(self):
        limits = BackendLimits(supported_sizes=["256x256", "512x256"])
        assert limits.catalog == [WorkingGeometry(256, 256), WorkingGeometry(512, 256)]

    def test_bad_catalog_entry(self):
        with pytest.raises(ValidationError):
            BackendLimits(supported_sizes=["big"])

    def test_empty_catalog(self):
        with pytest.raises(ValidationError):
            BackendLimits(supported_sizes=[])

    def test_inverted_ranges(self):
        with pytest.raises(ValidationError):
            BackendLimits(min_resolution=10, max_resolution=5)
        with pytest.raises(ValidationError):
            BackendLimits(min_dimension=100, max_dimension=50)


class TestBackendConfig:
    def test_default_encoding_per_kind(self):
        assert BackendConfig(kind=BackendKind.grayscale).encoding is MaskEncoding.grayscale_white_edit
        assert BackendConfig(kind=BackendKind.inpaint).encoding is MaskEncoding.grayscale_white_edit
        assert BackendConfig(kind=BackendKind.alpha).encoding is MaskEncoding.alpha
        assert BackendConfig(kind=BackendKind.polling).encoding is MaskEncoding.grayscale_white_edit

    def test_encoding_override(self):
        cfg = BackendConfig(mask_encoding=MaskEncoding.grayscale_white_keep)
        assert cfg.encoding is MaskEncoding.grayscale_white_keep

    def test_secret(self):
        assert BackendConfig().secret() is None
        cfg = BackendConfig(api_key="abc")
        assert cfg.secret() == "abc"
        assert "abc" not in repr(cfg)


class TestMaskEditConfig:
    def test_default(self):
        cfg = MaskEditConfig.default()
        assert cfg.default_backend == "stabilityai"
        assert list(cfg.backends) == ["stabilityai", "recraft", "openai", "replicate"]
        assert cfg.backends["openai"].limits.supported_sizes is not None

    def test_recraft_builtin(self):
        recraft = MaskEditConfig.default().backends["recraft"]
        assert recraft.kind is BackendKind.inpaint
        assert recraft.encoding is MaskEncoding.grayscale_white_edit
        assert recraft.endpoint == "https://external.api.recraft.ai/v1"
        assert recraft.model == "recraftv3"
        assert recraft.default_style == "realistic_image"
        assert recraft.api_key_env_var == "RECRAFT_API_KEY"
        assert recraft.limits.supported_sizes[:3] == ["1024x1024", "1365x1024", "1024x1365"]
        assert recraft.limits.max_file_size == 5 * 1024 * 1024
        assert recraft.limits.max_input_resolution == 16 * 1024 * 1024
        assert (recraft.limits.min_input_dimension, recraft.limits.max_input_dimension) == (256, 4096)

    def test_unknown_default_backend(self):
        with pytest.raises(ValidationError, match="default_backend"):
            MaskEditConfig(default_backend="midjourney")

    def test_from_yaml_merges_over_builtins(self, tmp_path):
        yaml_path = tmp_path / "config.yaml"
        yaml_path.write_text(
            "default_backend: replicate\n"
            "backends:\n"
            "  replicate:\n"
            "    poll_timeout_seconds: 120\n"
            "    limits:\n"
            "      pixel_multiple: 16\n"
            "  local:\n"
            "    kind: grayscale\n"
            "    endpoint: http://localhost:7860\n"
        )
        cfg = MaskEditConfig.from_yaml(yaml_path)
        replicate = cfg.backends["replicate"]
        assert cfg.default_backend == "replicate"
        assert replicate.poll_timeout_seconds == 120
        assert replicate.limits.pixel_multiple == 16
        # Other fields keep defaults
        assert replicate.limits.max_resolution == 1048576
        assert replicate.api_key_env_var == "REPLICATE_API_TOKEN"
        assert cfg.backends["local"].endpoint == "http://localhost:7860"
        assert "stabilityai" in cfg.backends

    def test_empty_yaml(self, tmp_path):
        yaml_path = tmp_path / "config.yaml"
        yaml_path.write_text("")
        assert MaskEditConfig.from_yaml(yaml_path).default_backend == "stabilityai"

    def test_with_env_credentials(self):
        cfg = MaskEditConfig.default().with_env_credentials({"OPENAI_API_KEY": "sk-env"})
        assert cfg.backends["openai"].secret() == "sk-env"
        assert cfg.backends["stabilityai"].api_key is None

    def test_explicit_key_not_overridden(self):
        cfg = MaskEditConfig.default()
        cfg.backends["openai"] = cfg.backends["openai"].model_copy(
            update={"api_key": SecretStr("explicit")}
        )
        cfg = cfg.with_env_credentials({"OPENAI_API_KEY": "sk-env"})
        assert cfg.backends["openai"].secret() == "explicit"
