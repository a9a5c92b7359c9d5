"""Tests for maskedit.providers.factory and the request state machine."""

from __future__ import annotations

import pytest
from pydantic import SecretStr

from maskedit.config import MaskEditConfig
from maskedit.errors import RemoteAuthError
from maskedit.providers import (
    AdapterState,
    AlphaMaskProvider,
    EditJob,
    GrayscaleBinaryProvider,
    InpaintProvider,
    PollingProvider,
    ProviderFactory,
)


@pytest.fixture
def config() -> MaskEditConfig:
    return MaskEditConfig.default().with_env_credentials({
        "STABILITY_API_KEY": "sk-stab",
        "RECRAFT_API_KEY": "rc-key",
        "OPENAI_API_KEY": "sk-oai",
        "REPLICATE_API_TOKEN": "r8-token",
    })


class TestProviderFactory:
    def test_supported_backends(self, config):
        assert ProviderFactory(config).supported_backends() == ["stabilityai", "recraft", "openai", "replicate"]

    @pytest.mark.parametrize("name,cls", [
        ("stabilityai", GrayscaleBinaryProvider),
        ("recraft", InpaintProvider),
        ("openai", AlphaMaskProvider),
        ("replicate", PollingProvider),
    ])
    def test_get_provider(self, config, session, name, cls):
        provider = ProviderFactory(config, session).get_provider(name)
        assert isinstance(provider, cls)
        assert provider.name == name
        assert provider.session is session

    def test_default_provider(self, config, session):
        provider = ProviderFactory(config, session).default_provider()
        assert provider.name == "stabilityai"
        assert ProviderFactory(config, session).get_provider().name == "stabilityai"

    def test_unknown_backend(self, config):
        with pytest.raises(ValueError, match="Unknown inpainting backend: 'dalle'"):
            ProviderFactory(config).get_provider("dalle")

    def test_missing_credentials(self):
        with pytest.raises(RemoteAuthError):
            ProviderFactory(MaskEditConfig.default()).get_provider("openai")

    def test_planning_without_credentials(self):
        provider = ProviderFactory(MaskEditConfig.default()).get_provider(
            "openai", require_credentials=False,
        )
        assert isinstance(provider, AlphaMaskProvider)

    def test_fresh_adapter_per_call(self, config, session):
        factory = ProviderFactory(config, session)
        assert factory.get_provider("openai") is not factory.get_provider("openai")

    def test_custom_backend_from_config(self, session):
        config = MaskEditConfig.from_mapping({
            "backends": {"local": {
                "kind": "grayscale",
                "endpoint": "http://localhost:7860",
                "api_key": "local",
            }},
        })
        provider = ProviderFactory(config, session).get_provider("local")
        assert isinstance(provider, GrayscaleBinaryProvider)
        assert provider.config.api_key == SecretStr("local")


class TestEditJob:
    def test_starts_validating(self):
        assert EditJob(backend="x").state is AdapterState.validating

    def test_illegal_transition(self):
        job = EditJob(backend="x")
        with pytest.raises(RuntimeError, match="Illegal state transition"):
            job.transition(AdapterState.calling_remote)

    def test_failed_from_anywhere_is_final(self):
        job = EditJob(backend="x")
        job.transition(AdapterState.encoding)
        job.transition(AdapterState.failed)
        job.transition(AdapterState.failed)
        assert job.history == [AdapterState.validating, AdapterState.encoding, AdapterState.failed]
        with pytest.raises(RuntimeError):
            job.transition(AdapterState.done)
