"""Tests for engine settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sheetwriter.modules.templating.config import EngineSettings, GenerationMode
from sheetwriter.modules.templating.errors import ConfigurationError


def test_streaming_is_the_default():
    settings = EngineSettings()

    assert settings.generation_mode is GenerationMode.STREAMING
    assert settings.streaming


def test_settings_accept_strings():
    assert EngineSettings(generation_mode="DIRECT").generation_mode is GenerationMode.DIRECT


def test_unknown_mode_raises():
    with pytest.raises(ConfigurationError):
        EngineSettings(generation_mode="buffered")


def test_from_mapping_ignores_unknown_keys():
    settings = EngineSettings.from_mapping({"generation_mode": "direct", "colour": "blue"})

    assert not settings.streaming
    assert EngineSettings.from_mapping(None) == EngineSettings()


def test_from_env():
    assert EngineSettings.from_env({"SHEETWRITER_GENERATION_MODE": " direct "}).generation_mode is GenerationMode.DIRECT
    assert EngineSettings.from_env({}).streaming
    with pytest.raises(ConfigurationError):
        EngineSettings.from_env({"SHEETWRITER_GENERATION_MODE": "sideways"})


def test_settings_read_the_process_environment(monkeypatch):
    monkeypatch.setenv("SHEETWRITER_GENERATION_MODE", "direct")

    assert EngineSettings().generation_mode is GenerationMode.DIRECT
    assert EngineSettings.from_env().generation_mode is GenerationMode.DIRECT


def test_invalid_environment_value_raises_configuration_error(monkeypatch):
    monkeypatch.setenv("SHEETWRITER_GENERATION_MODE", "sideways")

    with pytest.raises(ConfigurationError):
        EngineSettings()


def test_settings_are_frozen():
    settings = EngineSettings()

    with pytest.raises(ValidationError):
        settings.generation_mode = GenerationMode.DIRECT
