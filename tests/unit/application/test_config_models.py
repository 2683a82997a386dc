"""Tests for configuration models."""

import pytest
from pydantic import ValidationError

from cwf.application.config_models import EngineSettings, RetrievalConfig, RetryConfig


class TestConfigModels:
    def test_defaults(self) -> None:
        settings = EngineSettings()

        assert settings.retry == RetryConfig(attempts=2, delay_seconds=0.5)
        assert settings.retrieval == RetrievalConfig()
        assert settings.templates_file is None

    @pytest.mark.parametrize(
        "data",
        [
            {"retry": {"attempts": 0}},
            {"retry": {"delay_seconds": -1}},
            {"retrieval": {"global_limit": -1}},
            {"retrieval": {"unknown": 1}},
            {"extra": True},
        ],
    )
    def test_invalid(self, data) -> None:
        with pytest.raises(ValidationError):
            EngineSettings.model_validate(data)

    def test_zero_history_limit_allowed(self) -> None:
        assert RetrievalConfig(history_limit=0).history_limit == 0
