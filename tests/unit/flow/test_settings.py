"""
Unit tests for FlowSettings / FlowRuntimeSettings.
"""

import pytest
from pydantic import ValidationError

from stream_connectors.flow import FlowRuntimeSettings, FlowSettings


def test_defaults():
    s = FlowSettings()
    assert s.batch_size == 10
    assert s.max_retry == 100
    assert s.retry_interval == 5.0
    assert s.retry_on_partial_failure is True
    assert s.flush_interval is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"batch_size": 0},
        {"max_retry": -1},
        {"retry_interval": -0.5},
        {"flush_interval": 0},
        {"drain_timeout": 0},
        {"unknown_option": 1},
    ],
)
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ValidationError):
        FlowSettings(**kwargs)


def test_settings_are_immutable():
    s = FlowSettings(batch_size=5)
    with pytest.raises(ValidationError):
        s.batch_size = 6


def test_runtime_settings_from_env(monkeypatch):
    monkeypatch.setenv("FLOW_BATCH_SIZE", "7")
    monkeypatch.setenv("FLOW_MAX_RETRY", "0")
    monkeypatch.setenv("FLOW_RETRY_ON_PARTIAL_FAILURE", "false")

    s = FlowRuntimeSettings().flow_settings()

    assert s == FlowSettings(batch_size=7, max_retry=0, retry_on_partial_failure=False)


def test_runtime_settings_validated_on_conversion(monkeypatch):
    monkeypatch.setenv("FLOW_BATCH_SIZE", "0")
    with pytest.raises(ValidationError):
        FlowRuntimeSettings().flow_settings()
