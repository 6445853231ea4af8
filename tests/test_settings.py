from __future__ import annotations

import pytest

from leasegate import GateSettings


def test_defaults_match_documented_policy():
    settings = GateSettings()
    assert settings.lease_duration_s == 15.0
    assert settings.staleness_threshold_s == 900.0
    assert settings.retry_jitter_min_s == 0.25
    assert settings.retry_jitter_max_s == 1.0
    assert settings.acquire_timeout_s is None
    assert settings.lock_suffix == "-lock"
    assert settings.flag_suffix == "-flag"
    assert settings.log_lock_events is True


def test_from_env_reads_overrides(monkeypatch):
    monkeypatch.setenv("LEASEGATE_LEASE_DURATION_S", "30")
    monkeypatch.setenv("LEASEGATE_STALENESS_THRESHOLD_S", "120")
    monkeypatch.setenv("LEASEGATE_RETRY_JITTER_MIN_S", "0.1")
    monkeypatch.setenv("LEASEGATE_RETRY_JITTER_MAX_S", "0.5")
    monkeypatch.setenv("LEASEGATE_ACQUIRE_TIMEOUT_S", "10")
    monkeypatch.setenv("LEASEGATE_LOG_LOCK_EVENTS", "false")

    settings = GateSettings.from_env()

    assert settings.lease_duration_s == 30.0
    assert settings.staleness_threshold_s == 120.0
    assert settings.retry_jitter_min_s == 0.1
    assert settings.retry_jitter_max_s == 0.5
    assert settings.acquire_timeout_s == 10.0
    assert settings.log_lock_events is False


def test_from_env_blank_timeout_means_unbounded(monkeypatch):
    for name in (
        "LEASEGATE_LEASE_DURATION_S",
        "LEASEGATE_STALENESS_THRESHOLD_S",
        "LEASEGATE_RETRY_JITTER_MIN_S",
        "LEASEGATE_RETRY_JITTER_MAX_S",
        "LEASEGATE_LOG_LOCK_EVENTS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LEASEGATE_ACQUIRE_TIMEOUT_S", "  ")

    assert GateSettings.from_env() == GateSettings()


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"lease_duration_s": 0}, "lease_duration_s"),
        ({"staleness_threshold_s": -1}, "staleness_threshold_s"),
        ({"retry_jitter_min_s": -0.1}, "retry_jitter_min_s"),
        ({"retry_jitter_min_s": 2.0, "retry_jitter_max_s": 1.0}, "retry_jitter_max_s"),
        ({"acquire_timeout_s": 0}, "acquire_timeout_s"),
        ({"flag_suffix": "-lock"}, "must differ"),
        ({"lock_suffix": ""}, "non-empty"),
    ],
)
def test_invalid_settings_are_rejected(overrides, message):
    with pytest.raises(ValueError, match=message):
        GateSettings(**overrides)
