"""Tests for configuration parsing helpers."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from kvdb.core.config import AppSettings, Settings, parse_listen_address, parse_origins
from kvdb.utils.intervals import CLEANUP_DISABLED, parse_interval


class TestParseInterval:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("3600", timedelta(hours=1)),
            ("30 days", timedelta(days=30)),
            ("1 hour 30 minutes", timedelta(minutes=90)),
            ("90s", timedelta(seconds=90)),
            ("2 weeks, 3 days", timedelta(days=17)),
            ("1 Day", timedelta(days=1)),
            ("1 month", timedelta(days=30)),
            ("2 mons", timedelta(days=60)),
            ("1 year", timedelta(days=365.25)),
            ("1 day 02:00:00", timedelta(days=1, hours=2)),
            ("01:30", timedelta(minutes=90)),
            ("1 week 00:00:30.5", timedelta(weeks=1, seconds=30.5)),
        ],
    )
    def test_valid_expressions(self, text: str, expected: timedelta) -> None:
        assert parse_interval(text) == expected

    @pytest.mark.parametrize("text", [None, "", "  ", CLEANUP_DISABLED])
    def test_disabled_values(self, text) -> None:
        assert parse_interval(text) is None

    @pytest.mark.parametrize(
        "text",
        ["soon", "3 fortnights", "days 3", "0", "-5", "1 day garbage", "1:75", "inf"],
    )
    def test_invalid_expressions(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_interval(text)


def test_parse_origins_trims_and_drops_empty() -> None:
    assert parse_origins(" https://a.com , ,*.b.org,") == ["https://a.com", "*.b.org"]
    assert parse_origins(None) == []


def test_parse_listen_address() -> None:
    assert parse_listen_address("0.0.0.0:3005") == ("0.0.0.0", 3005)
    assert parse_listen_address("[::1]:8080") == ("::1", 8080)

    with pytest.raises(ValueError):
        parse_listen_address("localhost")
    with pytest.raises(ValueError):
        parse_listen_address("localhost:99999")


class TestAppSettings:
    def test_cleanup_disabled_by_default(self) -> None:
        cfg = AppSettings(max_value_length=10, max_key_name_length=10)

        assert cfg.listen_on == "0.0.0.0:3005"
        assert cfg.retention_threshold is None
        assert cfg.cleanup_enabled is False

    def test_cleanup_needs_interval_and_retention(self) -> None:
        only_retention = AppSettings(
            max_value_length=10, max_key_name_length=10, delete_unused_keys_after="7 days"
        )
        both = AppSettings(
            max_value_length=10,
            max_key_name_length=10,
            delete_unused_keys_after="7 days",
            key_cleanup_every_s=60,
        )

        assert only_retention.cleanup_enabled is False
        assert both.cleanup_enabled is True
        assert both.retention_threshold == timedelta(days=7)

    def test_invalid_retention_fails_at_load(self) -> None:
        with pytest.raises(ValidationError):
            AppSettings(
                max_value_length=10, max_key_name_length=10, delete_unused_keys_after="whenever"
            )

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CORS_ORIGINS", "https://a.com,*.b.org")
        monkeypatch.setenv("MAX_VALUE_LENGTH", "123")

        cfg = AppSettings()  # type: ignore[call-arg]

        assert cfg.allowed_origins == ["https://a.com", "*.b.org"]
        assert cfg.max_value_length == 123


def test_sanitized_redacts_database_url(make_settings) -> None:
    cfg: Settings = make_settings()

    dumped = cfg.sanitized()

    assert dumped["database"]["url"] == "REDACTED"
    assert "kvdb.db" not in str(dumped)
