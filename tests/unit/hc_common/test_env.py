"""Tests for environment setting readers."""

from __future__ import annotations

import logging

import pytest

from hc_common.config.env import env_flag, env_number


pytestmark = pytest.mark.unit_common


@pytest.mark.parametrize(
    "raw, expected",
    [("1", True), ("TRUE", True), (" yes ", True), ("on", True), ("0", False), ("nope", False), ("  ", None)],
)
def test_env_flag(monkeypatch: pytest.MonkeyPatch, raw: str, expected) -> None:
    monkeypatch.setenv("HC_TEST_FLAG", raw)
    assert env_flag("HC_TEST_FLAG") is expected


def test_env_flag_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HC_TEST_FLAG", raising=False)
    assert env_flag("HC_TEST_FLAG") is None


def test_env_number_parses_with_kind(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HC_TEST_INT", " 8 ")
    monkeypatch.setenv("HC_TEST_FLOAT", "2.5")
    assert env_number("HC_TEST_INT", int) == 8
    assert env_number("HC_TEST_FLOAT", float) == 2.5


def test_env_number_ignores_malformed_value(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setenv("HC_TEST_INT", "eight")
    with caplog.at_level(logging.WARNING, logger="hc_common.config.env"):
        assert env_number("HC_TEST_INT", int) is None
    assert "HC_TEST_INT" in caplog.text


def test_env_number_unset_or_blank(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HC_TEST_INT", raising=False)
    assert env_number("HC_TEST_INT", int) is None
    monkeypatch.setenv("HC_TEST_INT", "")
    assert env_number("HC_TEST_INT", int) is None
