import pytest

import config


def test_policy_defaults_when_unset(monkeypatch):
    monkeypatch.delenv("UNKNOWN_MEMBER_POLICY", raising=False)

    assert config.read_policy("UNKNOWN_MEMBER_POLICY", "warn") == "warn"


def test_policy_is_case_insensitive(monkeypatch):
    monkeypatch.setenv("SPLIT_TOTAL_POLICY", " Strict ")

    assert config.read_policy("SPLIT_TOTAL_POLICY", "ignore") == "strict"


def test_mistyped_policy_names_the_variable(monkeypatch):
    monkeypatch.setenv("UNKNOWN_MEMBER_POLICY", "warning")

    with pytest.raises(ValueError) as exc_info:
        config.read_policy("UNKNOWN_MEMBER_POLICY", "warn")

    message = str(exc_info.value)
    assert "UNKNOWN_MEMBER_POLICY" in message
    assert "ignore, warn, strict" in message
    assert "'warning'" in message
