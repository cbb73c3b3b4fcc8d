"""Tests for action script validation."""
from __future__ import annotations

import pytest

from script_compiler.errors import SchemaValidationError
from script_compiler.models import ActionScript, ClickAction, GotoAction, SleepAction
from script_compiler.schema import collect_errors, validate_script


def _payload(*actions):
    return {"version": "1.0.0", "actions": list(actions)}


def test_validate_script_builds_typed_actions():
    script = validate_script(_payload(
        {"type": "goto", "url": "https://example.com"},
        {"type": "click", "selector": "#login"},
        {"type": "sleep", "milliseconds": 250},
    ))

    assert script.version == "1.0.0"
    assert script.actions == [
        GotoAction(url="https://example.com"),
        ClickAction(selector="#login"),
        SleepAction(milliseconds=250),
    ]


def test_empty_action_list_is_valid():
    assert validate_script(_payload()).actions == []


def test_round_trip_keeps_every_field():
    raw = _payload(
        {"type": "goto", "url": "https://example.com/?q=a'b"},
        {"type": "click", "selector": "text=\"Sign in\""},
        {"type": "sleep", "milliseconds": 1500.5},
    )
    script = validate_script(raw)

    assert script.to_dict() == raw
    assert ActionScript.from_dict(script.to_dict()) == script


@pytest.mark.parametrize("version", ["2.0.0", "1.0", "", None, 1])
def test_unsupported_version_is_rejected(version):
    with pytest.raises(SchemaValidationError) as excinfo:
        validate_script({"version": version, "actions": []})
    assert any("version" in message for message in excinfo.value.errors)


def test_unknown_action_type_is_rejected():
    with pytest.raises(SchemaValidationError) as excinfo:
        validate_script(_payload({"type": "hover", "selector": "#menu"}))
    assert "actions->0" in str(excinfo.value)


def test_missing_required_field_is_reported_once():
    errors = collect_errors(_payload({"type": "click"}))
    assert len(errors) == 1
    assert "'selector' is a required property" in errors[0]


def test_action_without_type_only_reports_missing_type():
    errors = collect_errors(_payload({"url": "https://example.com"}))
    assert errors == ["at `actions->0`: 'type' is a required property"]


@pytest.mark.parametrize("action", [
    {"type": "goto", "url": 42},
    {"type": "click", "selector": None},
    {"type": "sleep", "milliseconds": "100"},
    {"type": "sleep", "milliseconds": True},
    {"type": "sleep", "milliseconds": -1},
])
def test_wrong_primitive_types_are_rejected(action):
    with pytest.raises(SchemaValidationError):
        validate_script(_payload(action))


def test_extra_fields_are_rejected():
    with pytest.raises(SchemaValidationError):
        validate_script(_payload({"type": "goto", "url": "https://example.com", "timeout": 5}))
    with pytest.raises(SchemaValidationError):
        validate_script({"version": "1.0.0", "actions": [], "name": "extra"})


@pytest.mark.parametrize("payload", [None, [], "script", {"version": "1.0.0"}])
def test_non_script_payloads_are_rejected(payload):
    with pytest.raises(SchemaValidationError):
        validate_script(payload)
