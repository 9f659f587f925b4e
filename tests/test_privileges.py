"""Tests for the privileged-sender allow-list."""

from __future__ import annotations

from dynamic_chat.privileges import PrivilegePolicy, normalize_username
from chat_fixtures import MATRIX_SENDER, MATRIX_VIEWER, make_settings


def test_normalize_username() -> None:
    assert normalize_username("  @Operator:Example.org ") == "@operator:example.org"
    assert normalize_username("   ") is None


def test_build_drops_blank_entries() -> None:
    policy = PrivilegePolicy.build(["Alice", " ", "", "BOB "], restricted=True)
    assert policy.allowed_users == frozenset({"alice", "bob"})


def test_restricted_policy_checks_allowlist() -> None:
    """Only listed senders are privileged, compared case-insensitively."""
    policy = PrivilegePolicy.build([MATRIX_SENDER.upper()], restricted=True)
    assert policy.is_privileged(MATRIX_SENDER)
    assert not policy.is_privileged(MATRIX_VIEWER)


def test_unrestricted_policy_allows_everyone() -> None:
    policy = PrivilegePolicy.build([], restricted=False)
    assert policy.is_privileged(MATRIX_VIEWER)
    assert policy.is_privileged("")


def test_restricted_with_empty_allowlist() -> None:
    policy = PrivilegePolicy.build([], restricted=True)
    assert not policy.is_privileged(MATRIX_SENDER)


def test_from_settings() -> None:
    settings = make_settings(
        debug_commands_allowed_users=[MATRIX_SENDER],
        restrict_debug_commands_to_allowed_users=False,
    )
    policy = PrivilegePolicy.from_settings(settings)
    assert policy.restricted is False
    assert policy.allowed_users == frozenset({MATRIX_SENDER})
