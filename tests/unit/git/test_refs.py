"""Tests for branch and ref name validation."""

import pytest

from harbinger.core.errors import InvalidRefNameError
from harbinger.git.refs import is_valid_ref_name, validate_ref_name


@pytest.mark.parametrize("name", [
    "main",
    "feature/login",
    "origin/release-1.2",
    "v1.0.0",
    "user_branch",
])
def test_valid_names_pass_through(name):
    assert validate_ref_name(name) == name
    assert is_valid_ref_name(name)


@pytest.mark.parametrize("name, reason", [
    ("", "empty"),
    ("feature;rm -rf", "';'"),
    ("a&b", "'&'"),
    ("a|b", "'|'"),
    ("$(whoami)", "'$'"),
    ("a<b", "'<'"),
    ("a'b", "\"'\""),
    ('a"b', "'\"'"),
    ("a\\b", "'\\\\'"),
    ("/main", "'/'"),
    ("main/", "'/'"),
    ("a..b", "'..'"),
    ("a b", "whitespace"),
    ("main\n", "whitespace"),
    ("a\tb", "whitespace"),
    ("a\x00b", "control"),
    ("a\x1bb", "control"),
    ("--upload-pack=x", "'-'"),
    ("-main", "'-'"),
])
def test_invalid_names_are_rejected(name, reason):
    with pytest.raises(InvalidRefNameError) as info:
        validate_ref_name(name)

    assert info.value.ref == name
    assert reason in info.value.reason
    assert not is_valid_ref_name(name)


def test_message_names_the_branch():
    with pytest.raises(InvalidRefNameError, match="invalid branch name"):
        validate_ref_name("feature;rm -rf")
