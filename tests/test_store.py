"""Tests for durable token storage."""

import yaml

from savesync.dashboard.store import TOKEN_KEY, TokenStore


def test_missing_file_means_no_token(tmp_path):
    """Test that an absent token file is simply anonymous."""
    assert TokenStore(tmp_path / "nope.yaml").load() is None


def test_save_and_load(tokens, token_file):
    """Test that the token lands under the well-known key."""
    tokens.save("abc")

    assert tokens.load() == "abc"
    assert yaml.safe_load(token_file.read_text()) == {TOKEN_KEY: "abc"}


def test_reads_latest_value(tokens, token_file):
    """Test that changes made by another store instance are observed."""
    tokens.save("first")
    TokenStore(token_file).save("second")

    assert tokens.load() == "second"


def test_clear_removes_file(tokens, token_file):
    """Test that clearing the only key removes the file."""
    tokens.save("abc")
    tokens.clear()

    assert tokens.load() is None
    assert not token_file.exists()


def test_clear_keeps_other_keys(tokens, token_file):
    """Test that clearing leaves unrelated values alone."""
    token_file.write_text(yaml.dump({"theme": "dark", TOKEN_KEY: "abc"}))

    tokens.clear()

    assert yaml.safe_load(token_file.read_text()) == {"theme": "dark"}


def test_corrupted_file_is_ignored(tokens, token_file):
    """Test that a garbled file reads as no token instead of failing."""
    token_file.write_text("{{{ not yaml")

    assert tokens.load() is None


def test_non_string_token_is_ignored(tokens, token_file):
    """Test that a token of the wrong type is not used."""
    token_file.write_text(yaml.dump({TOKEN_KEY: 12}))

    assert tokens.load() is None
