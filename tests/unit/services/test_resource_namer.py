"""Tests for request suffixes and filename sanitizing."""

import re

from hypothesis import given
from hypothesis import strategies as st

from ipa_signer.services.resource_namer import (
    extract_suffix,
    is_valid_suffix,
    new_suffix,
    sanitize_filename,
)


class TestNewSuffix:
    def test_shape(self):
        suffix = new_suffix()
        assert re.fullmatch(r"\d{13}_[0-9a-z]{6}", suffix)
        assert is_valid_suffix(suffix)

    def test_unique_within_a_burst(self):
        suffixes = {new_suffix() for _ in range(500)}
        assert len(suffixes) == 500


class TestIsValidSuffix:
    def test_rejects_traversal_and_garbage(self):
        assert not is_valid_suffix("../../etc/passwd")
        assert not is_valid_suffix("1700000000000_ABCDEF")
        assert not is_valid_suffix("1700000000000_abc")
        assert not is_valid_suffix("")
        assert not is_valid_suffix("1700000000000_abcdef.json")


class TestExtractSuffix:
    def test_from_published_names(self):
        assert extract_suffix("signed_1700000000000_abc123.ipa") == "1700000000000_abc123"
        assert extract_suffix("MyApp_1700000000000_abc123.plist") == "1700000000000_abc123"
        assert extract_suffix("1700000000000_abc123.json") == "1700000000000_abc123"

    def test_none_for_foreign_names(self):
        assert extract_suffix("index.html") is None
        assert extract_suffix(".1700000000000_abc123.json.tmp") is None


class TestSanitizeFilename:
    def test_strips_unsafe_characters(self):
        assert sanitize_filename("My App! (v2)") == "MyAppv2"
        assert sanitize_filename("../../evil") == "evil"
        assert sanitize_filename("ok_name-1") == "ok_name-1"

    def test_empty_and_none(self):
        assert sanitize_filename("") == ""
        assert sanitize_filename(None) == ""

    @given(st.text())
    def test_output_only_contains_safe_characters(self, name):
        assert re.fullmatch(r"[A-Za-z0-9_-]*", sanitize_filename(name))

    @given(st.text(alphabet="abcXYZ019_-", min_size=1))
    def test_safe_names_are_unchanged(self, name):
        assert sanitize_filename(name) == name
