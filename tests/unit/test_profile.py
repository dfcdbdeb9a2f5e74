"""Unit tests for build profile encoding."""

import pytest

from blocksmith.profile import encode_profile


class TestEncodeProfile:
    """Test the TOML subset encoder."""

    def test_scalars(self):
        """Test strings, booleans and numbers as JSON literals."""
        text = encode_profile({"src": "src", "optimizer": True, "optimizer_runs": 200, "ratio": 1.5})

        assert text.splitlines() == [
            'src = "src"',
            "optimizer = true",
            "optimizer_runs = 200",
            "ratio = 1.5",
        ]

    def test_none_values_skipped(self):
        """Test that None values are left out."""
        assert encode_profile({"a": None, "b": 1}) == "b = 1"

    def test_scalar_arrays_inline(self):
        """Test that arrays of scalars are written inline."""
        text = encode_profile({"remappings": ["@oz/=lib/oz/", "@src=/p/src"]})

        assert text == 'remappings = ["@oz/=lib/oz/","@src=/p/src"]'

    def test_nested_tables_follow_plain_keys(self):
        """Test that sub-tables come after every plain key of their parent."""
        text = encode_profile(
            {"profile": {"default": {"rpc_endpoints": {"main": "http://x"}, "src": "src"}}}
        )

        assert text.splitlines() == [
            "[profile]",
            "[profile.default]",
            'src = "src"',
            "[profile.default.rpc_endpoints]",
            'main = "http://x"',
        ]

    def test_arrays_of_tables(self):
        """Test that lists of mappings become [[table]] entries."""
        text = encode_profile({"fs_permissions": [{"access": "read", "path": "./"}, {"access": "write"}]})

        assert text.splitlines() == [
            "[[fs_permissions]]",
            'access = "read"',
            'path = "./"',
            "[[fs_permissions]]",
            'access = "write"',
        ]

    def test_large_integers_clamped(self):
        """Test that integers beyond signed 64-bit are clamped."""
        assert encode_profile({"gas_limit": 2**80}) == f"gas_limit = {2**63 - 1}"

    def test_keys_quoted_when_not_bare(self):
        """Test that keys outside the bare-key alphabet are quoted."""
        assert encode_profile({"solc-version": "0.8.26", "a b": 1}).splitlines() == [
            'solc-version = "0.8.26"',
            '"a b" = 1',
        ]

    def test_unsupported_value_raises(self):
        """Test that unsupported value types raise TypeError."""
        with pytest.raises(TypeError, match="invalid type"):
            encode_profile({"x": object()})
