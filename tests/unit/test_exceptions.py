"""Unit tests for custom exception classes."""

import pytest

from blocksmith.exceptions import (
    BlocksmithError,
    BuildFailedError,
    ContractNotFoundError,
    LaunchFailedError,
    MalformedLinkReferenceError,
    MissingContractNameError,
    MissingWalletError,
    ProcessError,
    ProjectConfigError,
    UnknownArtifactDescriptorError,
    UnresolvedLibraryError,
)


class TestExceptionCatching:
    """Test that exceptions can be caught as their base types."""

    def test_catch_project_config_error_as_file_not_found_error(self):
        """Test that ProjectConfigError can be caught as FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            raise ProjectConfigError("missing foundry.toml")

    def test_catch_process_error_as_runtime_error(self):
        """Test that ProcessError can be caught as RuntimeError."""
        with pytest.raises(RuntimeError):
            raise ProcessError("forge: boom (code=1)", command="forge", code=1)

    def test_catch_lookup_errors(self):
        """Test that resolution failures can be caught as LookupError."""
        for exc in (
            ContractNotFoundError("test", contract="C"),
            UnresolvedLibraryError("test", library="L"),
            MissingWalletError("test"),
        ):
            with pytest.raises(LookupError):
                raise exc

    def test_catch_value_errors(self):
        """Test that bad-input errors can be caught as ValueError."""
        for exc in (
            MissingContractNameError("test"),
            UnknownArtifactDescriptorError("test"),
            MalformedLinkReferenceError("test", file="a.sol", contract="L", start=0, length=19),
        ):
            with pytest.raises(ValueError):
                raise exc

    def test_catch_all_as_blocksmith_error(self):
        """Test that all custom exceptions can be caught as BlocksmithError."""
        exceptions = [
            ProcessError("test", command="forge"),
            LaunchFailedError("test"),
            BuildFailedError("test", errors=[]),
            ContractNotFoundError("test"),
            MissingContractNameError("test"),
            UnknownArtifactDescriptorError("test"),
            UnresolvedLibraryError("test", library="L"),
            MalformedLinkReferenceError("test", file="a.sol", contract="L", start=0, length=19),
            MissingWalletError("test"),
            ProjectConfigError("test"),
        ]

        for exc in exceptions:
            with pytest.raises(BlocksmithError):
                raise exc


class TestExceptionAttributes:
    """Test the context carried by structured exceptions."""

    def test_process_error_fields(self):
        """Test that ProcessError keeps command, args, code and stderr."""
        exc = ProcessError("forge: bad (code=2)", command="forge", args=["build"], code=2, stderr="bad")

        assert str(exc) == "forge: bad (code=2)"
        assert exc.command == "forge"
        assert exc.args_list == ["build"]
        assert exc.code == 2
        assert exc.stderr == "bad"

    def test_build_failed_error_keeps_diagnostics(self):
        """Test that BuildFailedError carries the error diagnostics and source."""
        errors = [{"severity": "error", "message": "bad"}]
        exc = BuildFailedError("failed", errors=errors, source="contract C {}")

        assert exc.errors == errors
        assert exc.source == "contract C {}"

    def test_malformed_link_reference_fields(self):
        """Test that MalformedLinkReferenceError reports the offending range."""
        exc = MalformedLinkReferenceError("bad", file="src/A.sol", contract="L", start=3, length=19)

        assert (exc.file, exc.contract, exc.start, exc.length) == ("src/A.sol", "L", 3, 19)

    def test_launch_failed_error_fields(self):
        """Test that LaunchFailedError keeps the node args and its error output."""
        exc = LaunchFailedError("failed", args=["--port", "0"], error="address in use")

        assert exc.args_list == ["--port", "0"]
        assert exc.error == "address in use"
