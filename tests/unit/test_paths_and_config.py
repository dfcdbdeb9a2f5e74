"""Unit tests for path helpers and session configuration."""

import tempfile
from pathlib import Path

import pytest

from blocksmith.config import SessionConfig, default_profile
from blocksmith.constants import INFINITE_GAS_LIMIT
from blocksmith.exceptions import ProjectConfigError
from blocksmith.paths import (
    find_project_root,
    get_default_sandbox_root,
    get_deployment_path,
    get_sandbox_dir,
)


class TestSandboxPaths:
    """Test compile sandbox path helpers."""

    def test_default_root_in_system_tmp(self):
        """Test that the default sandbox root is <tmp>/blocksmith."""
        root = get_default_sandbox_root()

        assert root.name == "blocksmith"
        assert root.parent == Path(tempfile.gettempdir()).resolve()

    def test_sandbox_dir_named_by_hash(self, tmp_path: Path):
        """Test that each source hash gets its own directory under the root."""
        assert get_sandbox_dir("abc123", tmp_path) == tmp_path.absolute() / "abc123"

    def test_sandbox_dir_is_absolute(self):
        """Test that relative roots are made absolute."""
        assert get_sandbox_dir("abc", "relative/root").is_absolute()


class TestFindProjectRoot:
    """Test project root discovery."""

    def test_finds_root_from_nested_directory(self, tmp_path: Path):
        """Test walking up to the directory holding foundry.toml."""
        (tmp_path / "foundry.toml").write_text("[profile.default]\n")
        nested = tmp_path / "src" / "deep"
        nested.mkdir(parents=True)

        assert find_project_root(nested) == tmp_path.resolve()

    def test_missing_config_raises(self, tmp_path: Path, monkeypatch):
        """Test that a tree without foundry.toml raises ProjectConfigError."""
        monkeypatch.setattr(Path, "is_file", lambda self: False)

        with pytest.raises(ProjectConfigError, match="foundry.toml"):
            find_project_root(tmp_path)


class TestDeploymentPath:
    """Test the deployment record location."""

    def test_layout(self, tmp_path: Path):
        """Test <root>/deployments/<chain>/<prefix><name>.json."""
        path = get_deployment_path(tmp_path, 5, "v2_", "Token")

        assert path == tmp_path / "deployments" / "5" / "v2_Token.json"


class TestDefaultProfile:
    """Test profile selection from the environment."""

    def test_uses_environment(self, monkeypatch):
        """Test that FOUNDRY_PROFILE selects the profile."""
        monkeypatch.setenv("FOUNDRY_PROFILE", "ci")
        assert default_profile() == "ci"

    def test_falls_back_to_default(self, monkeypatch):
        """Test the fallback when FOUNDRY_PROFILE is unset or empty."""
        monkeypatch.delenv("FOUNDRY_PROFILE", raising=False)
        assert default_profile() == "default"

        monkeypatch.setenv("FOUNDRY_PROFILE", "")
        assert default_profile() == "default"

    def test_explicit_profile_wins(self, monkeypatch):
        """Test that a configured profile overrides the environment."""
        monkeypatch.setenv("FOUNDRY_PROFILE", "ci")
        assert SessionConfig(profile="release").resolved_profile() == "release"


class TestNodeArgs:
    """Test node command-line construction."""

    def test_defaults(self):
        """Test that the default node starts without prefunded accounts on a random port."""
        assert SessionConfig().node_args() == ["--host", "127.0.0.1", "--port", "0", "--accounts", "0"]

    def test_chain_and_block_time(self):
        """Test chain id and interval mining options."""
        args = SessionConfig(chain=5, block_sec=2).node_args()

        assert args[-4:] == ["--chain-id", "5", "--block-time", "2"]

    def test_infinite_gas_without_fork(self):
        """Test that infinite call gas uses a huge gas limit when not forking."""
        args = SessionConfig(infinite_call_gas=True, gas_limit=30_000_000).node_args()

        assert args[-2:] == ["--gas-limit", INFINITE_GAS_LIMIT]

    def test_infinite_gas_with_fork(self):
        """Test that infinite call gas disables the block gas limit when forking."""
        args = SessionConfig(infinite_call_gas=True, fork="http://rpc").node_args()

        assert "--disable-block-gas-limit" in args
        assert args[-2:] == ["--fork-url", "http://rpc"]
        assert "--gas-limit" not in args

    def test_explicit_gas_limit(self):
        """Test a finite gas limit."""
        assert SessionConfig(gas_limit=30_000_000).node_args()[-2:] == ["--gas-limit", "30000000"]


class TestResolvedRoots:
    """Test derived directories."""

    def test_deployments_root_prefers_explicit_value(self, tmp_path: Path):
        """Test the precedence: deployments_root, then project root."""
        config = SessionConfig(root=tmp_path / "proj", deployments_root=tmp_path / "records")
        assert config.resolved_deployments_root() == (tmp_path / "records").absolute()

        config = SessionConfig(root=tmp_path / "proj")
        assert config.resolved_deployments_root() == (tmp_path / "proj").absolute()

    def test_deployments_root_defaults_to_cwd(self, tmp_path: Path, monkeypatch):
        """Test that without any root the working directory is used."""
        monkeypatch.chdir(tmp_path)
        assert SessionConfig().resolved_deployments_root() == Path.cwd()

    def test_tmp_root(self, tmp_path: Path):
        """Test the sandbox root default and override."""
        assert SessionConfig().resolved_tmp_root() == get_default_sandbox_root()
        assert SessionConfig(tmp_root=tmp_path).resolved_tmp_root() == tmp_path.absolute()
