"""Path management utilities for blocksmith."""

import tempfile
from pathlib import Path
from typing import Optional, Union

from .constants import CONFIG_NAME, DEPLOYMENTS_DIR_NAME, SANDBOX_DIR_NAME
from .exceptions import ProjectConfigError


def get_default_sandbox_root() -> Path:
    """
    Get default root for compile sandboxes.

    Returns:
        Path to <system tmp>/blocksmith (resolved, so symlinked tmp dirs compare equal)
    """
    return Path(tempfile.gettempdir()).resolve() / SANDBOX_DIR_NAME


def get_sandbox_dir(source_hash: str, tmp_root: Optional[Union[Path, str]] = None) -> Path:
    """
    Get the isolated build directory for a source hash.

    Args:
        source_hash: Hex digest of the final source text
        tmp_root: Custom sandbox root (defaults to <system tmp>/blocksmith)

    Returns:
        Absolute path of the sandbox directory
    """
    if tmp_root is None:
        tmp_root = get_default_sandbox_root()
    else:
        tmp_root = Path(tmp_root).absolute()
    return tmp_root / source_hash


def find_project_root(cwd: Optional[Union[Path, str]] = None) -> Path:
    """
    Walk up from cwd until a directory containing foundry.toml is found.

    Raises:
        ProjectConfigError: If no ancestor holds a foundry.toml
    """
    start = Path(cwd).resolve() if cwd is not None else Path.cwd().resolve()
    for directory in (start, *start.parents):
        if (directory / CONFIG_NAME).is_file():
            return directory
    raise ProjectConfigError(f"Expected {CONFIG_NAME} in {start} or any parent directory")


def get_deployment_path(
    root: Union[Path, str], chain_id: int, prefix: str, name: str
) -> Path:
    """
    Get the record file for a live deployment.

    Returns:
        Path to <root>/deployments/<chain_id>/<prefix><name>.json
    """
    return Path(root) / DEPLOYMENTS_DIR_NAME / str(chain_id) / f"{prefix}{name}.json"
