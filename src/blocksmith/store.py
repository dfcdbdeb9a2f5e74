"""Deployment record persistence for live networks."""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

from .paths import get_deployment_path
from .types import DeploymentRecord

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    # web3 receipts hold HexBytes and AttributeDict values
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (set, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def save_deployment(
    root: Union[Path, str], chain_id: int, prefix: str, record: DeploymentRecord
) -> Path:
    """
    Save a deployment record to disk.

    Args:
        root: Directory holding the deployments/ folder (usually the project root)
        chain_id: Network chain id
        prefix: Name prefix distinguishing deployment sets
        record: Deployment record

    Returns:
        Path of the written file

    Creates parent directories if they don't exist.
    """
    path = get_deployment_path(root, chain_id, prefix, record.name)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(record.to_json(), f, indent=2, default=_json_default)
    logger.info("saved deployment %s%s on chain %d to %s", prefix, record.name, chain_id, path)
    return path


def load_deployment(
    root: Union[Path, str], chain_id: int, prefix: str, name: str
) -> Optional[DeploymentRecord]:
    """
    Load a deployment record.

    Returns:
        The record, or None if the file doesn't exist or is malformed
    """
    path = get_deployment_path(root, chain_id, prefix, name)
    try:
        with open(path) as f:
            return DeploymentRecord.from_json(json.load(f))
    except FileNotFoundError:
        return None
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("ignoring malformed deployment record %s: %s", path, e)
        return None
