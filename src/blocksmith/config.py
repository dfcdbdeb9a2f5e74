"""Session configuration for blocksmith."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from .constants import (
    DEFAULT_ETHER,
    DEFAULT_PROFILE,
    DEFAULT_PROGRESS_INTERVAL,
    DEFAULT_WALLET,
    INFINITE_GAS_LIMIT,
    PROFILE_ENV,
)
from .paths import get_default_sandbox_root


def default_profile() -> str:
    """
    Get the active build profile name.

    This is the only process-wide default: $FOUNDRY_PROFILE, else "default".
    """
    return os.environ.get(PROFILE_ENV) or DEFAULT_PROFILE


@dataclass
class SessionConfig:
    """Everything a NodeSession needs besides its collaborators."""

    # Project
    root: Optional[Union[Path, str]] = None  # Project root; None = no project
    profile: Optional[str] = None  # None = default_profile()
    forge: str = "forge"
    anvil: str = "anvil"
    tmp_root: Optional[Union[Path, str]] = None  # Compile sandbox root
    deployments_root: Optional[Union[Path, str]] = None  # None = project root or cwd

    # Node
    host: str = "127.0.0.1"
    port: int = 0
    chain: Optional[int] = None
    block_sec: Optional[int] = None
    gas_limit: Optional[int] = None
    infinite_call_gas: bool = False
    fork: Optional[str] = None

    # Wallets
    wallets: Sequence[str] = (DEFAULT_WALLET,)
    ether: int = DEFAULT_ETHER

    progress_interval: float = DEFAULT_PROGRESS_INTERVAL

    def resolved_profile(self) -> str:
        return self.profile or default_profile()

    def resolved_tmp_root(self) -> Path:
        if self.tmp_root is None:
            return get_default_sandbox_root()
        return Path(self.tmp_root).absolute()

    def resolved_deployments_root(self) -> Path:
        if self.deployments_root is not None:
            return Path(self.deployments_root).absolute()
        if self.root is not None:
            return Path(self.root).absolute()
        return Path.cwd()

    def node_args(self) -> list:
        """Command-line arguments for the node process."""
        # accounts are created on demand
        args = ["--host", self.host, "--port", str(self.port), "--accounts", "0"]
        if self.chain:
            args += ["--chain-id", str(self.chain)]
        if self.block_sec:
            args += ["--block-time", str(self.block_sec)]
        if self.infinite_call_gas:
            if self.fork:
                args.append("--disable-block-gas-limit")
            else:
                args += ["--gas-limit", INFINITE_GAS_LIMIT]
        elif self.gas_limit:
            args += ["--gas-limit", str(self.gas_limit)]
        if self.fork:
            args += ["--fork-url", str(self.fork)]
        return args
