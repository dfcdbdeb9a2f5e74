"""Foundry project discovery, configuration and build artifacts."""

import logging
import os
import posixpath
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import default_profile
from .constants import CONFIG_NAME, PROFILE_ENV
from .exceptions import BuildFailedError, ContractNotFoundError, ProcessError, ProjectConfigError
from .linker import remove_sol_ext
from .paths import find_project_root
from .process import ProcessRunner
from .profile import encode_profile

logger = logging.getLogger(__name__)


def filter_errors(diagnostics: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Keep only error-severity compiler diagnostics."""
    return [x for x in diagnostics or () if x.get("severity") == "error"]


class Project:
    """A forge project: its root, active profile and resolved configuration."""

    def __init__(
        self,
        root: Path,
        profile: str,
        config: Dict[str, Any],
        forge: str = "forge",
        runner: Optional[ProcessRunner] = None,
    ):
        self.root = root
        self.profile = profile
        self.config = config
        self.forge = forge
        self.runner = runner or ProcessRunner()
        self.built: Optional[datetime] = None

    @classmethod
    async def load(
        cls,
        root: Optional[Union[Path, str]] = None,
        profile: Optional[str] = None,
        forge: str = "forge",
        runner: Optional[ProcessRunner] = None,
    ) -> "Project":
        """
        Load a project by asking forge for its resolved configuration.

        Args:
            root: Project root (defaults to the nearest ancestor with foundry.toml)
            profile: Profile name (defaults to $FOUNDRY_PROFILE or "default")
            forge: forge executable
            runner: Process runner

        Raises:
            ProjectConfigError: If foundry.toml is missing or forge rejects it
        """
        root = find_project_root() if root is None else Path(root).resolve()
        profile = profile or default_profile()
        runner = runner or ProcessRunner()
        try:
            config = await runner.run_json(
                forge, ["config", "--root", str(root), "--json"], {PROFILE_ENV: profile}
            )
        except ProcessError as e:
            raise ProjectConfigError(f"Invalid {CONFIG_NAME} in {root} (profile={profile}): {e}") from e
        return cls(root, profile, config, forge, runner)

    @property
    def src(self) -> str:
        return self.config.get("src", "src")

    @property
    def test(self) -> str:
        return self.config.get("test", "test")

    @property
    def out(self) -> str:
        return self.config.get("out", "out")

    @property
    def remappings(self) -> List[str]:
        return list(self.config.get("remappings") or ())

    async def build(self, force: bool = False) -> datetime:
        """
        Build the whole project once (or again when forced).

        Raises:
            BuildFailedError: If forge reports error diagnostics
        """
        if self.built is not None and not force:
            return self.built
        args = ["build", "--format-json", "--root", str(self.root)]
        if force:
            args.append("--force")
        res = await self.runner.run_json(self.forge, args, {PROFILE_ENV: self.profile})
        errors = filter_errors(res.get("errors"))
        if errors:
            raise BuildFailedError(f"forge build failed in {self.root}", errors=errors)
        self.built = datetime.now(timezone.utc)
        logger.info("built project %s (profile=%s)", self.root, self.profile)
        return self.built

    async def find_artifact(self, file: str, contract: Optional[str] = None) -> Path:
        """
        Locate the build output JSON for a project source file.

        Searches out/<dir>/<File>.sol/<Contract>.json, walking <dir> up from the
        file's own directory to the output root.

        Raises:
            ContractNotFoundError: If no matching build output exists
        """
        await self.build()
        if Path(file).is_absolute():
            file = Path(os.path.relpath(file, self.root)).as_posix()
        file = remove_sol_ext(file)
        if contract is None:
            contract = posixpath.basename(file)
        file += ".sol"
        tail = Path(posixpath.basename(file)) / f"{contract}.json"
        path = posixpath.dirname(file)
        while True:
            out_file = self.root / self.out / path / tail
            if out_file.is_file():
                return out_file
            parent = posixpath.dirname(path)
            if parent == path:
                raise ContractNotFoundError(
                    f"Unknown contract: {file}:{contract}", contract=contract, file=file
                )
            path = parent

    def profile_text(self) -> str:
        """Render the resolved configuration as a build profile."""
        return encode_profile({"profile": {self.profile: self.config}})
