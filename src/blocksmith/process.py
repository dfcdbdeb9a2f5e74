"""Subprocess execution for external build and node tools."""

import asyncio
import json
import logging
import os
from typing import Any, Callable, List, Mapping, Optional, Sequence

from .constants import ANSI_PATTERN, DEFAULT_PROGRESS_INTERVAL
from .exceptions import ProcessError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Sequence[str]], None]

_READ_SIZE = 65536


def strip_ansi(text: str) -> str:
    """Remove ANSI color sequences from text."""
    return ANSI_PATTERN.sub("", text)


def _log_progress(command: str, args: Sequence[str]) -> None:
    logger.info("still waiting on %s %s", command, " ".join(args))


class ProcessRunner:
    """Runs external commands, buffering stdout and stderr separately."""

    def __init__(
        self,
        progress: Optional[ProgressCallback] = _log_progress,
        progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
    ):
        """
        Initialize the runner.

        Args:
            progress: Called with (command, args) whenever no output arrived
                      for progress_interval seconds; None disables it
            progress_interval: Seconds of silence between progress callbacks
        """
        self.progress = progress
        self.progress_interval = progress_interval

    async def run(
        self,
        command: str,
        args: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
    ) -> bytes:
        """
        Run a command to completion.

        Args:
            command: Executable name or path
            args: Command arguments
            env: Extra environment variables, merged over os.environ

        Returns:
            Concatenated stdout bytes

        Raises:
            ProcessError: If the command is missing or exits non-zero
        """
        stdout = await self._collect(command, args, env)
        return b"".join(stdout)

    async def run_json(
        self,
        command: str,
        args: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Run a command and parse its stdout as JSON.

        Raises:
            ProcessError: If the command fails or stdout is not valid JSON
        """
        stdout = await self.run(command, args, env)
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ProcessError(
                f"{command}: expected JSON output ({e})",
                command=command,
                args=args,
                code=0,
            ) from e

    async def _collect(
        self,
        command: str,
        args: Sequence[str],
        env: Optional[Mapping[str, str]],
    ) -> List[bytes]:
        args = [str(x) for x in args]
        full_env = {**os.environ, **(env or {})}
        logger.debug("exec %s %s", command, " ".join(args))

        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=full_env,
            )
        except FileNotFoundError as e:
            raise ProcessError(
                f"{command}: command not found", command=command, args=args
            ) from e

        stdout: List[bytes] = []
        stderr: List[bytes] = []
        activity = asyncio.Event()
        watcher = None
        if self.progress is not None:
            watcher = asyncio.create_task(self._watch(command, args, activity))
        try:
            await asyncio.gather(
                self._pump(proc.stdout, stdout, activity),
                self._pump(proc.stderr, stderr, activity),
            )
            code = await proc.wait()
        finally:
            if watcher is not None:
                watcher.cancel()

        if code:
            error = strip_ansi(b"".join(stderr).decode("utf-8", errors="replace"))
            error = error.strip()
            if error.startswith("Error:"):
                error = error[len("Error:"):].strip()
            raise ProcessError(
                f"{command}: {error} (code={code})",
                command=command,
                args=args,
                code=code,
                stderr=error,
            )
        return stdout

    @staticmethod
    async def _pump(
        stream: asyncio.StreamReader, chunks: List[bytes], activity: asyncio.Event
    ) -> None:
        while True:
            chunk = await stream.read(_READ_SIZE)
            if not chunk:
                break
            chunks.append(chunk)
            activity.set()

    async def _watch(
        self, command: str, args: Sequence[str], activity: asyncio.Event
    ) -> None:
        while True:
            await asyncio.sleep(self.progress_interval)
            if not activity.is_set():
                self.progress(command, args)
            activity.clear()
