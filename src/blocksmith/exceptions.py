"""Custom exception classes for blocksmith."""

from typing import Any, Dict, List, Optional, Sequence


class BlocksmithError(Exception):
    """Base exception for blocksmith errors."""

    pass


class ProcessError(BlocksmithError, RuntimeError):
    """Raised when an external tool exits with a non-zero code or bad output."""

    def __init__(
        self,
        message: str,
        *,
        command: str,
        args: Sequence[str] = (),
        code: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.args_list = list(args)
        self.code = code
        self.stderr = stderr


class LaunchFailedError(BlocksmithError, RuntimeError):
    """Raised when the node process fails before printing its ready banner."""

    def __init__(self, message: str, *, args: Sequence[str] = (), error: str = ""):
        super().__init__(message)
        self.args_list = list(args)
        self.error = error


class BuildFailedError(BlocksmithError, RuntimeError):
    """Raised when the compiler reports at least one error diagnostic."""

    def __init__(
        self,
        message: str,
        *,
        errors: List[Dict[str, Any]],
        source: Optional[str] = None,
    ):
        super().__init__(message)
        self.errors = errors
        self.source = source


class ContractNotFoundError(BlocksmithError, LookupError):
    """Raised when compiled output does not contain the requested contract."""

    def __init__(self, message: str, *, contract: Optional[str] = None, file: Optional[str] = None):
        super().__init__(message)
        self.contract = contract
        self.file = file


class MissingContractNameError(BlocksmithError, ValueError):
    """Raised when no contract name is given and none can be inferred."""

    pass


class UnknownArtifactDescriptorError(BlocksmithError, ValueError):
    """Raised when a deploy/resolve input matches no known artifact shape."""

    pass


class UnresolvedLibraryError(BlocksmithError, LookupError):
    """Raised when a library reference has no unique deployed address."""

    def __init__(self, message: str, *, library: str):
        super().__init__(message)
        self.library = library


class MalformedLinkReferenceError(BlocksmithError, ValueError):
    """Raised when a link reference does not span exactly 20 bytes."""

    def __init__(self, message: str, *, file: str, contract: str, start: int, length: int):
        super().__init__(message)
        self.file = file
        self.contract = contract
        self.start = start
        self.length = length


class MissingWalletError(BlocksmithError, LookupError):
    """Raised when a wallet is unknown or not owned by the session."""

    pass


class ProjectConfigError(BlocksmithError, FileNotFoundError):
    """Raised when foundry.toml is missing or cannot be read by forge."""

    pass
