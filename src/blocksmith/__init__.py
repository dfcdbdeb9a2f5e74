"""
blocksmith: Python library for compiling, linking and deploying Solidity contracts to local and live nodes
"""

from importlib.metadata import PackageNotFoundError, version

from .abi import Interface, merge_abi
from .artifacts import (
    ArtifactResolver,
    BytecodeArtifact,
    FileArtifact,
    ImportArtifact,
    SourceArtifact,
    descriptor_from,
)
from .compiler import CompileOptions, compile_source
from .config import SessionConfig
from .exceptions import (
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
from .linker import ContractMap, link_bytecode
from .process import ProcessRunner
from .project import Project
from .registry import AbiRegistry
from .session import NodeSession, SessionState
from .store import load_deployment, save_deployment
from .types import Artifact, DeployedContract, DeploymentRecord, TransactionReport, Wallet

try:
    __version__ = version("blocksmith")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "NodeSession",
    "SessionState",
    "SessionConfig",
    "Project",
    "ProcessRunner",
    "CompileOptions",
    "compile_source",
    "ArtifactResolver",
    "BytecodeArtifact",
    "SourceArtifact",
    "ImportArtifact",
    "FileArtifact",
    "descriptor_from",
    "ContractMap",
    "link_bytecode",
    "Interface",
    "merge_abi",
    "AbiRegistry",
    "save_deployment",
    "load_deployment",
    "Artifact",
    "Wallet",
    "DeployedContract",
    "DeploymentRecord",
    "TransactionReport",
    "BlocksmithError",
    "ProcessError",
    "LaunchFailedError",
    "BuildFailedError",
    "ContractNotFoundError",
    "MissingContractNameError",
    "UnknownArtifactDescriptorError",
    "UnresolvedLibraryError",
    "MalformedLinkReferenceError",
    "MissingWalletError",
    "ProjectConfigError",
]
