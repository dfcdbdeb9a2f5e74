"""Data types and dataclasses for blocksmith."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from eth_account.signers.local import LocalAccount

from .abi import Interface, LogDescription, TransactionDescription


@dataclass(frozen=True)
class LibraryReference:
    """An unresolved external library slot in creation bytecode."""

    file: str  # Source path as reported by the compiler, e.g. "src/Lib.sol"
    contract_name: str
    offsets: Tuple[int, ...]  # Byte offsets of 20-byte address slots

    @property
    def qualified_id(self) -> str:
        return f"{self.file}:{self.contract_name}"

    @property
    def qualified_path(self) -> List[str]:
        # Innermost segment first
        return list(reversed(self.file.split("/")))


@dataclass(frozen=True)
class Artifact:
    """Resolved ABI and bytecode, ready for linking and deployment."""

    abi: Interface
    bytecode: str  # 0x-prefixed hex, may contain link placeholders
    contract_name: str
    origin: str  # Provenance tag, e.g. "Bytecode" or "InlineCode{1a2b3c4d}"
    links: Tuple[LibraryReference, ...] = ()
    source: Optional[str] = None
    file: Optional[Path] = None
    root: Optional[Path] = None  # Sandbox directory for inline compiles


@dataclass
class Wallet:
    """A named, session-owned signing account."""

    name: str
    account: LocalAccount = field(repr=False)
    owner_session_id: str = field(repr=False)

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def display_name(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name


@dataclass
class DeployedContract:
    """A contract deployed (or attached) through a session."""

    address: str
    abi: Interface
    handle: Any  # web3 AsyncContract bound to address
    display_name: str
    owner_session_id: str = field(repr=False)
    artifact: Optional[Artifact] = field(default=None, repr=False)
    receipt: Optional[Any] = field(default=None, repr=False)
    links: Dict[str, str] = field(default_factory=dict)
    constructor_args: List[Any] = field(default_factory=list)
    deployer: Optional[Wallet] = field(default=None, repr=False)
    code_size: int = 0
    already_deployed: bool = False

    def __str__(self) -> str:
        return self.display_name


@dataclass
class DeploymentRecord:
    """Persisted information about a live-network deployment."""

    name: str
    address: str
    abi: List[Dict[str, Any]]  # Minimal JSON ABI
    bytecode: str
    links: Dict[str, str] = field(default_factory=dict)
    receipt: Optional[Dict[str, Any]] = None
    constructor_args: List[Any] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "abi": self.abi,
            "bytecode": self.bytecode,
            "links": self.links,
            "receipt": self.receipt,
            "constructorArgs": self.constructor_args,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "DeploymentRecord":
        return cls(
            name=data["name"],
            address=data["address"],
            abi=data["abi"],
            bytecode=data["bytecode"],
            links=data.get("links") or {},
            receipt=data.get("receipt"),
            constructor_args=data.get("constructorArgs") or [],
        )


@dataclass
class TransactionReport:
    """What confirm() and deploy() tell observers about a mined transaction."""

    transaction: Any
    receipt: Any
    call: Optional[TransactionDescription]
    events: List[LogDescription]
    gas_used: int
