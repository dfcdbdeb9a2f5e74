"""External library linking for creation bytecode."""

import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from eth_utils import is_address, to_checksum_address

from .exceptions import UnresolvedLibraryError
from .types import LibraryReference

logger = logging.getLogger(__name__)

ADDRESS_HEX_LENGTH = 40


def remove_sol_ext(path: str) -> str:
    return path[: -len(".sol")] if path.endswith(".sol") else path


def parse_contract_id(cid: str) -> Tuple[str, List[str]]:
    """
    Split a contract id into its bare name and reversed path segments.

    "src/math/Lib.sol:Lib" -> ("Lib", ["Lib.sol", "math", "src"])
    "src/math/Lib.sol"     -> ("Lib", ["Lib.sol", "math", "src"])
    "Lib"                  -> ("Lib", [])
    """
    pos = cid.rfind(":")
    if pos >= 0:
        file, contract = cid[:pos], remove_sol_ext(cid[pos + 1:])
    elif "/" in cid or cid.endswith(".sol"):
        file, contract = cid, remove_sol_ext(posixpath.basename(cid))
    else:
        return cid, []
    path = [x for x in file.split("/") if x]
    return contract, list(reversed(path))


@dataclass
class _Entry:
    path: List[str]
    value: Any


class ContractMap:
    """Index from bare contract name to values, disambiguated by path suffix."""

    def __init__(self) -> None:
        self._map: Dict[str, List[_Entry]] = {}

    def add(self, cid: str, value: Any) -> None:
        contract, path = parse_contract_id(cid)
        self._map.setdefault(contract, []).append(_Entry(path, value))

    def find(self, cid: str) -> Optional[Tuple[str, Any]]:
        """
        Resolve a contract id to a unique registered value.

        Candidates sharing the bare name are narrowed by matching path segments,
        innermost first, until one remains or the query path is exhausted.

        Returns:
            (matched id, value), or None if zero or several candidates remain
        """
        contract, path = parse_contract_id(cid)
        bucket = self._map.get(contract)
        if not bucket:
            return None
        i = 0
        while len(bucket) > 1 and i < len(path):
            bucket = [e for e in bucket if i < len(e.path) and e.path[i] == path[i]]
            i += 1
        if len(bucket) != 1:
            return None
        matched = f"{'/'.join(reversed(path[:i]))}:{contract}" if i else contract
        return matched, bucket[0].value

    def __len__(self) -> int:
        return sum(len(v) for v in self._map.values())


class LinkResult(NamedTuple):
    bytecode: str
    linked: Dict[str, str]  # Matched contract id -> address used


def library_address(value: Any) -> Optional[str]:
    """Get an address from an address string or an object with an address."""
    if isinstance(value, str) and is_address(value):
        return to_checksum_address(value)
    address = getattr(value, "address", None)
    if isinstance(address, str) and is_address(address):
        return to_checksum_address(address)
    return None


def link_bytecode(
    bytecode: str,
    links: Iterable[LibraryReference],
    libraries: Mapping[str, Any],
) -> LinkResult:
    """
    Patch library placeholders in bytecode with deployed addresses.

    Args:
        bytecode: 0x-prefixed creation bytecode
        links: Library references reported by the compiler
        libraries: Contract id ("path:Name" or "Name") -> address or deployed contract

    Returns:
        LinkResult with the patched bytecode and the address used per library

    Raises:
        UnresolvedLibraryError: If a reference has no unique library, or a
                                library value has no address
    """
    cmap = ContractMap()
    for cid, impl in libraries.items():
        address = library_address(impl)
        if address is None:
            raise UnresolvedLibraryError(
                f"Unable to determine library address for {cid}: {impl!r}", library=cid
            )
        cmap.add(cid, address)

    linked: Dict[str, str] = {}
    for link in links:
        found = cmap.find(link.qualified_id)
        if found is None:
            raise UnresolvedLibraryError(
                f"Unlinked external library: {link.qualified_id}", library=link.qualified_id
            )
        matched, address = found
        digits = address[2:].lower()
        for offset in link.offsets:
            pos = 2 + 2 * offset
            bytecode = bytecode[:pos] + digits + bytecode[pos + ADDRESS_HEX_LENGTH:]
        linked[matched] = address
        logger.debug("linked %s -> %s", link.qualified_id, address)
    return LinkResult(bytecode, linked)
