"""Sandboxed on-demand compilation of inline Solidity source."""

import copy
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from eth_utils import keccak

from .abi import Interface
from .constants import (
    CONFIG_NAME,
    CONTRACT_NAME_PATTERN,
    DEFAULT_LICENSE,
    DEFAULT_OPTIMIZER_RUNS,
    DEFAULT_PRAGMA,
    DEFAULT_PROFILE,
    LICENSE_PATTERN,
    PRAGMA_PATTERN,
    PROFILE_ENV,
)
from .exceptions import (
    BuildFailedError,
    ContractNotFoundError,
    MalformedLinkReferenceError,
    MissingContractNameError,
)
from .paths import get_sandbox_dir
from .process import ProcessRunner
from .profile import encode_profile
from .project import Project, filter_errors
from .types import Artifact, LibraryReference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileOptions:
    """Per-compile settings; None means "use the profile's value"."""

    contract_name: Optional[str] = None
    optimize: Optional[Union[bool, int]] = None  # True = 200 runs
    solc_version: Optional[str] = None
    evm_version: Optional[str] = None
    via_ir: Optional[bool] = None
    auto_header: bool = True


def infer_contract_name(source: str) -> str:
    """
    Find the first contract or library declared in source.

    Raises:
        MissingContractNameError: If there is no declaration
    """
    match = CONTRACT_NAME_PATTERN.search(source)
    if match is None:
        raise MissingContractNameError(f"Expected contract name in source:\n{source}")
    return match.group(2)


def add_default_header(source: str) -> str:
    """Prepend a pragma and an SPDX license line when they are missing."""
    if not PRAGMA_PATTERN.search(source):
        source = f"{DEFAULT_PRAGMA}\n{source}"
    if not LICENSE_PATTERN.search(source):
        source = f"{DEFAULT_LICENSE}\n{source}"
    return source


def abi_from_compiler_json(abi: List[Dict[str, Any]], name: Optional[str] = None) -> Interface:
    """
    Build an interface from compiler ABI output.

    Fragments that do not parse are dropped; solc emits some (e.g. external
    library functions taking storage pointers) that are not valid ABI.
    """
    return Interface.from_abi(abi, name)


def extract_links(
    link_references: Dict[str, Dict[str, List[Dict[str, int]]]]
) -> Tuple[LibraryReference, ...]:
    """
    Convert a compiler linkReferences map into library references.

    Raises:
        MalformedLinkReferenceError: If a reference does not span 20 bytes
    """
    links = []
    for file, by_contract in link_references.items():
        for contract, ranges in by_contract.items():
            offsets = []
            for r in ranges:
                if r["length"] != 20:
                    raise MalformedLinkReferenceError(
                        f"Expected 20 bytes for {file}:{contract} at {r['start']}, got {r['length']}",
                        file=file,
                        contract=contract,
                        start=r["start"],
                        length=r["length"],
                    )
                offsets.append(r["start"])
            links.append(LibraryReference(file, contract, tuple(offsets)))
    return tuple(links)


def source_hash(source: str) -> str:
    return keccak(text=source).hex()


def build_profile_config(
    options: CompileOptions, project: Optional[Project] = None
) -> Dict[str, Any]:
    """
    Build the profile table for a sandbox compile.

    Project remappings (plus @src and @test) are rewritten to absolute paths so
    they still resolve from the sandbox.
    """
    if project is not None:
        config = copy.deepcopy(project.config)
        remappings: List[Tuple[str, str]] = [
            ("@src", project.src),
            ("@test", project.test),
        ]
        remappings += [tuple(s.split("=", 1)) for s in project.remappings]
        config["remappings"] = [
            _absolute_remapping(project.root, prefix, target) for prefix, target in remappings
        ]
    else:
        config = {}

    optimize = options.optimize
    if optimize is not None:
        if optimize is True:
            optimize = DEFAULT_OPTIMIZER_RUNS
        if optimize is False:
            config["optimizer"] = False
        else:
            config["optimizer"] = True
            config["optimizer_runs"] = int(optimize)
    if options.solc_version:
        config["solc_version"] = options.solc_version
    if options.evm_version:
        config["evm_version"] = options.evm_version
    if options.via_ir is not None:
        config["via_ir"] = bool(options.via_ir)
    return config


def _absolute_remapping(root: Path, prefix: str, target: str) -> str:
    pos = prefix.find(":")
    if pos >= 0:
        # Remapping context, e.g. "lib/foo:@oz/=..."
        prefix = os.path.join(root, prefix[:pos]) + prefix[pos:]
    return f"{prefix}={os.path.join(root, target)}"


def _prepare_sandbox(root: Path, src_dir: str, contract: str, source: str) -> Path:
    shutil.rmtree(root, ignore_errors=True)
    src = root / src_dir
    src.mkdir(parents=True, exist_ok=True)
    file = src / f"{contract}.sol"
    file.write_text(source)
    return file


def find_compiled_unit(
    contracts: Dict[str, Any], file: Path, root: Path, contract: str
) -> Optional[Dict[str, Any]]:
    """
    Find a contract's build unit, preferring the synthesized source file.

    forge reports files either absolute or relative to the root; both are tried
    before falling back to the first unit with a matching name.
    """
    for key in (str(file), os.path.relpath(file, root)):
        units = contracts.get(key, {}).get(contract)
        if units:
            return units[0]
    for units_by_name in contracts.values():
        units = units_by_name.get(contract)
        if units:
            return units[0]
    return None


async def compile_source(
    source: Union[str, Sequence[str]],
    options: Optional[CompileOptions] = None,
    *,
    project: Optional[Project] = None,
    runner: Optional[ProcessRunner] = None,
    tmp_root: Optional[Union[Path, str]] = None,
    forge: Optional[str] = None,
) -> Artifact:
    """
    Compile inline source in an isolated, content-addressed directory.

    Args:
        source: Solidity source text, or a sequence of lines
        options: Compile options
        project: Project whose remappings and settings apply
        runner: Process runner
        tmp_root: Sandbox root (defaults to <system tmp>/blocksmith)
        forge: forge executable (defaults to the project's, else "forge")

    Returns:
        Artifact for the requested contract

    Raises:
        MissingContractNameError: If no contract name is given or declared
        BuildFailedError: If the compiler reports errors
        ContractNotFoundError: If the output lacks the contract
        ProcessError: If forge fails to run
    """
    options = options or CompileOptions()
    runner = runner or (project.runner if project is not None else ProcessRunner())
    if forge is None:
        forge = project.forge if project is not None else "forge"
    if not isinstance(source, str):
        source = "\n".join(source)

    contract = options.contract_name or infer_contract_name(source)
    if options.auto_header:
        source = add_default_header(source)

    digest = source_hash(source)
    root = get_sandbox_dir(digest, tmp_root)
    src_dir = project.src if project is not None else "src"
    file = _prepare_sandbox(root, src_dir, contract, source)

    config_file = root / CONFIG_NAME
    config = build_profile_config(options, project)
    config_file.write_text(encode_profile({"profile": {DEFAULT_PROFILE: config}}))

    args = [
        "build",
        "--format-json",
        "--root", str(root),
        "--no-cache",
        "--config-path", str(config_file),
    ]
    res = await runner.run_json(forge, args, {PROFILE_ENV: DEFAULT_PROFILE})
    errors = filter_errors(res.get("errors"))
    if errors:
        raise BuildFailedError(f"forge build failed for {contract}", errors=errors, source=source)

    contracts = res.get("contracts") or {}
    unit = find_compiled_unit(contracts, file, root, contract)
    if unit is None:
        raise ContractNotFoundError(
            f"Expected contract {contract} in build output (found: {', '.join(contracts)})",
            contract=contract,
            file=str(file),
        )
    unit = unit.get("contract", unit)
    bytecode = unit["evm"]["bytecode"]
    logger.debug("compiled %s in %s", contract, root)
    return Artifact(
        abi=abi_from_compiler_json(unit["abi"], contract),
        bytecode="0x" + bytecode["object"].removeprefix("0x"),
        contract_name=contract,
        origin=f"InlineCode{{{digest[:8]}}}",
        links=extract_links(bytecode.get("linkReferences") or {}),
        source=source,
        file=file,
        root=root,
    )
