"""Polymorphic artifact resolution: bytecode, inline source, imports and project files."""

import json
import logging
import posixpath
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from .compiler import CompileOptions, abi_from_compiler_json, compile_source, extract_links
from .exceptions import UnknownArtifactDescriptorError
from .linker import remove_sol_ext
from .process import ProcessRunner
from .project import Project
from .types import Artifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BytecodeArtifact:
    """Precompiled bytecode plus its ABI."""

    bytecode: str
    abi: Any = ()
    contract_name: Optional[str] = None


@dataclass(frozen=True)
class SourceArtifact:
    """Inline Solidity source, compiled in a sandbox."""

    source: Union[str, Sequence[str]]
    options: CompileOptions = CompileOptions()


@dataclass(frozen=True)
class ImportArtifact:
    """A contract reachable by import path, e.g. "@openzeppelin/.../ERC20.sol"."""

    path: str
    options: CompileOptions = CompileOptions()


@dataclass(frozen=True)
class FileArtifact:
    """A contract from the project's own build output."""

    file: str
    contract_name: Optional[str] = None


ArtifactDescriptor = Union[BytecodeArtifact, SourceArtifact, ImportArtifact, FileArtifact]

_OPTION_KEYS = {
    "contract": "contract_name",
    "contract_name": "contract_name",
    "optimize": "optimize",
    "solc_version": "solc_version",
    "solcVersion": "solc_version",
    "evm_version": "evm_version",
    "evmVersion": "evm_version",
    "via_ir": "via_ir",
    "viaIR": "via_ir",
    "auto_header": "auto_header",
    "autoHeader": "auto_header",
}


def _options_from(data: Mapping[str, Any]) -> CompileOptions:
    known = {f.name for f in fields(CompileOptions)}
    kwargs = {}
    for key, value in data.items():
        name = _OPTION_KEYS.get(key)
        if name in known and value is not None:
            kwargs[name] = value
    return CompileOptions(**kwargs)


def descriptor_from(value: Any) -> ArtifactDescriptor:
    """
    Convert loose input into an artifact descriptor.

    Accepts a descriptor, a string ("0x..." is bytecode, anything else is
    source), or a mapping with one of the keys "bytecode" (with "abi"),
    "import", "sol"/"source", or "file" (each optionally with "contract").

    Raises:
        UnknownArtifactDescriptorError: If the input matches no shape
    """
    if isinstance(value, (BytecodeArtifact, SourceArtifact, ImportArtifact, FileArtifact)):
        return value
    if isinstance(value, str):
        if value.startswith("0x"):
            return BytecodeArtifact(value)
        return SourceArtifact(value)
    if isinstance(value, Mapping):
        contract = value.get("contract", value.get("contract_name"))
        if value.get("import"):
            return ImportArtifact(value["import"], _options_from(value))
        if value.get("bytecode"):
            return BytecodeArtifact(value["bytecode"], value.get("abi") or (), contract)
        source = value.get("sol", value.get("source"))
        if source:
            return SourceArtifact(source, _options_from(value))
        if value.get("file"):
            return FileArtifact(str(value["file"]), contract)
    raise UnknownArtifactDescriptorError(f"Unknown artifact: {value!r}")


class ArtifactResolver:
    """Turns any artifact descriptor into a uniform Artifact."""

    def __init__(
        self,
        project: Optional[Project] = None,
        runner: Optional[ProcessRunner] = None,
        tmp_root: Optional[Union[Path, str]] = None,
        forge: Optional[str] = None,
    ):
        self.project = project
        self.runner = runner or (project.runner if project is not None else ProcessRunner())
        self.tmp_root = tmp_root
        self.forge = forge

    async def resolve(self, descriptor: Any) -> Artifact:
        """
        Resolve a descriptor (or loose input accepted by descriptor_from).

        Raises:
            UnknownArtifactDescriptorError: If the input matches no shape
        """
        match descriptor_from(descriptor):
            case BytecodeArtifact(bytecode=bytecode, abi=abi, contract_name=contract):
                contract = contract or "Unnamed"
                if not bytecode.startswith("0x"):
                    bytecode = "0x" + bytecode
                return Artifact(
                    abi=abi_from_compiler_json(abi, contract),
                    bytecode=bytecode,
                    contract_name=contract,
                    origin="Bytecode",
                )
            case ImportArtifact(path=path, options=options):
                contract = options.contract_name or remove_sol_ext(posixpath.basename(path))
                options = replace(options, contract_name=contract, auto_header=True)
                return await self._compile(f'import "{path}";', options)
            case SourceArtifact(source=source, options=options):
                return await self._compile(source, options)
            case FileArtifact(file=file, contract_name=contract):
                return await self.file_artifact(file, contract)
        raise UnknownArtifactDescriptorError(f"Unknown artifact: {descriptor!r}")

    async def _compile(self, source: Union[str, Sequence[str]], options: CompileOptions) -> Artifact:
        return await compile_source(
            source,
            options,
            project=self.project,
            runner=self.runner,
            tmp_root=self.tmp_root,
            forge=self.forge,
        )

    async def file_artifact(self, file: str, contract: Optional[str] = None) -> Artifact:
        """
        Load a contract from the project's build output.

        Raises:
            UnknownArtifactDescriptorError: If there is no project
            ContractNotFoundError: If the build output is missing
        """
        if self.project is None:
            raise UnknownArtifactDescriptorError(f"File artifact {file} requires a project")
        out_file = await self.project.find_artifact(file, contract)
        with open(out_file) as f:
            data: Dict[str, Any] = json.load(f)

        targets = data.get("metadata", {}).get("settings", {}).get("compilationTarget", {})
        if targets:
            origin, contract = next(iter(targets.items()))
        else:
            origin, contract = file, contract or out_file.stem
        bytecode = data["bytecode"]
        links = extract_links(bytecode.get("linkReferences") or {})
        obj: str = bytecode["object"]
        return Artifact(
            abi=abi_from_compiler_json(data["abi"], contract),
            bytecode=obj if obj.startswith("0x") else "0x" + obj,
            contract_name=contract,
            origin=origin,
            links=links,
            file=self.project.root / origin,
        )
