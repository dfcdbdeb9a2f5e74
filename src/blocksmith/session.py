"""Node sessions: ephemeral node lifecycle, wallets, deployment and confirmation."""

import asyncio
import inspect
import itertools
import logging
import os
import time
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_utils import is_address, keccak, to_checksum_address

from .abi import ErrorDescription, Interface, LogDescription, TransactionDescription, merge_abi
from .artifacts import ArtifactResolver
from .config import SessionConfig
from .constants import DEFAULT_WALLET, LISTENING_PATTERN, WEI_PER_ETHER
from .exceptions import LaunchFailedError, MissingWalletError, UnknownArtifactDescriptorError
from .linker import library_address, link_bytecode
from .node_logs import LineSink, NodeOutputRouter, log_console_line, log_diagnostic_line
from .process import ProcessRunner, strip_ansi
from .project import Project
from .registry import AbiRegistry
from .rpc import NodeRpc
from .store import load_deployment, save_deployment
from .types import Artifact, DeployedContract, DeploymentRecord, TransactionReport, Wallet

logger = logging.getLogger(__name__)

Observer = Callable[[TransactionReport], None]
Account_ = Union[Wallet, DeployedContract]

_READ_SIZE = 65536


class SessionState(Enum):
    LAUNCHING = "launching"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def take_hash(address: str) -> str:
    return address[2:10]


async def _await_banner(proc: asyncio.subprocess.Process, args: Sequence[str], lines: List[str]) -> str:
    """
    Read node stdout until the "Listening on" banner.

    Raises:
        LaunchFailedError: If stderr produces output first, or the node exits
    """

    async def read_banner() -> Optional[str]:
        while True:
            raw = await proc.stdout.readline()
            if not raw:
                return None
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            lines.append(line)
            match = LISTENING_PATTERN.match(line)
            if match:
                return match.group(1)

    banner = asyncio.create_task(read_banner())
    stderr = asyncio.create_task(proc.stderr.read(_READ_SIZE))
    done, _ = await asyncio.wait({banner, stderr}, return_when=asyncio.FIRST_COMPLETED)
    if banner in done and banner.result() is not None:
        stderr.cancel()
        return banner.result()
    if stderr in done and stderr.result():
        banner.cancel()
        error = strip_ansi(stderr.result().decode("utf-8", errors="replace")).strip()
        raise LaunchFailedError(f"Node failed to launch: {error}", args=args, error=error)

    # stderr closed without output, or stdout closed first
    host = await banner
    if host is not None:
        stderr.cancel()
        return host
    raw = await stderr
    error = strip_ansi(raw.decode("utf-8", errors="replace")).strip()
    if error:
        raise LaunchFailedError(f"Node failed to launch: {error}", args=args, error=error)
    output = "\n".join(lines)
    raise LaunchFailedError(f"Node exited before listening:\n{output}", args=args, error=output)


class NodeSession:
    """
    A blockchain node plus everything deployed to it.

    Sessions are created with launch() (ephemeral anvil node) or connect_live()
    (an existing network, where deployments are recorded on disk and reused).
    """

    def __init__(
        self,
        rpc: NodeRpc,
        *,
        chain_id: int,
        config: Optional[SessionConfig] = None,
        project: Optional[Project] = None,
        process: Optional[asyncio.subprocess.Process] = None,
        runner: Optional[ProcessRunner] = None,
        endpoint: Optional[str] = None,
        automine: bool = False,
        live: bool = False,
    ):
        self.id = uuid.uuid4().hex
        self.rpc = rpc
        self.chain_id = chain_id
        self.config = config or SessionConfig()
        self.project = project
        self.process = process
        self.endpoint = endpoint
        self.automine = automine
        self.live = live
        self.state = SessionState.LAUNCHING if process is not None else SessionState.READY

        self.registry = AbiRegistry()
        self.resolver = ArtifactResolver(
            project,
            runner or ProcessRunner(progress_interval=self.config.progress_interval),
            self.config.resolved_tmp_root(),
            self.config.forge,
        )
        self.wallets: Dict[str, Wallet] = {}
        self.accounts: Dict[str, Account_] = {}
        self._pending_wallets: Dict[str, "asyncio.Future[Wallet]"] = {}
        self._wallet_ids = itertools.count(1)
        self._observers: List[Observer] = []
        self._tasks: List[asyncio.Task] = []
        self._stopping: Optional["asyncio.Future[None]"] = None
        self._started = time.monotonic()

    # Construction

    @classmethod
    async def launch(
        cls,
        config: Optional[SessionConfig] = None,
        *,
        project: Optional[Project] = None,
        console_sink: Optional[LineSink] = log_console_line,
        diagnostic_sink: Optional[LineSink] = log_diagnostic_line,
    ) -> "NodeSession":
        """
        Spawn an ephemeral node and wait until it is ready.

        Args:
            config: Session configuration
            project: Project for remappings and file artifacts (loaded from
                     config.root when omitted and a root is configured)
            console_sink: Receives contract console.log lines
            diagnostic_sink: Receives all other node output

        Raises:
            LaunchFailedError: If the node writes to stderr or exits before its banner
        """
        config = config or SessionConfig()
        runner = ProcessRunner(progress_interval=config.progress_interval)
        if project is None and config.root is not None:
            project = await Project.load(config.root, config.resolved_profile(), config.forge, runner)

        args = config.node_args()
        try:
            proc = await asyncio.create_subprocess_exec(
                config.anvil,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, "RUST_LOG": "node=info"},
            )
        except FileNotFoundError as e:
            raise LaunchFailedError(f"{config.anvil}: command not found", args=args) from e

        boot_lines: List[str] = []
        try:
            host = await _await_banner(proc, args, boot_lines)
        except BaseException:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        router = NodeOutputRouter(console_sink, diagnostic_sink)
        for line in boot_lines:
            router.feed(line)

        endpoint = f"http://{host}"
        rpc = NodeRpc.connect(endpoint)
        session = cls(rpc, chain_id=0, config=config, project=project, process=proc, runner=runner, endpoint=endpoint)
        session._tasks = [
            asyncio.create_task(_pump_lines(proc.stdout, router)),
            asyncio.create_task(_pump_lines(proc.stderr, router)),
        ]
        try:
            session.chain_id = config.chain or await rpc.chain_id()
            session.automine = await rpc.automine()
            if session.automine:
                # Every transaction mines a block, so responses never go stale
                await rpc.disconnect()
                session.rpc = NodeRpc.connect(endpoint, cache=True)
            await asyncio.gather(*(session.ensure_wallet(name) for name in config.wallets))
        except BaseException:
            await session.shutdown()
            raise

        session.state = SessionState.READY
        logger.info(
            "LAUNCH chain=%d endpoint=%s automine=%s wallets=%s",
            session.chain_id,
            endpoint,
            session.automine,
            session.pretty(list(session.wallets.values())),
        )
        return session

    @classmethod
    async def connect_live(
        cls,
        rpc: Union[NodeRpc, str],
        *,
        config: Optional[SessionConfig] = None,
        project: Optional[Project] = None,
        wallets: Optional[Mapping[str, Any]] = None,
    ) -> "NodeSession":
        """
        Attach to a live network.

        Args:
            rpc: RPC client or endpoint URL
            config: Session configuration
            project: Project for remappings, file artifacts and the deployments root
            wallets: Wallet name -> private key
        """
        config = config or SessionConfig()
        if isinstance(rpc, str):
            rpc = NodeRpc.connect(rpc)
        runner = ProcessRunner(progress_interval=config.progress_interval)
        if project is None and config.root is not None:
            project = await Project.load(config.root, config.resolved_profile(), config.forge, runner)
        chain_id = config.chain or await rpc.chain_id()
        session = cls(
            rpc,
            chain_id=chain_id,
            config=config,
            project=project,
            runner=runner,
            endpoint=rpc.endpoint,
            live=True,
        )
        for name, key in (wallets or {}).items():
            session.import_wallet(name, key)
        logger.info("CONNECT chain=%d endpoint=%s", chain_id, rpc.endpoint)
        return session

    async def __aenter__(self) -> "NodeSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    @property
    def deployments_root(self) -> Path:
        if self.config.deployments_root is None and self.config.root is None and self.project:
            return self.project.root
        return self.config.resolved_deployments_root()

    # Wallets

    def import_wallet(self, name: str, private_key: Any) -> Wallet:
        """Register a wallet from an existing private key."""
        if name in self.wallets:
            raise ValueError(f"Wallet already exists: {name}")
        wallet = Wallet(name, Account.from_key(private_key), self.id)
        self._register_wallet(wallet)
        return wallet

    async def ensure_wallet(self, wallet: Union[str, Wallet], ether: Optional[int] = None) -> Wallet:
        """
        Get the wallet with this name, creating and funding it on first use.

        The key is derived from the name, so a name always maps to the same address.

        Raises:
            MissingWalletError: If wallet is not a name, or is unknown on a live network
        """
        if isinstance(wallet, Wallet):
            return self.require_wallet(wallet)
        if not isinstance(wallet, str) or not wallet or is_address(wallet):
            raise MissingWalletError(f"Expected wallet name, got {wallet!r}")
        existing = self.wallets.get(wallet)
        if existing is not None:
            return existing
        if self.live:
            raise MissingWalletError(f"Unknown wallet on live network: {wallet}")

        pending = self._pending_wallets.get(wallet)
        if pending is None:
            pending = asyncio.ensure_future(self._create_wallet(wallet, ether))
            self._pending_wallets[wallet] = pending
            pending.add_done_callback(lambda _: self._pending_wallets.pop(wallet, None))
        return await pending

    async def _create_wallet(self, name: str, ether: Optional[int]) -> Wallet:
        account = Account.from_key(keccak(text=name))
        ether = self.config.ether if ether is None else ether
        if ether > 0:
            await self.rpc.set_balance(account.address, ether * WEI_PER_ETHER)
        wallet = Wallet(name, account, self.id)
        self._register_wallet(wallet)
        return wallet

    def _register_wallet(self, wallet: Wallet) -> None:
        self.wallets[wallet.name] = wallet
        self.accounts[wallet.address] = wallet

    async def create_wallet(self, prefix: str = "random", ether: Optional[int] = None) -> Wallet:
        """Create a fresh wallet named <prefix><n> from the session counter."""
        while True:
            name = f"{prefix}{next(self._wallet_ids)}"
            if name not in self.wallets and name not in self._pending_wallets:
                return await self.ensure_wallet(name, ether)

    def require_wallet(self, *candidates: Any) -> Wallet:
        """
        Get the first given wallet (by handle, name or address) owned by this session.

        Raises:
            MissingWalletError: If a candidate is unknown or owned by another session
        """
        for x in candidates:
            if not x:
                continue
            if isinstance(x, Wallet):
                if x.owner_session_id == self.id:
                    return x
                raise MissingWalletError(f"Unowned wallet: {x.name}")
            if isinstance(x, str):
                if is_address(x):
                    found = self.accounts.get(to_checksum_address(x))
                    if isinstance(found, Wallet):
                        return found
                else:
                    found = self.wallets.get(x)
                    if found is not None:
                        return found
            raise MissingWalletError(f"Expected wallet: {x!r}")
        raise MissingWalletError("Missing required wallet")

    async def _sender(self, wallet: Union[str, Wallet]) -> Wallet:
        if self.live:
            return self.require_wallet(wallet)
        return await self.ensure_wallet(wallet)

    # Deployment

    async def deploy(
        self,
        descriptor: Any,
        *,
        from_: Union[str, Wallet] = DEFAULT_WALLET,
        args: Sequence[Any] = (),
        libs: Optional[Mapping[str, Any]] = None,
        abis: Iterable[Any] = (),
        prefix: str = "",
        silent: bool = False,
    ) -> DeployedContract:
        """
        Resolve, link and deploy a contract.

        On a live network an existing record for (chain id, prefix, contract
        name) is reused instead of deploying again, and new deployments are
        recorded.

        Args:
            descriptor: Artifact descriptor (see artifacts.descriptor_from)
            from_: Deployer wallet
            args: Constructor arguments
            libs: Library contract id -> address or deployed contract
            abis: Extra ABIs merged into the contract's interface
            prefix: Deployment record name prefix (live networks)
            silent: Skip DEPLOY logging

        Raises:
            UnresolvedLibraryError: If a library reference cannot be linked
            UnknownArtifactDescriptorError: If the artifact has no bytecode
        """
        wallet = await self._sender(from_)
        artifact = await self.resolver.resolve(descriptor)
        abi = merge_abi(artifact.abi, *abis, name=artifact.contract_name)

        if self.live:
            record = load_deployment(self.deployments_root, self.chain_id, prefix, artifact.contract_name)
            if record is not None:
                return self._attach_record(record, artifact, wallet)

        linked = link_bytecode(artifact.bytecode, artifact.links, libs or {})
        if len(linked.bytecode) <= 2:
            raise UnknownArtifactDescriptorError(
                f"No bytecode for {artifact.contract_name} ({artifact.origin})"
            )
        args = list(args)
        abi_json = abi.to_json()
        tx = await self.rpc.build_deploy_transaction(abi_json, linked.bytecode, args, wallet.address)
        tx_hash = await self.rpc.send_transaction(wallet.account, tx)
        receipt = await self.rpc.wait_for_receipt(tx_hash)
        address = receipt["contractAddress"]
        code = await self.rpc.get_code(address)

        self.registry.index(abi)
        contract = DeployedContract(
            address=address,
            abi=abi,
            handle=self.rpc.contract(address, abi_json),
            display_name=f"{artifact.contract_name}<{take_hash(address)}>",
            owner_session_id=self.id,
            artifact=artifact,
            receipt=receipt,
            links=linked.linked,
            constructor_args=args,
            deployer=wallet,
            code_size=len(code),
        )
        self.accounts[address] = contract

        if self.live:
            save_deployment(
                self.deployments_root,
                self.chain_id,
                prefix,
                DeploymentRecord(
                    name=artifact.contract_name,
                    address=address,
                    abi=abi_json,
                    bytecode=linked.bytecode,
                    links=linked.linked,
                    receipt=dict(receipt),
                    constructor_args=args,
                ),
            )

        events = self._decode_logs(receipt)
        if not silent:
            logger.info(
                "DEPLOY %s %s %s %dgas %dbytes%s",
                self.pretty(wallet),
                artifact.origin,
                contract,
                receipt["gasUsed"],
                len(code),
                f" {self.pretty(linked.linked)}" if linked.linked else "",
            )
            self._log_events(events)
        self._notify(TransactionReport(tx, receipt, None, events, receipt["gasUsed"]))
        return contract

    def _attach_record(
        self, record: DeploymentRecord, artifact: Artifact, wallet: Wallet
    ) -> DeployedContract:
        abi = Interface.from_abi(record.abi, record.name)
        self.registry.index(abi)
        contract = DeployedContract(
            address=record.address,
            abi=abi,
            handle=self.rpc.contract(record.address, record.abi),
            display_name=f"{record.name}<{take_hash(record.address)}>",
            owner_session_id=self.id,
            artifact=artifact,
            receipt=record.receipt,
            links=record.links,
            constructor_args=record.constructor_args,
            deployer=wallet,
            already_deployed=True,
        )
        self.accounts[record.address] = contract
        logger.info("DEPLOY %s already deployed at %s", contract, record.address)
        return contract

    async def deployed(
        self,
        descriptor: Any,
        at: str,
        *,
        abis: Iterable[Any] = (),
    ) -> DeployedContract:
        """Attach to a contract that is already deployed at an address."""
        artifact = await self.resolver.resolve(descriptor)
        abi = merge_abi(artifact.abi, *abis, name=artifact.contract_name)
        address = to_checksum_address(at)
        self.registry.index(abi)
        contract = DeployedContract(
            address=address,
            abi=abi,
            handle=self.rpc.contract(address, abi.to_json()),
            display_name=f"{artifact.contract_name}<{take_hash(address)}>",
            owner_session_id=self.id,
            artifact=artifact,
            already_deployed=True,
        )
        self.accounts[address] = contract
        return contract

    # Transactions

    async def send(self, call: Any, *, from_: Union[str, Wallet] = DEFAULT_WALLET, value: int = 0) -> bytes:
        """
        Sign and submit a contract function call, e.g. contract.handle.functions.f(1).

        Returns:
            Transaction hash, suitable for confirm()
        """
        wallet = await self._sender(from_)
        tx = await self.rpc.build_call_transaction(call, wallet.address, value)
        return await self.rpc.send_transaction(wallet.account, tx)

    async def confirm(self, tx: Any, *, silent: bool = False, **extra: Any) -> Any:
        """
        Wait for a transaction, decode it and report it.

        Args:
            tx: Transaction hash, or an awaitable producing one
            silent: Skip TX/EVENT logging
            extra: Extra fields shown in the TX log line

        Returns:
            The transaction receipt
        """
        if inspect.isawaitable(tx):
            tx = await tx
        receipt = await self.rpc.wait_for_receipt(tx)
        transaction = await self.rpc.get_transaction(tx)
        desc = self.decode_transaction(transaction)
        events = self._decode_logs(receipt)
        if not silent:
            self._log_transaction(transaction, receipt, desc, extra)
            self._log_events(events)
        self._notify(TransactionReport(transaction, receipt, desc, events, receipt["gasUsed"]))
        return receipt

    def _log_transaction(
        self,
        transaction: Mapping[str, Any],
        receipt: Mapping[str, Any],
        desc: Optional[TransactionDescription],
        extra: Dict[str, Any],
    ) -> None:
        args: Dict[str, Any] = {"gas": receipt["gasUsed"], **extra}
        action = None
        if desc is not None:
            args.update(desc.to_dict())
            action = str(desc)
        else:
            data = bytes(transaction.get("input") or b"")
            if len(data) >= 4:
                action = "0x" + data[:4].hex()
                if len(data) > 4:
                    args["calldata"] = "0x" + data[4:].hex()
        if transaction.get("value"):
            args["value"] = transaction["value"]
        logger.info(
            "TX %s >> %s %s%s",
            self.pretty(receipt["from"]),
            self.pretty(receipt["to"]),
            f"{action} " if action else "",
            self.pretty(args),
        )

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def _notify(self, report: TransactionReport) -> None:
        for observer in self._observers:
            observer(report)

    # Decoding

    def decode_transaction(self, tx: Mapping[str, Any]) -> Optional[TransactionDescription]:
        """Decode a transaction using its target's interface, then every known interface."""
        to = tx.get("to")
        target = self.accounts.get(to_checksum_address(to)) if to else None
        if isinstance(target, DeployedContract):
            try:
                desc = target.abi.parse_transaction(tx)
            except DecodingError:
                desc = None
            if desc is not None:
                return desc
        return self.registry.decode_transaction(tx)

    def decode_error(self, error: Any) -> Optional[ErrorDescription]:
        """Decode revert data, or an exception carrying it in .data."""
        data = error if isinstance(error, (str, bytes, bytearray)) else getattr(error, "data", None)
        if not data:
            return None
        return self.registry.decode_error(data)

    def decode_log(self, log: Mapping[str, Any]) -> Optional[LogDescription]:
        return self.registry.decode_log(log)

    def _decode_logs(self, receipt: Mapping[str, Any]) -> List[LogDescription]:
        events = []
        for log in receipt.get("logs") or ():
            event = self.registry.decode_log(log)
            if event is not None:
                events.append(event)
        return events

    def _log_events(self, events: List[LogDescription]) -> None:
        for event in events:
            if event.args:
                logger.info("EVENT %s %s", event.signature, self.pretty(event.to_dict()))
            else:
                logger.info("EVENT %s", event.signature)

    def pretty(self, value: Any) -> Any:
        """Replace known addresses and handles with display names, recursively."""
        if isinstance(value, (Wallet, DeployedContract)):
            return value.display_name
        if isinstance(value, str):
            if is_address(value):
                known = self.accounts.get(to_checksum_address(value))
                if known is not None:
                    return known.display_name
            return value
        if isinstance(value, (bytes, bytearray)):
            return "0x" + bytes(value).hex()
        if isinstance(value, Mapping):
            return {k: self.pretty(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.pretty(v) for v in value]
        return value

    # Node control

    async def next_block(self, blocks: int = 1) -> None:
        await self.rpc.mine(blocks)

    async def set_storage_value(self, target: Any, slot: int, value: Union[int, bytes]) -> None:
        """
        Overwrite one storage slot.

        Raises:
            TypeError: If bytes are not exactly 32 long
        """
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 32:
                raise TypeError("expected exactly 32 bytes")
            value = bytes(value)
        else:
            value = value.to_bytes(32, "big")
        await self.rpc.set_storage_at(self._target_address(target), slot, value)

    async def set_storage_bytes(self, target: Any, slot: int, value: bytes) -> None:
        """
        Store a bytes/string value at a slot using Solidity's storage layout.

        Higher slots left over from a previous longer value are not cleared.
        """
        address = self._target_address(target)
        if len(value) < 32:
            # short form: data left-aligned, length * 2 in the last byte
            word = bytearray(32)
            word[: len(value)] = value
            word[31] = len(value) << 1
            await self.set_storage_value(address, slot, bytes(word))
            return
        writes = [self.set_storage_value(address, slot, (len(value) << 1) | 1)]
        base = int.from_bytes(keccak(slot.to_bytes(32, "big")), "big")
        for i in range(0, len(value), 32):
            chunk = value[i: i + 32].ljust(32, b"\0")
            writes.append(self.set_storage_value(address, base + i // 32, chunk))
        await asyncio.gather(*writes)

    def _target_address(self, target: Any) -> str:
        address = library_address(target)
        if address is None:
            raise ValueError(f"Expected address or contract, got {target!r}")
        return address

    def shutdown(self) -> "asyncio.Future[None]":
        """
        Stop the session: disconnect RPC and terminate the node process.

        Idempotent; every call returns the same awaitable.
        """
        if self._stopping is None:
            self._stopping = asyncio.ensure_future(self._teardown())
        return self._stopping

    async def _teardown(self) -> None:
        self.state = SessionState.SHUTTING_DOWN
        await self.rpc.disconnect()
        if self.process is not None:
            if self.process.returncode is None:
                try:
                    self.process.terminate()
                except ProcessLookupError:
                    pass
            await self.process.wait()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self.state = SessionState.STOPPED
        uptime = int((time.monotonic() - self._started) * 1000)
        logger.info("STOP %dms", uptime)


async def _pump_lines(stream: asyncio.StreamReader, router: NodeOutputRouter) -> None:
    while True:
        raw = await stream.readline()
        if not raw:
            break
        router.feed(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
