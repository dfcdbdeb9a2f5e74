"""ABI fragments, interfaces and call/error/log decoding."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from eth_abi import decode
from eth_abi.exceptions import ABITypeError, DecodingError, ParseError
from eth_abi.grammar import TupleType, normalize, parse
from eth_utils import keccak, to_bytes

logger = logging.getLogger(__name__)

READ_ONLY_MUTABILITY = ("view", "pure")
SINGLETON_TYPES = ("constructor", "fallback", "receive")
SELECTOR_TYPES = ("function", "event", "error")


def canonical_type(param: Mapping[str, Any]) -> str:
    """
    Get the canonical ABI type of a parameter, expanding tuples.

    Raises:
        ParseError, ABITypeError: If the type is not valid ABI grammar
    """
    type_str = param["type"]
    if type_str.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param["components"])
        type_str = f"({inner}){type_str[len('tuple'):]}"
    else:
        type_str = normalize(type_str)
    parse(type_str).validate()
    return type_str


def as_bytes(value: Union[str, bytes, bytearray, memoryview]) -> bytes:
    """Convert a hex string or bytes-like value to bytes."""
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    return bytes(value)


@dataclass(frozen=True)
class Fragment:
    """One parsed ABI entry."""

    type: str
    name: str
    input_types: Tuple[str, ...]
    inputs: Tuple[Dict[str, Any], ...] = field(repr=False)
    state_mutability: str = "nonpayable"
    anonymous: bool = False
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_json(cls, item: Mapping[str, Any]) -> "Fragment":
        """
        Parse a JSON ABI entry.

        Raises:
            ParseError, ABITypeError, KeyError, TypeError: If the entry is malformed
        """
        kind = item.get("type", "function")
        name = item.get("name", "") if kind in SINGLETON_TYPES else item["name"]
        inputs = tuple(dict(x) for x in item.get("inputs", ()))
        mutability = item.get("stateMutability")
        if mutability is None:
            if item.get("constant"):
                mutability = "view"
            elif item.get("payable"):
                mutability = "payable"
            else:
                mutability = "nonpayable"
        return cls(
            type=kind,
            name=name,
            input_types=tuple(canonical_type(x) for x in inputs),
            inputs=inputs,
            state_mutability=mutability,
            anonymous=bool(item.get("anonymous", False)),
            raw=dict(item),
        )

    @property
    def signature(self) -> str:
        name = self.name or self.type
        return f"{name}({','.join(self.input_types)})"

    @property
    def key(self) -> Tuple[str, str]:
        return (self.type, self.signature)

    @property
    def topic(self) -> bytes:
        return keccak(text=self.signature)

    @property
    def selector(self) -> bytes:
        return self.topic[:4]

    @property
    def is_read_only(self) -> bool:
        return self.state_mutability in READ_ONLY_MUTABILITY

    def arg_names(self) -> List[str]:
        return [x.get("name") or str(i) for i, x in enumerate(self.inputs)]


@dataclass(frozen=True)
class Description:
    """A fragment together with decoded argument values."""

    fragment: Fragment
    args: Tuple[Any, ...]
    contract: Optional[str] = None

    @property
    def name(self) -> str:
        return self.fragment.name

    @property
    def signature(self) -> str:
        return self.fragment.signature

    def to_dict(self) -> Dict[str, Any]:
        return dict(zip(self.fragment.arg_names(), self.args))

    def __str__(self) -> str:
        if self.contract:
            return f"{self.contract}.{self.signature}"
        return self.signature


@dataclass(frozen=True)
class TransactionDescription(Description):
    value: int = 0


@dataclass(frozen=True)
class LogDescription(Description):
    address: Optional[str] = None


@dataclass(frozen=True)
class ErrorDescription(Description):
    @property
    def reason(self) -> str:
        if self.signature == "Error(string)":
            return self.args[0]
        if self.signature == "Panic(uint256)":
            return f"panic code 0x{self.args[0]:02x}"
        return f"{self.name}{self.args!r}" if self.args else f"{self.name}()"


class Interface:
    """A contract interface: an ordered set of fragments indexed by selector."""

    def __init__(self, fragments: Iterable[Fragment], name: Optional[str] = None):
        self.fragments: List[Fragment] = list(fragments)
        self.name = name
        self._functions: Dict[bytes, Fragment] = {}
        self._errors: Dict[bytes, Fragment] = {}
        self._events: Dict[bytes, Fragment] = {}
        for f in self.fragments:
            if f.type == "function":
                self._functions.setdefault(f.selector, f)
            elif f.type == "error":
                self._errors.setdefault(f.selector, f)
            elif f.type == "event":
                self._events.setdefault(f.topic, f)

    @classmethod
    def from_abi(cls, abi: Any, name: Optional[str] = None) -> "Interface":
        """
        Build an interface from JSON ABI, another interface or a deployed contract.

        Fragments the ABI grammar cannot parse are dropped.
        """
        if isinstance(abi, Interface):
            return abi if name is None else cls(abi.fragments, name)
        if isinstance(getattr(abi, "abi", None), Interface):
            return cls.from_abi(abi.abi, name)
        if isinstance(abi, str):
            abi = json.loads(abi)
        fragments = []
        for item in abi or ():
            try:
                fragments.append(Fragment.from_json(item))
            except (ParseError, ABITypeError, KeyError, TypeError, ValueError) as e:
                logger.debug("dropping ABI fragment %s: %s", item.get("name"), e)
        return cls(fragments, name)

    @property
    def functions(self) -> List[Fragment]:
        return [f for f in self.fragments if f.type == "function"]

    @property
    def events(self) -> List[Fragment]:
        return [f for f in self.fragments if f.type == "event"]

    @property
    def errors(self) -> List[Fragment]:
        return [f for f in self.fragments if f.type == "error"]

    @property
    def constructor(self) -> Optional[Fragment]:
        return next((f for f in self.fragments if f.type == "constructor"), None)

    def get_function(self, name_or_signature: str) -> Optional[Fragment]:
        for f in self.functions:
            if name_or_signature in (f.name, f.signature):
                return f
        return None

    def parse_transaction(self, tx: Any) -> Optional[TransactionDescription]:
        """
        Decode call data (bytes, hex, or a transaction mapping).

        Returns:
            Description, or None if no function has the selector

        Raises:
            DecodingError: If the selector matches but the arguments do not decode
        """
        value = 0
        if isinstance(tx, Mapping):
            value = tx.get("value") or 0
            tx = tx.get("input", tx.get("data")) or b""
        data = as_bytes(tx)
        fragment = self._functions.get(data[:4])
        if fragment is None:
            return None
        args = decode(list(fragment.input_types), data[4:])
        return TransactionDescription(fragment, tuple(args), self.name, value)

    def parse_error(self, data: Any) -> Optional[ErrorDescription]:
        """
        Decode revert data.

        Raises:
            DecodingError: If the selector matches but the arguments do not decode
        """
        data = as_bytes(data)
        fragment = self._errors.get(data[:4])
        if fragment is None:
            return None
        args = decode(list(fragment.input_types), data[4:])
        return ErrorDescription(fragment, tuple(args), self.name)

    def parse_log(self, log: Mapping[str, Any]) -> Optional[LogDescription]:
        """
        Decode an event log.

        Indexed values of dynamic or composite type are returned as their topic hash.

        Raises:
            DecodingError: If the topics or data do not fit the event
        """
        topics = [as_bytes(t) for t in log.get("topics", ())]
        if not topics:
            return None
        fragment = self._events.get(topics[0])
        if fragment is None:
            return None

        indexed = [
            (p, t) for p, t in zip(fragment.inputs, fragment.input_types) if p.get("indexed")
        ]
        if len(indexed) != len(topics) - 1:
            raise DecodingError(
                f"{fragment.signature}: expected {len(indexed)} indexed topics, "
                f"got {len(topics) - 1}"
            )
        data_types = [
            t for p, t in zip(fragment.inputs, fragment.input_types) if not p.get("indexed")
        ]
        data_values = iter(decode(data_types, as_bytes(log.get("data") or b"")))
        topic_values = iter(topics[1:])

        args = []
        for param, type_str in zip(fragment.inputs, fragment.input_types):
            if not param.get("indexed"):
                args.append(next(data_values))
                continue
            topic = next(topic_values)
            parsed = parse(type_str)
            if parsed.is_array or isinstance(parsed, TupleType) or type_str in ("string", "bytes"):
                args.append(topic)
            else:
                args.append(decode([type_str], topic)[0])
        return LogDescription(fragment, tuple(args), self.name, log.get("address"))

    def to_json(self) -> List[Dict[str, Any]]:
        return [dict(f.raw) for f in self.fragments]

    def __len__(self) -> int:
        return len(self.fragments)

    def __repr__(self) -> str:
        return f"Interface({self.name or 'anonymous'}, {len(self.fragments)} fragments)"


def merge_abi(*sources: Any, name: Optional[str] = None) -> Interface:
    """
    Merge several ABIs into one interface.

    Functions, events and errors are deduplicated by (kind, signature), first
    occurrence wins. Constructor, fallback and receive come from the first
    source only.
    """
    if not sources:
        return Interface([], name)
    first = Interface.from_abi(sources[0])
    if name is None:
        name = first.name
    if len(sources) == 1:
        return Interface(first.fragments, name)

    singletons: List[Fragment] = []
    unique: Dict[Tuple[str, str], Fragment] = {}
    for i, source in enumerate(sources):
        iface = first if i == 0 else Interface.from_abi(source)
        for f in iface.fragments:
            if f.type in SINGLETON_TYPES:
                if i == 0:
                    singletons.append(f)
            elif f.type in SELECTOR_TYPES:
                unique.setdefault(f.key, f)
    return Interface([*singletons, *unique.values()], name)


GENERIC_ERRORS = Interface.from_abi(
    [
        {"type": "error", "name": "Error", "inputs": [{"name": "reason", "type": "string"}]},
        {"type": "error", "name": "Panic", "inputs": [{"name": "code", "type": "uint256"}]},
    ]
)
