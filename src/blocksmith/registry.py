"""Selector-indexed ABI registry used to decode transactions, errors and logs."""

import logging
from typing import Any, Dict, Iterator, Mapping, Optional

from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from .abi import (
    GENERIC_ERRORS,
    ErrorDescription,
    Interface,
    LogDescription,
    TransactionDescription,
    as_bytes,
)

logger = logging.getLogger(__name__)

# selector => (keccak(signature) => interface)
SelectorBuckets = Dict[bytes, Dict[bytes, Interface]]


class AbiRegistry:
    """Remembers every indexed interface by function/error selector and event topic."""

    def __init__(self) -> None:
        self.writes: SelectorBuckets = {}
        self.errors: SelectorBuckets = {}
        self.events: Dict[bytes, Interface] = {}

    def index(self, abi: Any) -> Interface:
        """
        Add an interface's non-read-only functions, events and errors.

        Returns:
            The indexed interface
        """
        iface = Interface.from_abi(abi)
        for f in iface.functions:
            if f.is_read_only:
                continue
            self.writes.setdefault(f.selector, {})[keccak(text=f.signature)] = iface
        for f in iface.errors:
            self.errors.setdefault(f.selector, {})[keccak(text=f.signature)] = iface
        for f in iface.events:
            self.events[f.topic] = iface
        return iface

    def decode_transaction(self, tx: Any) -> Optional[TransactionDescription]:
        """
        Decode call data using every interface sharing its selector.

        Returns:
            First successful decoding, or None
        """
        data = _call_data(tx)
        for iface in self._bucket(self.writes, data[:4]):
            try:
                desc = iface.parse_transaction(tx)
            except DecodingError:
                continue
            if desc is not None:
                return desc
        return None

    def decode_error(self, data: Any) -> Optional[ErrorDescription]:
        """
        Decode revert data, falling back to Error(string) and Panic(uint256).

        Returns:
            First successful decoding, or None
        """
        data = as_bytes(data)
        for iface in self._bucket(self.errors, data[:4]):
            try:
                desc = iface.parse_error(data)
            except DecodingError:
                continue
            if desc is not None:
                return desc
        try:
            return GENERIC_ERRORS.parse_error(data)
        except DecodingError:
            return None

    def decode_log(self, log: Mapping[str, Any]) -> Optional[LogDescription]:
        """Decode an event log by its first topic."""
        topics = log.get("topics") or ()
        if not topics:
            return None
        iface = self.events.get(as_bytes(topics[0]))
        if iface is None:
            return None
        try:
            return iface.parse_log(log)
        except DecodingError as e:
            logger.debug("undecodable log for %s: %s", iface.name, e)
            return None

    @staticmethod
    def _bucket(buckets: SelectorBuckets, selector: bytes) -> Iterator[Interface]:
        yield from buckets.get(selector, {}).values()


def _call_data(tx: Any) -> bytes:
    if isinstance(tx, Mapping):
        tx = tx.get("input", tx.get("data")) or b""
    return as_bytes(tx)
