"""Inspector that collects internal ETH transfers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from evmtrace.common import CreateScheme, Log

__all__ = [
    "TRANSFER_LOG_EMITTER",
    "TRANSFER_EVENT_TOPIC",
    "TransferKind",
    "TransferOperation",
    "Journal",
    "TransferInspector",
]

TRANSFER_LOG_EMITTER = bytes.fromhex("ee" * 20)
"""Sender of synthetic ETH transfer logs."""

TRANSFER_EVENT_TOPIC = bytes.fromhex(
    "ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
)
"""Topic of the `Transfer(address,address,uint256)` event."""


class TransferKind(Enum):
    CALL = "call"
    CREATE = "create"
    CREATE2 = "create2"
    SELFDESTRUCT = "selfdestruct"


@dataclass(frozen=True)
class TransferOperation:
    """A single value transfer."""

    kind: TransferKind
    sender: bytes
    receiver: bytes
    value: int


@dataclass
class Journal:
    """The part of the execution journal a transfer inspector needs."""

    depth: int = 0
    logs: list[Log] = field(default_factory=list)

    def log(self, log: Log) -> None:
        self.logs.append(log)


def _word(address: bytes) -> bytes:
    return bytes(address).rjust(32, b"\0")


class TransferInspector:
    """Collects non-zero ETH transfers, optionally emitting ERC20-style logs."""

    def __init__(self, internal_only: bool = False) -> None:
        self.internal_only = internal_only
        self.transfers: list[TransferOperation] = []
        self.insert_logs = False

    @classmethod
    def only_internal(cls) -> TransferInspector:
        """An inspector that ignores the top level call."""
        return cls(True)

    def with_logs(self, insert_logs: bool) -> TransferInspector:
        self.insert_logs = insert_logs
        return self

    def __iter__(self) -> Iterator[TransferOperation]:
        return iter(self.transfers)

    def __len__(self) -> int:
        return len(self.transfers)

    def _on_transfer(
        self, sender: bytes, receiver: bytes, value: int, kind: TransferKind, journal: Journal
    ) -> None:
        if self.internal_only and journal.depth == 0:
            return
        if value == 0:
            return
        self.transfers.append(TransferOperation(kind, sender, receiver, value))
        if self.insert_logs:
            journal.log(
                Log(
                    address=TRANSFER_LOG_EMITTER,
                    topics=(TRANSFER_EVENT_TOPIC, _word(sender), _word(receiver)),
                    data=value.to_bytes(32, "big"),
                )
            )

    def call(
        self, journal: Journal, transfer_from: bytes, transfer_to: bytes, value: int | None
    ) -> None:
        """Record a call; `value` is None when the call transfers no value."""
        if value is not None:
            self._on_transfer(transfer_from, transfer_to, value, TransferKind.CALL, journal)

    def create(
        self,
        journal: Journal,
        caller: bytes,
        created_address: bytes,
        value: int,
        scheme: CreateScheme,
    ) -> None:
        """Record a contract creation; custom creation schemes are ignored."""
        if scheme is CreateScheme.CREATE:
            kind = TransferKind.CREATE
        elif scheme is CreateScheme.CREATE2:
            kind = TransferKind.CREATE2
        else:
            return
        self._on_transfer(caller, created_address, value, kind, journal)

    def selfdestruct(self, contract: bytes, target: bytes, value: int) -> None:
        self.transfers.append(
            TransferOperation(TransferKind.SELFDESTRUCT, contract, target, value)
        )