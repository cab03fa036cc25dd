"""Data types for checkpoints, DApp interactions and rankings."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True, slots=True)
class DAppInteraction:
    """One user interaction with a tracked DApp, kept in memory only."""

    package_id: str
    sender: str
    timestamp: datetime
    transaction_digest: str
    dapp_name: str | None = None


@dataclass(slots=True)
class DAppRanking:
    """A DApp's position by hourly active users."""

    rank: int
    package_id: str
    dapp_name: str
    dau_1h: int
    last_update: datetime
    dapp_type: str


@dataclass(frozen=True, slots=True)
class DAppRankingRecord:
    """A row of the ``dapp_rankings`` table."""

    rank_position: int
    package_id: str
    dapp_name: str
    dau_1h: int
    dapp_type: str
    last_update: datetime | None = None


@dataclass(frozen=True, slots=True)
class Event:
    """An event emitted by a Move package in a transaction."""

    package_id: str
    sender: str


@dataclass(frozen=True, slots=True)
class CheckpointTransaction:
    """A transaction within a checkpoint, with its events if any."""

    digest: str
    events: tuple[Event, ...] | None = None


@dataclass(frozen=True, slots=True)
class CheckpointData:
    """A checkpoint: its sequence number, time and transactions."""

    sequence_number: int
    timestamp_ms: int
    transactions: tuple[CheckpointTransaction, ...] = ()

    @property
    def timestamp(self) -> datetime:
        """Checkpoint time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CheckpointData":
        """Build a checkpoint from its decoded JSON form.

        Expected shape::

            {"checkpoint_summary": {"sequence_number": N, "timestamp_ms": T},
             "transactions": [{"transaction": {"digest": D},
                               "events": {"data": [{"package_id": P, "sender": S}]}}]}

        ``events`` may also be a plain list or null.
        """
        try:
            summary = data["checkpoint_summary"]
            sequence_number = _unsigned(summary["sequence_number"], "sequence_number")
            timestamp_ms = _unsigned(summary["timestamp_ms"], "timestamp_ms")
            transactions = tuple(
                _transaction_from_dict(tx) for tx in data.get("transactions") or ()
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed checkpoint data: {exc!r}") from exc
        return cls(sequence_number, timestamp_ms, transactions)


def _unsigned(value: Any, name: str) -> int:
    number = int(value)
    if number < 0:
        raise ValueError(f"{name} must not be negative")
    return number


def _transaction_from_dict(tx: Mapping[str, Any]) -> CheckpointTransaction:
    digest = str(tx["transaction"]["digest"])
    raw_events = tx.get("events")
    if raw_events is None:
        return CheckpointTransaction(digest, None)
    if isinstance(raw_events, Mapping):
        raw_events = raw_events["data"]
    events = tuple(
        Event(package_id=str(event["package_id"]), sender=str(event["sender"]))
        for event in raw_events
    )
    return CheckpointTransaction(digest, events)