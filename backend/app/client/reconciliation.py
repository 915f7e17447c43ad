"""
reconciliation.py — Client Reconciliation Cache.

A connected client's local, ordered view of the alert set. Three sources
feed it:

    1. explicit reads        list() / get() results
    2. optimistic writes     shown immediately, before the server answers
    3. fan-out messages      alertUpdate / alertDeleted from the socket

═══════════════════════════════════════════════════════════════════════════
IDENTITY
═══════════════════════════════════════════════════════════════════════════

Every entry is exactly one of:

    Pending(local_id)      optimistic, no server id yet
    Committed(server_id)   confirmed by the server

Merging an incoming server record:

    ┌─ Committed entry with the same id?            → replace in place
    ├─ Pending entry with same createdBy + title,
    │  created within ``match_window`` of createdAt? → promote in place
    └─ otherwise                                     → append

Position is preserved on replace/promote, so a client's own optimistic
alert does not jump to the end of the list when the authoritative copy
arrives. Merging the same record twice leaves the same state as merging
it once.

Out-of-order delivery:

    • a record whose ``version`` is older than the cached copy is ignored
    • a deleted server id is remembered (bounded), so a late update or
      HTTP response for it never brings the alert back

A client that knows which optimistic entry a server answer belongs to calls
``commit(local_id, record)``; the match heuristic is only for records
that arrive from elsewhere (the socket echo, another tab).

No operation raises on bad input. A record without an id is dropped and
reported through ``MergeResult.warning`` (and the log).
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_MATCH_WINDOW = timedelta(seconds=30)
DELETED_IDS_LIMIT = 1024


# ═══════════════════════════════════════════════════════════════════════════
# Identity
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Pending:
    local_id: str
    created_at: datetime


@dataclass(frozen=True)
class Committed:
    server_id: str


Identity = Union[Pending, Committed]


@dataclass
class CacheEntry:
    identity: Identity
    record: Dict[str, Any]

    @property
    def is_pending(self) -> bool:
        return isinstance(self.identity, Pending)

    @property
    def key(self) -> str:
        if isinstance(self.identity, Pending):
            return self.identity.local_id
        return self.identity.server_id


class MergeAction(str, Enum):
    INSERTED = "inserted"
    REPLACED = "replaced"
    PROMOTED = "promoted"
    REMOVED  = "removed"
    STALE    = "stale"
    IGNORED  = "ignored"
    DROPPED  = "dropped"


@dataclass(frozen=True)
class MergeResult:
    action: MergeAction
    server_id: Optional[str] = None
    local_id: Optional[str] = None
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.action != MergeAction.DROPPED


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _server_id(record: Any) -> Optional[str]:
    server_id = record.get("id") if isinstance(record, Mapping) else None
    if isinstance(server_id, str) and server_id:
        return server_id
    return None


def _version(record: Mapping[str, Any]) -> Optional[int]:
    version = record.get("version")
    if isinstance(version, bool) or not isinstance(version, int):
        return None
    return version


def _is_older(incoming: Mapping[str, Any], cached: Mapping[str, Any]) -> bool:
    new, old = _version(incoming), _version(cached)
    return new is not None and old is not None and new < old


def _stripped(value: Any) -> Any:
    # mirrors the server's whitespace normalisation
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        return {k: _stripped(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stripped(v) for v in value]
    return value


# ═══════════════════════════════════════════════════════════════════════════
# Cache
# ═══════════════════════════════════════════════════════════════════════════

class ReconciliationCache:
    """Ordered local alert set with optimistic-write reconciliation."""

    def __init__(self, match_window: timedelta = DEFAULT_MATCH_WINDOW):
        self.match_window = match_window
        self._entries: List[CacheEntry] = []
        self._deleted: "OrderedDict[str, None]" = OrderedDict()

    # ── views ──

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def alerts(self) -> List[Dict[str, Any]]:
        """Current records in display order (pending ones included)."""
        return [dict(entry.record) for entry in self._entries]

    @property
    def entries(self) -> List[CacheEntry]:
        return list(self._entries)

    @property
    def pending_ids(self) -> List[str]:
        return [e.key for e in self._entries if e.is_pending]

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Record by server id or local id."""
        for entry in self._entries:
            if entry.key == key:
                return dict(entry.record)
        return None

    def is_deleted(self, server_id: str) -> bool:
        return server_id in self._deleted

    # ── optimistic writes ──

    def add_optimistic(
        self,
        payload: Mapping[str, Any],
        created_by: str,
        *,
        now: Optional[datetime] = None,
    ) -> str:
        """Append a Pending record; returns its local id."""
        created_at = now or datetime.now(timezone.utc)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        local_id = f"tmp-{uuid.uuid4().hex[:12]}"
        record = _stripped(dict(payload))
        record.update(
            localId=local_id,
            createdBy=created_by,
            createdAt=created_at.isoformat(),
        )
        self._entries.append(CacheEntry(Pending(local_id, created_at), record))
        return local_id

    def discard_pending(self, local_id: str) -> bool:
        """Roll back an optimistic write the server rejected."""
        index = self._pending_index(local_id)
        if index is None:
            return False
        del self._entries[index]
        return True

    def commit(self, local_id: str, record: Any) -> MergeResult:
        """
        Promote the Pending entry ``local_id`` to the server's ``record``.

        Used with the answer to the client's own create, so no matching is
        involved. If the same record already arrived through the socket and
        was appended, that copy is folded into the pending entry's position.
        """
        server_id = _server_id(record)
        if server_id is None:
            warning = "Dropped alert record without an id"
            logger.warning("%s: %r", warning, record)
            return MergeResult(MergeAction.DROPPED, local_id=local_id, warning=warning)

        if self.is_deleted(server_id):
            self.discard_pending(local_id)
            return MergeResult(MergeAction.IGNORED, server_id=server_id, local_id=local_id)

        index = self._pending_index(local_id)
        if index is None:
            # already promoted by a matching echo, or rolled back
            return self.merge(record)

        incoming = dict(record)
        pending = self._entries[index]
        committed = self._committed_index(server_id)
        if committed is not None:
            echo = self._entries[committed]
            if _is_older(incoming, echo.record):
                incoming = echo.record
            del self._entries[committed]

        pending.identity = Committed(server_id)
        pending.record = incoming
        logger.debug("Committed optimistic %s as %s", local_id, server_id)
        return MergeResult(MergeAction.PROMOTED, server_id=server_id, local_id=local_id)

    # ── merging ──

    def merge(self, record: Any) -> MergeResult:
        """Merge one authoritative record. Never raises."""
        server_id = _server_id(record)
        if server_id is None:
            warning = "Dropped alert record without an id"
            logger.warning("%s: %r", warning, record)
            return MergeResult(MergeAction.DROPPED, warning=warning)

        if self.is_deleted(server_id):
            logger.debug("Ignored late copy of deleted alert %s", server_id)
            return MergeResult(MergeAction.IGNORED, server_id=server_id)

        incoming = dict(record)

        index = self._committed_index(server_id)
        if index is not None:
            entry = self._entries[index]
            if _is_older(incoming, entry.record):
                logger.debug(
                    "Ignored stale %s v%s (cached v%s)",
                    server_id, incoming.get("version"), entry.record.get("version"),
                )
                return MergeResult(MergeAction.STALE, server_id=server_id)
            entry.record = incoming
            return MergeResult(MergeAction.REPLACED, server_id=server_id)

        pending = self._match_pending(incoming)
        if pending is not None:
            local_id = pending.key
            pending.identity = Committed(server_id)
            pending.record = incoming
            logger.debug("Promoted optimistic %s to %s", local_id, server_id)
            return MergeResult(MergeAction.PROMOTED, server_id=server_id, local_id=local_id)

        self._entries.append(CacheEntry(Committed(server_id), incoming))
        return MergeResult(MergeAction.INSERTED, server_id=server_id)

    def merge_many(self, records: Iterable[Any]) -> List[MergeResult]:
        return [self.merge(record) for record in records]

    def replace_all(self, records: Iterable[Any]) -> List[MergeResult]:
        """
        Resynchronise with an authoritative ``list()`` result.

        Committed entries not in ``records`` are forgotten; pending entries
        survive and are promoted if their record has arrived. A cached copy
        newer than the listed one is kept.
        """
        previous = {e.key: e.record for e in self._entries if not e.is_pending}
        self._entries = [e for e in self._entries if e.is_pending]

        results: List[MergeResult] = []
        for record in records:
            cached = previous.get(_server_id(record) or "")
            if cached is not None and _is_older(record, cached):
                self.merge(cached)
                results.append(MergeResult(MergeAction.STALE, server_id=cached["id"]))
            else:
                results.append(self.merge(record))
        return results

    def remove(self, server_id: str) -> bool:
        """Forget a deleted alert; later copies of it are ignored."""
        self._remember_deleted(server_id)
        index = self._committed_index(server_id)
        if index is None:
            return False
        del self._entries[index]
        return True

    def apply_message(self, message: Any) -> MergeResult:
        """Apply one fan-out wire message. Never raises."""
        if not isinstance(message, Mapping):
            warning = "Ignored non-object message"
            logger.warning("%s: %r", warning, message)
            return MergeResult(MergeAction.DROPPED, warning=warning)

        event = message.get("event")
        data = message.get("data")

        if event == "alertUpdate":
            return self.merge(data)

        if event == "alertDeleted":
            server_id = _server_id(data)
            if server_id is None:
                warning = "Dropped delete message without an id"
                logger.warning("%s: %r", warning, message)
                return MergeResult(MergeAction.DROPPED, warning=warning)
            removed = self.remove(server_id)
            action = MergeAction.REMOVED if removed else MergeAction.IGNORED
            return MergeResult(action, server_id=server_id)

        if event in ("connected", "pong", "error"):
            return MergeResult(MergeAction.IGNORED)

        warning = f"Unknown message event {event!r}"
        logger.warning(warning)
        return MergeResult(MergeAction.DROPPED, warning=warning)

    # ── internals ──

    def _pending_index(self, local_id: str) -> Optional[int]:
        for i, entry in enumerate(self._entries):
            if entry.is_pending and entry.key == local_id:
                return i
        return None

    def _committed_index(self, server_id: str) -> Optional[int]:
        for i, entry in enumerate(self._entries):
            if not entry.is_pending and entry.key == server_id:
                return i
        return None

    def _remember_deleted(self, server_id: str) -> None:
        self._deleted[server_id] = None
        self._deleted.move_to_end(server_id)
        while len(self._deleted) > DELETED_IDS_LIMIT:
            self._deleted.popitem(last=False)

    def _match_pending(self, record: Mapping[str, Any]) -> Optional[CacheEntry]:
        created_at = _parse_timestamp(record.get("createdAt"))
        if created_at is None:
            return None
        for entry in self._entries:
            if not isinstance(entry.identity, Pending):
                continue
            if entry.record.get("createdBy") != record.get("createdBy"):
                continue
            if entry.record.get("title") != record.get("title"):
                continue
            if abs(created_at - entry.identity.created_at) <= self.match_window:
                return entry
        return None
