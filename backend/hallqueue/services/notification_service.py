# Overview: Change notifications emitted after committed mutations.

"""
Every successful mutation publishes one notification per affected entity
type. Any transport (polling, push, websocket) subscribes to the signal;
pollers can instead compare the per-entity version counters.

Entity types: person, request, ticket, service_type, statistics.

SINGLE PROCESS: the counters live in this process's memory and start from
zero at import. Under several workers each one counts only the mutations
it served, so a poller load-balanced across workers sees counters that do
not belong together. INSTANCE_ID names the counting process; a poller that
sees it change must drop its remembered versions and refetch everything.
Signal receivers likewise only hear mutations made in their own process.
"""

from __future__ import annotations

import threading
import uuid

from blinker import Namespace


_signals = Namespace()

# sender is the entity type string; receivers get action and entity_id
entity_changed = _signals.signal("entity-changed")

INSTANCE_ID = uuid.uuid4().hex

_versions: dict[str, int] = {}
_versions_lock = threading.Lock()


def publish(entity_type: str, action: str, entity_id: int | None = None) -> None:
    """Call only after the transaction that made the change has committed."""
    with _versions_lock:
        _versions[entity_type] = _versions.get(entity_type, 0) + 1
    entity_changed.send(entity_type, action=action, entity_id=entity_id)


def current_versions() -> dict[str, int]:
    with _versions_lock:
        return dict(_versions)
