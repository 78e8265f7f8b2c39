"""Ingestion state machine.

    pending ──claim──▶ processing ──▶ done
       ▲                   │   └────▶ error
       │                   │
       └── reprocess ──────┴── (done | error, or queued reprocess on completion)

Every status write in the repository is a conditional UPDATE whose WHERE
clause is built from ``sources_for``, so a write that the table below does
not allow simply matches no row.
"""

from __future__ import annotations

from invoicedesk.models.enums import IngestionStatus

TRANSITIONS: dict[IngestionStatus, frozenset[IngestionStatus]] = {
    IngestionStatus.PENDING: frozenset({IngestionStatus.PROCESSING}),
    IngestionStatus.PROCESSING: frozenset({
        IngestionStatus.DONE,
        IngestionStatus.ERROR,
        # Queued reprocess on completion, or recovery after an interrupted run
        IngestionStatus.PENDING,
    }),
    IngestionStatus.DONE: frozenset({IngestionStatus.PENDING}),
    IngestionStatus.ERROR: frozenset({IngestionStatus.PENDING}),
}

TERMINAL_STATES: frozenset[IngestionStatus] = frozenset({IngestionStatus.DONE, IngestionStatus.ERROR})


def can_transition(current: str | IngestionStatus, target: str | IngestionStatus) -> bool:
    """Check whether ``current -> target`` is an allowed status change."""
    return IngestionStatus(target) in TRANSITIONS.get(IngestionStatus(current), frozenset())


def sources_for(target: str | IngestionStatus) -> list[str]:
    """Return the status values that may move to ``target``, as plain strings."""
    target = IngestionStatus(target)
    return sorted(state.value for state, allowed in TRANSITIONS.items() if target in allowed)
