"""
Single source of truth for which interrupt sheet is visible.

Preferences, suggestion, waitlist, proposal and history details all compete
for one presentation slot. Explicit user actions take the slot at once;
automatic triggers only take it when nothing is shown and otherwise wait
in a pending set. Closing the active sheet promotes the highest priority
pending trigger.

Usage:
    arbiter = SheetArbiter()
    arbiter.request(Sheet.WAITLIST)      # shown, slot was free
    arbiter.request(Sheet.PROPOSAL)      # deferred behind the waitlist
    arbiter.close(Sheet.WAITLIST)
    assert arbiter.active == Sheet.PROPOSAL
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class Sheet(str, Enum):
    """Everything that can occupy the presentation slot."""
    NONE = "none"
    PREFERENCES = "preferences"
    SUGGESTION = "suggestion"
    WAITLIST = "waitlist"
    PROPOSAL = "proposal"
    HISTORY_DETAILS = "history_details"


# Highest priority first. A suggestion waiting behind a closing preferences
# sheet beats a waitlist offer, which beats an instructor proposal.
AUTO_PRIORITY: tuple[Sheet, ...] = (Sheet.SUGGESTION, Sheet.WAITLIST, Sheet.PROPOSAL)

HISTORY_LIMIT = 50


def resolve_next_sheet(pending: frozenset[Sheet]) -> Sheet:
    """Pick the sheet that should take a freed slot."""
    for sheet in AUTO_PRIORITY:
        if sheet in pending:
            return sheet
    return Sheet.NONE


@dataclass
class SheetEntry:
    """Recorded history entry for a visible sheet."""
    sheet: Sheet
    entered_at: datetime
    reason: Optional[str] = None


class SheetArbiter:
    """Owns the active sheet and the set of deferred automatic triggers."""

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        self._active = Sheet.NONE
        self._pending: set[Sheet] = set()
        self._history: deque[SheetEntry] = deque(
            [SheetEntry(sheet=Sheet.NONE, entered_at=datetime.now(timezone.utc))],
            maxlen=history_limit,
        )

    @property
    def active(self) -> Sheet:
        return self._active

    @property
    def pending(self) -> frozenset[Sheet]:
        return frozenset(self._pending)

    def is_open(self, sheet: Sheet) -> bool:
        return self._active == sheet

    def open(self, sheet: Sheet) -> None:
        """Explicit user action: show ``sheet`` now, closing whatever is shown.

        A displaced automatic sheet goes back to pending so it can return
        once the user is done.
        """
        if sheet == Sheet.NONE:
            raise ValueError("Use close() to clear the active sheet")
        if self._active == sheet:
            return
        displaced = self._active
        if displaced in AUTO_PRIORITY:
            self._pending.add(displaced)
        self._pending.discard(sheet)
        self._set_active(sheet, reason="open")

    def request(self, sheet: Sheet) -> bool:
        """Automatic trigger. Returns True if the sheet is now visible."""
        if sheet not in AUTO_PRIORITY:
            raise ValueError(f"'{sheet.value}' cannot be auto-triggered")
        if self._active == sheet:
            return True
        if self._active == Sheet.NONE:
            self._pending.discard(sheet)
            self._set_active(sheet, reason="auto")
            return True
        self._pending.add(sheet)
        logger.debug("Sheet '%s' deferred behind '%s'", sheet.value, self._active.value)
        return False

    def close(self, sheet: Sheet) -> None:
        """Dismiss ``sheet`` whether it is shown or only pending."""
        self._pending.discard(sheet)
        if self._active != sheet:
            return
        self._set_active(Sheet.NONE, reason="close")
        promoted = resolve_next_sheet(frozenset(self._pending))
        if promoted != Sheet.NONE:
            self._pending.discard(promoted)
            self._set_active(promoted, reason="promoted")

    def get_history(self) -> list[SheetEntry]:
        return list(self._history)

    def get_sheet_trace(self) -> list[str]:
        """Return the most recent sheet names shown, oldest first, including gaps."""
        return [entry.sheet.value for entry in self._history]

    def _set_active(self, sheet: Sheet, reason: str) -> None:
        old = self._active
        self._active = sheet
        self._history.append(
            SheetEntry(sheet=sheet, entered_at=datetime.now(timezone.utc), reason=reason)
        )
        logger.debug("Sheet: %s -> %s (%s)", old.value, sheet.value, reason)
