"""
Interaction gate: the modal overlay that blocks customers while the shop
is closed.

Rendering happens in the browser; this module owns the state rules so they
can be enforced and tested on their own. Disallowed transitions are ignored
rather than applied.
"""

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    HIDDEN = "hidden"
    SHOWN = "shown"


@dataclass(frozen=True)
class GateSnapshot:
    state: GateState
    should_show: bool

    @property
    def is_shown(self) -> bool:
        return self.state == GateState.SHOWN

    # While shown the overlay is fully modal for the caller
    @property
    def scroll_locked(self) -> bool:
        return self.is_shown

    @property
    def focus_trapped(self) -> bool:
        return self.is_shown

    @property
    def escape_suppressed(self) -> bool:
        return self.is_shown

    @property
    def dismissible(self) -> bool:
        return not self.should_show

    def to_dict(self) -> dict:
        return {
            "show": self.is_shown,
            "state": self.state.value,
            "scrollLocked": self.scroll_locked,
            "focusTrapped": self.focus_trapped,
            "escapeSuppressed": self.escape_suppressed,
            "dismissible": self.dismissible,
        }


class InteractionGate:
    """Two-state gate (hidden/shown) driven by ``should_show``.

    ``sync`` must be called whenever the status, the caller or the route
    changes, since a caller can move into an exempt route after the overlay
    was shown.
    """

    def __init__(self, should_show: bool = False):
        self._should_show = False
        self._state = GateState.HIDDEN
        self.sync(should_show)

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def should_show(self) -> bool:
        return self._should_show

    def sync(self, should_show: bool) -> GateState:
        """Apply a fresh overlay decision."""
        self._should_show = should_show
        self._state = GateState.SHOWN if should_show else GateState.HIDDEN
        return self._state

    def request_hide(self) -> bool:
        """Try to dismiss the overlay. Returns False if the request was refused."""
        if self._should_show:
            logger.debug("Overlay dismissal refused while shop is closed")
            self._state = GateState.SHOWN
            return False
        self._state = GateState.HIDDEN
        return True

    def request_show(self) -> bool:
        """Show the overlay; refused when nothing requires it."""
        if not self._should_show:
            self._state = GateState.HIDDEN
            return False
        self._state = GateState.SHOWN
        return True

    def snapshot(self) -> GateSnapshot:
        return GateSnapshot(state=self._state, should_show=self._should_show)
