# file: tree_runtime/staging.py
"""
Staged Edits — two-state machine per editable position.

  Clean(committed)            nothing staged
  Pending(committed, staged)  a change waits for an explicit commit

Transitions:
  stage(value)   Clean|Pending -> Pending   (staging the committed value
                                             again returns to Clean)
  commit(save)   Pending -> Clean(staged)   save(staged) runs first; if it
                                             raises, the state is unchanged
  discard()      Pending -> Clean(committed)

State lives outside the materializer; it only decorates leaves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional, Union

logger = logging.getLogger(__name__)


class StagingError(Exception):
    """Raised on a transition that is not defined for the current state."""

    def __init__(self, key: str, action: str, state: str):
        self.key = key
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} {key!r}: state is {state}")


@dataclass(frozen=True)
class Clean:
    committed: Any = None

    @property
    def value(self) -> Any:
        return self.committed


@dataclass(frozen=True)
class Pending:
    committed: Any
    staged: Any

    @property
    def value(self) -> Any:
        return self.staged


EditState = Union[Clean, Pending]


def stage(state: EditState, value: Any) -> EditState:
    if value == state.committed:
        return Clean(state.committed)
    return Pending(state.committed, value)


def commit(state: EditState, save: Optional[Callable[[Any], None]] = None, key: str = "") -> Clean:
    if not isinstance(state, Pending):
        raise StagingError(key, "commit", "Clean")
    if save is not None:
        save(state.staged)
    return Clean(state.staged)


def discard(state: EditState, key: str = "") -> Clean:
    if not isinstance(state, Pending):
        raise StagingError(key, "discard", "Clean")
    return Clean(state.committed)


class StagedEdits:
    """
    Registry of edit states keyed by position id.

    Positions never staged are implicitly Clean and are not stored.
    """

    def __init__(self) -> None:
        self._states: Dict[str, EditState] = {}

    def state(self, key: str, committed: Any = None) -> EditState:
        return self._states.get(str(key), Clean(committed))

    def stage(self, key: str, committed: Any, value: Any) -> EditState:
        key = str(key)
        current = self._states.get(key, Clean(committed))
        new_state = stage(current, value)
        if isinstance(new_state, Pending):
            self._states[key] = new_state
        else:
            self._states.pop(key, None)
        logger.debug("Staged %r: %s", key, type(new_state).__name__)
        return new_state

    def commit(self, key: str, save: Optional[Callable[[Any], None]] = None) -> Clean:
        key = str(key)
        new_state = commit(self._states.get(key, Clean()), save, key)
        self._states.pop(key, None)
        logger.info("Committed staged edit for %r", key)
        return new_state

    def discard(self, key: str) -> Clean:
        key = str(key)
        new_state = discard(self._states.get(key, Clean()), key)
        self._states.pop(key, None)
        return new_state

    def discard_all(self) -> None:
        self._states.clear()

    @property
    def pending_ids(self) -> FrozenSet[str]:
        return frozenset(self._states)

    def is_pending(self, key: str) -> bool:
        return str(key) in self._states
