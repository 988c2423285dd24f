"""
Per-session mutable state and its locks.

The constraint library is shared read-only. Everything that changes between
calls (interaction counter, composition states, activation counts) lives in
a SessionState owned by exactly one session. Calls for the same session are
serialized by that session's lock; calls for different sessions never wait
on each other. The registry lock is held only long enough to find or create
a session's entry.
"""
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from core.composition_state import CompositionState


@dataclass
class SessionState:
    """Mutable per-session bookkeeping. Only touch it while holding the session lock."""
    session_id: str
    interaction: int = 0
    composition_states: Dict[str, CompositionState] = field(default_factory=dict)
    activation_counts: Dict[str, int] = field(default_factory=dict)

    def next_interaction(self) -> int:
        self.interaction += 1
        return self.interaction

    def record_activations(self, constraint_ids: Tuple[str, ...]) -> None:
        for constraint_id in constraint_ids:
            self.activation_counts[constraint_id] = self.activation_counts.get(constraint_id, 0) + 1

    def most_activated(self, limit: int = 5) -> List[Tuple[str, int]]:
        ranked = sorted(self.activation_counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:limit]


@dataclass
class _Entry:
    lock: threading.Lock
    state: SessionState


class SessionRegistry:
    """
    Thread-safe map of session id -> SessionState.

    Usage:
        registry = SessionRegistry()
        with registry.session("s1") as state:
            state.next_interaction()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, _Entry] = {}

    def _entry(self, session_id: str) -> _Entry:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                entry = _Entry(lock=threading.Lock(), state=SessionState(session_id=session_id))
                self._sessions[session_id] = entry
            return entry

    @contextmanager
    def session(self, session_id: str) -> Iterator[SessionState]:
        """Hold the session's lock for the duration of the block."""
        entry = self._entry(session_id)
        with entry.lock:
            yield entry.state

    def get_state(self, session_id: str, composite_id: str) -> Optional[CompositionState]:
        with self.session(session_id) as state:
            return state.composition_states.get(composite_id)

    def reset(self, session_id: str) -> None:
        entry = self._entry(session_id)
        with entry.lock:
            entry.state = SessionState(session_id=session_id)

    def discard(self, session_id: str) -> bool:
        """Drop a finished session's lock and state. Returns False if it was unknown.

        Waits for an in-flight call on the session to finish first. A later call
        with the same id starts from a fresh SessionState.
        """
        with self._lock:
            entry = self._sessions.get(session_id)
        if entry is None:
            return False
        with entry.lock:
            with self._lock:
                if self._sessions.get(session_id) is entry:
                    del self._sessions[session_id]
        return True

    def session_ids(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
