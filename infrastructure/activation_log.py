"""
TRELLIS ACTIVATION LOG - The Decision Recorder

Every pipeline call produces one ActivationRecord:
    {interaction, activated_constraint_ids, strategy_used, latency_ms, ...}

Records go to two places:
- ActivationBuffer: in-memory ring buffer of recent records for inspection
- The "trellis.pipeline" logger at DEBUG level

Writing records to a durable sink is the job of an external structured
logger; encode_jsonl() produces newline-delimited JSON for it.

Usage:
    log = ActivationLog(buffer_size=1000)
    log.record(ActivationRecord(session_id="s1", interaction=1, ...))
    log.buffer.get_by_session("s1")
"""
import logging
import threading
from collections import deque
from typing import List, Optional, Tuple

import msgspec

from core.schemas import now_utc

logger = logging.getLogger("trellis.pipeline")


class ActivationRecord(msgspec.Struct, kw_only=True, frozen=True):
    """One pipeline decision."""
    session_id: str
    interaction: int
    activated_constraint_ids: Tuple[str, ...]
    strategy_used: str  # "trigger_matching" or comma-joined composition types
    latency_ms: float
    error_count: int = 0
    timestamp: str = msgspec.field(default_factory=now_utc)


_encoder = msgspec.json.Encoder()
_decoder = msgspec.json.Decoder(type=ActivationRecord)


def encode_record(record: ActivationRecord) -> bytes:
    return _encoder.encode(record)


def decode_record(data: bytes) -> ActivationRecord:
    return _decoder.decode(data)


def encode_jsonl(records: List[ActivationRecord]) -> bytes:
    """Newline-delimited JSON, one record per line."""
    return b"".join(_encoder.encode(r) + b"\n" for r in records)


# =============================================================================
# RING BUFFER
# =============================================================================

class ActivationBuffer:
    """
    Thread-safe ring buffer for recent activation records.

    Provides O(1) append and O(n) query for filtering.
    """

    def __init__(self, max_size: int = 1000):
        self._buffer: deque[ActivationRecord] = deque(maxlen=max_size)
        self._lock = threading.RLock()

    def append(self, record: ActivationRecord) -> None:
        with self._lock:
            self._buffer.append(record)

    def get_since(self, timestamp: str) -> List[ActivationRecord]:
        with self._lock:
            return [r for r in self._buffer if r.timestamp >= timestamp]

    def get_last(self, n: int) -> List[ActivationRecord]:
        with self._lock:
            items = list(self._buffer)
            return items[-n:] if n > 0 else []

    def get_by_session(self, session_id: str) -> List[ActivationRecord]:
        with self._lock:
            return [r for r in self._buffer if r.session_id == session_id]

    def get_by_constraint(self, constraint_id: str) -> List[ActivationRecord]:
        with self._lock:
            return [r for r in self._buffer if constraint_id in r.activated_constraint_ids]

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


# =============================================================================
# LOG FACADE
# =============================================================================

class ActivationLog:
    """Buffers records and mirrors them to the pipeline logger."""

    def __init__(self, buffer_size: int = 1000, buffer: Optional[ActivationBuffer] = None):
        self.buffer = buffer or ActivationBuffer(max_size=buffer_size)

    def record(self, record: ActivationRecord) -> ActivationRecord:
        self.buffer.append(record)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("activation %s", encode_record(record).decode("utf-8"))
        return record

    def export(self) -> bytes:
        return encode_jsonl(self.buffer.get_last(len(self.buffer)))
