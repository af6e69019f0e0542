"""Realtime transcript reconciler.

A single-threaded state machine fed by raw events from a live speech
session. Partial ("delta") text is de-duplicated against the last raw
payload of the turn, buffered, and moved to the visible live text on
flush. Completed turns, pauses, stops and markers append blocks to an
append-only log.

Every operation returns a StateDelta describing what changed. The caller
owns the event loop and the flush timer (see use_cases/realtime.py).
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from domain.errors import InvalidStateError, MalformedEvent
from domain.models import MARKER_TEXT, ConnectionState, FinalizedBlock

logger = logging.getLogger(__name__)

DELTA_EVENT_TYPES = frozenset({"conversation.item.input_audio_transcription.delta"})
COMPLETED_EVENT_TYPES = frozenset({"conversation.item.input_audio_transcription.completed"})

PAUSED_LABEL = "paused"
STOPPED_LABEL = "stopped"

DEFAULT_FLUSH_INTERVAL = 1 / 60


@dataclass
class RealtimeState:
    connection: ConnectionState = ConnectionState.IDLE
    paused: bool = False
    live_buffer: str = ""
    live_text: str = ""
    last_turn_raw: str = ""
    finalized_log: list[FinalizedBlock] = field(default_factory=list)


@dataclass
class StateDelta:
    """Changes produced by one reconciler operation."""
    connection: Optional[ConnectionState] = None
    paused: Optional[bool] = None
    live_text: Optional[str] = None
    appended: list[FinalizedBlock] = field(default_factory=list)
    log_cleared: bool = False
    flush_requested: bool = False

    @property
    def empty(self) -> bool:
        return (
            self.connection is None
            and self.paused is None
            and self.live_text is None
            and not self.appended
            and not self.log_cleared
            and not self.flush_requested
        )


@dataclass(frozen=True)
class TranscriptEvent:
    kind: str  # "delta" or "completed"
    text: str


def parse_event(raw: Any) -> Optional[TranscriptEvent]:
    """Parse one channel frame.

    Returns None for well-formed events of other types. Raises
    MalformedEvent for anything that is not a JSON object or whose text
    payload has the wrong shape.
    """
    if isinstance(raw, (bytes, bytearray)):
        raise MalformedEvent("binary frame")
    if isinstance(raw, str):
        if not raw.startswith("{"):
            raise MalformedEvent("not a JSON object")
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedEvent(f"invalid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedEvent(f"unexpected payload type {type(raw).__name__}")

    event_type = raw.get("type")
    if event_type in DELTA_EVENT_TYPES:
        text = raw.get("delta")
        if text is None:
            text = raw.get("transcript", "")
        if not isinstance(text, str):
            raise MalformedEvent("delta text is not a string")
        return TranscriptEvent("delta", text)
    if event_type in COMPLETED_EVENT_TYPES:
        text = raw.get("transcript", "")
        if not isinstance(text, str):
            raise MalformedEvent("completed transcript is not a string")
        return TranscriptEvent("completed", text)
    return None


class TranscriptReconciler:
    def __init__(
        self,
        auto_clear_live: bool = True,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.auto_clear_live = auto_clear_live
        self.flush_interval = flush_interval
        self._clock = clock
        self._now = now
        self.state = RealtimeState()
        self._flush_pending = False
        self._last_flush: Optional[float] = None

    # -- lifecycle -------------------------------------------------------

    def start(self) -> StateDelta:
        if self.state.connection in (ConnectionState.CONNECTING, ConnectionState.LIVE):
            raise InvalidStateError(f"Cannot start while {self.state.connection.value}")
        delta = self._clear_all()
        self.state.paused = False
        self.state.connection = ConnectionState.CONNECTING
        delta.paused = False
        delta.connection = ConnectionState.CONNECTING
        return delta

    def mark_live(self) -> StateDelta:
        """Signal that the events channel is open."""
        if self.state.connection is not ConnectionState.CONNECTING:
            raise InvalidStateError(f"Cannot go live from {self.state.connection.value}")
        self.state.connection = ConnectionState.LIVE
        return StateDelta(connection=ConnectionState.LIVE)

    def stop(self) -> StateDelta:
        """Finalize pending text and freeze the state. Idempotent."""
        if self.state.connection is ConnectionState.IDLE:
            raise InvalidStateError("Cannot stop an idle session")
        if self.state.connection is ConnectionState.STOPPED:
            return StateDelta()

        delta = self._finalize_in_place(STOPPED_LABEL)
        self.state.connection = ConnectionState.STOPPED
        delta.connection = ConnectionState.STOPPED
        if self.state.paused:
            self.state.paused = False
            delta.paused = False
        return delta

    def hard_reset(self) -> StateDelta:
        """Clear buffers and the finalized log.

        A stopped session returns to idle; a live one keeps running with
        empty text.
        """
        if self.state.connection is ConnectionState.CONNECTING:
            raise InvalidStateError("Cannot reset while connecting")
        delta = self._clear_all()
        if self.state.connection is ConnectionState.STOPPED:
            self.state.connection = ConnectionState.IDLE
            delta.connection = ConnectionState.IDLE
        return delta

    # -- user controls ---------------------------------------------------

    def pause(self) -> StateDelta:
        if self.state.connection is not ConnectionState.LIVE:
            raise InvalidStateError("Can only pause a live session")
        if self.state.paused:
            return StateDelta()
        self.state.paused = True
        delta = self._finalize_in_place(PAUSED_LABEL)
        delta.paused = True
        return delta

    def resume(self) -> StateDelta:
        if self.state.connection is not ConnectionState.LIVE:
            raise InvalidStateError("Can only resume a live session")
        if not self.state.paused:
            return StateDelta()
        self.state.paused = False
        return StateDelta(paused=False)

    def add_marker(self, label: Optional[str] = None) -> StateDelta:
        if self.state.connection is ConnectionState.CONNECTING:
            raise InvalidStateError("Cannot add a marker while connecting")
        block = FinalizedBlock(timestamp=self._now(), label=label, text=MARKER_TEXT)
        self.state.finalized_log.append(block)
        return StateDelta(appended=[block])

    # -- events ----------------------------------------------------------

    def handle_event(self, raw: Any) -> StateDelta:
        if self.state.connection is not ConnectionState.LIVE or self.state.paused:
            return StateDelta()

        try:
            event = parse_event(raw)
        except MalformedEvent as e:
            logger.debug(f"Discarding malformed event: {e}")
            return StateDelta()

        if event is None:
            return StateDelta()
        if event.kind == "delta":
            return self._on_delta(event.text)
        return self._on_completed(event.text)

    def _on_delta(self, incoming: str) -> StateDelta:
        if not incoming:
            return StateDelta()

        previous = self.state.last_turn_raw
        if not previous:
            diff = incoming
        elif incoming.startswith(previous):
            diff = incoming[len(previous):]
        else:
            # Backend restarted the turn: new line instead of duplicating.
            diff = "\n" + incoming
        self.state.last_turn_raw = incoming

        if not diff:
            return StateDelta()
        self.state.live_buffer += diff
        return StateDelta(flush_requested=self._schedule_flush())

    def _on_completed(self, transcript: str) -> StateDelta:
        text = transcript.strip()
        if not text:
            return StateDelta()

        block = FinalizedBlock(timestamp=self._now(), label=None, text=text)
        self.state.finalized_log.append(block)
        self.state.live_buffer = ""
        self.state.last_turn_raw = ""
        delta = StateDelta(appended=[block])
        if self.auto_clear_live:
            self.state.live_text = ""
            delta.live_text = ""
        return delta

    # -- flushing --------------------------------------------------------

    def _schedule_flush(self) -> bool:
        if self._flush_pending:
            return False
        self._flush_pending = True
        return True

    @property
    def flush_pending(self) -> bool:
        return self._flush_pending

    def next_flush_delay(self) -> float:
        """Seconds until a flush may run without exceeding one per interval."""
        if self._last_flush is None:
            return 0.0
        return max(0.0, self._last_flush + self.flush_interval - self._clock())

    def flush(self) -> StateDelta:
        self._flush_pending = False
        self._last_flush = self._clock()
        if not self.state.live_buffer:
            return StateDelta()
        self.state.live_text += self.state.live_buffer
        self.state.live_buffer = ""
        return StateDelta(live_text=self.state.live_text)

    # -- helpers ---------------------------------------------------------

    def _finalize_in_place(self, label: str) -> StateDelta:
        pending = (self.state.live_text + self.state.live_buffer).strip()
        self.state.live_buffer = ""
        self.state.last_turn_raw = ""
        self.state.live_text = ""
        self._flush_pending = False

        delta = StateDelta(live_text="")
        if pending:
            block = FinalizedBlock(timestamp=self._now(), label=label, text=pending)
            self.state.finalized_log.append(block)
            delta.appended.append(block)
        return delta

    def _clear_all(self) -> StateDelta:
        self.state.live_buffer = ""
        self.state.live_text = ""
        self.state.last_turn_raw = ""
        self.state.finalized_log = []
        self._flush_pending = False
        return StateDelta(live_text="", log_cleared=True)

    def render_log(self) -> str:
        return "\n\n".join(block.render() for block in self.state.finalized_log)
