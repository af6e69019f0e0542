"""RealtimeTranscriptionSession — drives the reconciler from a live session.

Owns the capture track, the peer connection and the flush timer for one
session. All reconciler mutations happen on the event loop that calls
start()/run(); signaling runs in a worker thread because it blocks.
"""

import asyncio
import logging
from typing import Callable, Optional

from domain.models import ConnectionState
from domain.reconciler import StateDelta, TranscriptReconciler
from ports.realtime import CapturePort, PeerConnectionPort, SignalingPort

logger = logging.getLogger(__name__)


class RealtimeTranscriptionSession:
    def __init__(
        self,
        reconciler: TranscriptReconciler,
        signaling: SignalingPort,
        peer_factory: Callable[[], PeerConnectionPort],
        capture_factory: Callable[[], CapturePort],
        on_change: Optional[Callable[[StateDelta], None]] = None,
    ):
        self.reconciler = reconciler
        self._signaling = signaling
        self._peer_factory = peer_factory
        self._capture_factory = capture_factory
        self._on_change = on_change
        self._peer: Optional[PeerConnectionPort] = None
        self._capture: Optional[CapturePort] = None
        self._flush_handle: Optional[asyncio.TimerHandle] = None
        self.error: Optional[str] = None

    def _emit(self, delta: StateDelta) -> StateDelta:
        if self._on_change and not delta.empty:
            self._on_change(delta)
        return delta

    async def start(self) -> None:
        """Acquire capture, negotiate the session and wait for the channel.

        On any failure the session is stopped (resources released) and the
        error is re-raised to the caller.
        """
        self.error = None
        self._emit(self.reconciler.start())

        try:
            self._capture = self._capture_factory()
            self._peer = self._peer_factory()
            offer = await self._peer.create_offer(self._capture)
            answer = await asyncio.to_thread(self._signaling.exchange, offer)
            await self._peer.accept_answer(answer)
            await self._peer.wait_open()
        except Exception as e:
            self.error = str(e) or type(e).__name__
            logger.error(f"Failed to start realtime session: {self.error}")
            self.stop()
            raise

        self._emit(self.reconciler.mark_live())
        logger.info("Realtime session live")

    async def run(self) -> None:
        """Pump channel events until the channel closes, then stop."""
        if self._peer is None:
            raise RuntimeError("Session not started")

        try:
            async for frame in self._peer.events():
                delta = self._emit(self.reconciler.handle_event(frame))
                if delta.flush_requested:
                    self._schedule_flush()
        except asyncio.CancelledError:
            self.stop()
            raise
        except Exception as e:
            self.error = f"Event channel failed: {e}"
            logger.error(self.error)
        self.stop()

    def _schedule_flush(self) -> None:
        self._cancel_flush()
        loop = asyncio.get_running_loop()
        self._flush_handle = loop.call_later(self.reconciler.next_flush_delay(), self._flush)

    def _flush(self) -> None:
        self._flush_handle = None
        self._emit(self.reconciler.flush())

    def _cancel_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def pause(self) -> StateDelta:
        delta = self.reconciler.pause()
        if self._capture is not None:
            self._capture.set_enabled(False)
        return self._emit(delta)

    def resume(self) -> StateDelta:
        delta = self.reconciler.resume()
        if self._capture is not None:
            self._capture.set_enabled(True)
        return self._emit(delta)

    def add_marker(self, label: Optional[str] = None) -> StateDelta:
        return self._emit(self.reconciler.add_marker(label))

    def hard_reset(self) -> StateDelta:
        self._cancel_flush()
        return self._emit(self.reconciler.hard_reset())

    def stop(self) -> None:
        """Finalize pending text and release channel and capture.

        Safe to call repeatedly; never waits on the backend.
        """
        if self.reconciler.state.connection is ConnectionState.IDLE:
            return

        self._cancel_flush()
        self._emit(self.reconciler.stop())

        peer, self._peer = self._peer, None
        if peer is not None:
            try:
                peer.close()
            except Exception as e:
                logger.warning(f"Error closing peer connection: {e}")

        capture, self._capture = self._capture, None
        if capture is not None:
            try:
                capture.release()
            except Exception as e:
                logger.warning(f"Error releasing capture: {e}")
