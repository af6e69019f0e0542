"""Ports for the realtime session: signaling, peer connection, capture."""

from abc import ABC, abstractmethod
from typing import AsyncIterator


class SignalingPort(ABC):
    @abstractmethod
    def exchange(self, offer_sdp: str) -> str:
        """Send a local SDP offer and return the remote answer.

        Raises SignalingFailure when the session cannot be created.
        """


class CapturePort(ABC):
    """Microphone capture owned by one realtime session."""

    @abstractmethod
    def set_enabled(self, enabled: bool) -> None:
        """Mute or unmute the capture track without releasing it."""

    @abstractmethod
    def release(self) -> None:
        """Stop all capture tracks."""


class PeerConnectionPort(ABC):
    """Media transport to the streaming backend. Negotiation is external."""

    @abstractmethod
    async def create_offer(self, capture: CapturePort) -> str:
        """Attach capture, open the events channel and return an SDP offer."""

    @abstractmethod
    async def accept_answer(self, answer_sdp: str) -> None:
        """Apply the remote answer; the events channel opens afterwards."""

    @abstractmethod
    async def wait_open(self) -> None:
        """Resolve once the events channel is open."""

    @abstractmethod
    def events(self) -> AsyncIterator[object]:
        """Yield raw channel frames until the channel closes."""

    @abstractmethod
    def close(self) -> None:
        """Close the events channel and the peer connection."""
