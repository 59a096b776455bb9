from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Iterator

class Transport(ABC):
    """Moves encoded frames. Knows nothing about envelopes."""

    @abstractmethod
    def start(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def send(self, dest: str, frame: bytes) -> None:
        """Emit one frame addressed to `dest`. Must be safe to call from any thread."""
        raise NotImplementedError

    @abstractmethod
    def frames(self) -> Iterator[bytes]:
        """Lazily yield inbound frames until the transport closes."""
        raise NotImplementedError
