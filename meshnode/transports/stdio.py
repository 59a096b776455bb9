
from __future__ import annotations
import logging
import sys
import threading
from typing import BinaryIO, Iterator, Optional

from ..errors import TransportError
from ..transport import Transport

logger = logging.getLogger(__name__)

class StdioTransport(Transport):
    """Transport over the process's stdin/stdout.

    Mapping:
    - every frame is one line; the destination is inside the frame, so `dest` is unused here
    - writes are serialised so concurrent handlers never interleave partial lines

    stdout belongs to the wire. Diagnostics must go to stderr.
    """

    def __init__(self, stdin: Optional[BinaryIO] = None, stdout: Optional[BinaryIO] = None):
        self._in = stdin if stdin is not None else sys.stdin.buffer
        self._out = stdout if stdout is not None else sys.stdout.buffer
        self._write_lock = threading.Lock()
        self._running = False

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        self._running = False

    def send(self, dest: str, frame: bytes) -> None:
        if b"\n" in frame:
            raise TransportError("frame contains a newline; use a line-safe codec")
        try:
            with self._write_lock:
                self._out.write(frame + b"\n")
                self._out.flush()
        except (OSError, ValueError) as ex:
            raise TransportError(f"stdout write failed: {ex}") from ex

    def frames(self) -> Iterator[bytes]:
        while self._running:
            try:
                line = self._in.readline()
            except (OSError, ValueError) as ex:
                raise TransportError(f"stdin read failed: {ex}") from ex
            if not line:
                logger.info("stdin closed")
                return
            line = line.strip()
            if line:
                yield line
