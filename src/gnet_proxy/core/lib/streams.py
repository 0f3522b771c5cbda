"""Blocking socket read helpers."""

import contextlib
import socket
from collections.abc import Iterator
from typing import Final

from gnet_proxy.core.exceptions import IncompleteReadError, LineTooLongError

BUFFER_SIZE: Final = 4096
MAX_LINE_LENGTH: Final = 65536


def recv_exact(sock: socket.socket, n: int) -> bytes:
    """Read exactly ``n`` bytes or raise IncompleteReadError."""
    data = b""
    while len(data) < n:
        chunk = sock.recv(n - len(data))
        if not chunk:
            raise IncompleteReadError(n, len(data))
        data += chunk
    return data


def close_quietly(sock: socket.socket | None) -> None:
    """Shut down and close a socket, ignoring errors from a dead peer."""
    if sock is None:
        return
    # shutdown() wakes threads blocked in recv()/accept(); close() alone does not
    with contextlib.suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)
    with contextlib.suppress(OSError):
        sock.close()


class SocketReader:
    """Line-oriented reader over a blocking socket.

    Bytes received past the last consumed line stay buffered and can be
    taken with ``drain()`` so nothing the client pipelined is lost.
    """

    def __init__(self, sock: socket.socket, max_line: int = MAX_LINE_LENGTH) -> None:
        self.sock = sock
        self.max_line = max_line
        self._buffer = bytearray()

    def _fill(self) -> bool:
        chunk = self.sock.recv(BUFFER_SIZE)
        if not chunk:
            return False
        self._buffer += chunk
        return True

    def readline(self) -> str | None:
        """Read one line, without its line terminator.

        Returns:
            str | None: The decoded line, or None if the peer closed first
        """
        while True:
            newline = self._buffer.find(b"\n")
            if newline != -1:
                raw = bytes(self._buffer[:newline])
                del self._buffer[: newline + 1]
                return raw.rstrip(b"\r").decode("iso-8859-1")

            if len(self._buffer) > self.max_line:
                raise LineTooLongError(f"Line exceeds {self.max_line} bytes")

            if not self._fill():
                if not self._buffer:
                    return None
                raw = bytes(self._buffer)
                self._buffer.clear()
                return raw.rstrip(b"\r").decode("iso-8859-1")

    def read_headers(self) -> list[tuple[str, str]]:
        """Read header lines up to the blank line as (name, value) pairs.

        Lines without a colon are skipped. End of stream ends the block.
        """
        headers: list[tuple[str, str]] = []
        while True:
            line = self.readline()
            if not line:
                return headers
            name, sep, value = line.partition(":")
            if not sep:
                continue
            headers.append((name.strip(), value.strip()))

    def iter_exact(self, n: int, chunk_size: int = BUFFER_SIZE) -> Iterator[bytes]:
        """Yield exactly ``n`` bytes in chunks of at most ``chunk_size``.

        Buffered data comes first, then the socket is read directly, so
        at most one chunk is held in memory at a time.

        Raises:
            IncompleteReadError: If the peer closes before ``n`` bytes
        """
        remaining = n
        while remaining > 0 and self._buffer:
            size = min(remaining, chunk_size, len(self._buffer))
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            remaining -= size
            yield data

        while remaining > 0:
            data = self.sock.recv(min(remaining, chunk_size))
            if not data:
                raise IncompleteReadError(n, n - remaining)
            remaining -= len(data)
            yield data

    def drain(self) -> bytes:
        """Return and forget whatever is still buffered."""
        data = bytes(self._buffer)
        self._buffer.clear()
        return data
