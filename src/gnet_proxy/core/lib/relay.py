"""Byte relay between established connections.

``relay`` runs two copy loops, one per direction, each on its own thread,
and returns only when both have finished. Each loop reads up to 4096 bytes
and writes the chunk straight through; nothing is coalesced or held back.

When one side reaches end of stream the loop half-closes the other side
for writing, so the peer sees the EOF and can finish its own direction.

Teardown errors (broken pipe, reset, a socket closed by ``stop()``) are
logged at debug level only. Anything else is reported as an error. The
sockets are never closed here; that is the caller's job.

Example:
    target = open_connection(host, port)
    try:
        relay(client_sock, target, log=log)
    finally:
        close_quietly(target)
"""

import contextlib
import socket
import threading
from typing import Final

from gnet_proxy.core.lib.events import EventLog
from gnet_proxy.core.lib.proxy_stats import ProxyStats, proxy_stats
from gnet_proxy.core.lib.streams import BUFFER_SIZE

# Raised by a peer going away mid-stream
TEARDOWN_ERRORS: Final = (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)


def _is_closed(sock: socket.socket) -> bool:
    return sock.fileno() == -1


def pipe(
    src: socket.socket,
    dst: socket.socket,
    *,
    log: EventLog,
    label: str = "relay",
    stats: ProxyStats | None = None,
    upstream: bool = True,
    buffer_size: int = BUFFER_SIZE,
) -> int:
    """Copy bytes from ``src`` to ``dst`` until end of stream or error.

    Args:
        src: Socket to read from
        dst: Socket to write to
        log: Event log for error reporting
        label: Direction name used in log messages
        stats: Counters to update, defaults to the global proxy stats
        upstream: True if bytes flow client -> target
        buffer_size: Read size per chunk

    Returns:
        int: Number of bytes copied
    """
    stats = stats if stats is not None else proxy_stats
    copied = 0
    try:
        while True:
            data = src.recv(buffer_size)
            if not data:
                break
            dst.sendall(data)
            copied += len(data)
            if upstream:
                stats.update_bytes(len(data), 0)
            else:
                stats.update_bytes(0, len(data))
    except TEARDOWN_ERRORS as e:
        log.debug(f"{label} ended by peer: {e}")
    except OSError as e:
        if _is_closed(src) or _is_closed(dst):
            log.debug(f"{label} ended by socket close: {e}")
        else:
            log.error(f"Error in {label} relay: {e}")
    return copied


def _pipe_and_half_close(
    src: socket.socket,
    dst: socket.socket,
    log: EventLog,
    label: str,
    stats: ProxyStats | None,
    upstream: bool,
) -> None:
    try:
        pipe(src, dst, log=log, label=label, stats=stats, upstream=upstream)
    except Exception as e:
        log.error(f"Unexpected error in {label} relay: {e}")
    finally:
        with contextlib.suppress(OSError):
            dst.shutdown(socket.SHUT_WR)


def relay(
    client: socket.socket,
    target: socket.socket,
    *,
    log: EventLog,
    stats: ProxyStats | None = None,
    name: str = "relay",
) -> None:
    """Relay bytes in both directions until both directions are done.

    Args:
        client: Client-side socket
        target: Target-side socket
        log: Event log for error reporting
        stats: Counters to update, defaults to the global proxy stats
        name: Prefix for the relay thread names
    """
    threads = [
        threading.Thread(
            target=_pipe_and_half_close,
            args=(client, target, log, "client->target", stats, True),
            name=f"{name}-up",
            daemon=True,
        ),
        threading.Thread(
            target=_pipe_and_half_close,
            args=(target, client, log, "target->client", stats, False),
            name=f"{name}-down",
            daemon=True,
        ),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
