"""TCP byte-stream connections and listeners with millisecond deadlines.

A deadline is an absolute point in time as returned by :func:`now`
(milliseconds).  A deadline of ``-1`` means "wait forever" and ``0`` means
"do not wait at all".
"""

from __future__ import annotations

import errno
import os
import select
import socket
import time

__all__ = [
    "TcpConnection",
    "TcpListener",
    "connect",
    "listen",
    "from_socket",
    "listener_from_socket",
    "now",
]

_IN_PROGRESS = {errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EAGAIN, errno.EALREADY}
_RESET_ERRORS = (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)
_RECV_CHUNK = 65536


def now() -> int:
    """Return the current monotonic time in milliseconds."""
    return time.monotonic_ns() // 1_000_000


def _error(code: int, message: str | None = None) -> OSError:
    # OSError picks the matching subclass (TimeoutError, BrokenPipeError, ...).
    return OSError(code, message or os.strerror(code))


def _wait(sock: socket.socket, *, write: bool, deadline: int) -> None:
    timeout = None if deadline < 0 else max(0.0, (deadline - now()) / 1000)
    if write:
        _, ready, _ = select.select([], [sock], [], timeout)
    else:
        ready, _, _ = select.select([sock], [], [], timeout)
    if not ready:
        raise _error(errno.ETIMEDOUT)


def _resolve(address, *, passive: bool):
    host, port = address
    flags = socket.AI_PASSIVE if passive else 0
    infos = socket.getaddrinfo(host or None, port, type=socket.SOCK_STREAM, flags=flags)
    if not infos:
        raise _error(errno.EADDRNOTAVAIL)
    infos.sort(key=lambda info: info[0] != socket.AF_INET)
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr


class TcpConnection:
    """A connected TCP socket offering exact-size sends and receives."""

    def __init__(self, sock: socket.socket):
        sock.setblocking(False)
        self._sock = sock
        self._closed = False
        self._rbusy = False
        self._sbusy = False
        self._indone = False
        self._outdone = False
        self._inerr = False
        self._outerr = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def peer_address(self):
        return self._sock.getpeername()[:2]

    def bsend(self, data, deadline: int = -1) -> None:
        """Send all of ``data`` before ``deadline``."""
        if self._sbusy:
            raise _error(errno.EBUSY)
        if self._outdone:
            raise _error(errno.EPIPE)
        if self._outerr:
            raise _error(errno.ECONNRESET)
        self._sbusy = True
        try:
            self._send_all(memoryview(data).cast("B"), deadline)
        except OSError:
            self._outerr = True
            raise
        finally:
            self._sbusy = False

    def _send_all(self, view: memoryview, deadline: int) -> None:
        while view:
            try:
                sent = self._sock.send(view)
            except BlockingIOError:
                _wait(self._sock, write=True, deadline=deadline)
                continue
            except _RESET_ERRORS as exc:
                raise _error(errno.ECONNRESET) from exc
            view = view[sent:]

    def brecv(self, size: int, deadline: int = -1) -> bytes:
        """Receive exactly ``size`` bytes before ``deadline``."""
        if size < 0:
            raise ValueError("size must not be negative")
        if self._rbusy:
            raise _error(errno.EBUSY)
        if self._indone:
            raise _error(errno.EPIPE)
        if self._inerr:
            raise _error(errno.ECONNRESET)
        self._rbusy = True
        try:
            return self._recv_exact(size, deadline)
        except BrokenPipeError:
            self._indone = True
            raise
        except OSError:
            self._inerr = True
            raise
        finally:
            self._rbusy = False

    def _recv_some(self, size: int, deadline: int) -> bytes:
        while True:
            try:
                chunk = self._sock.recv(size)
            except BlockingIOError:
                _wait(self._sock, write=False, deadline=deadline)
                continue
            except _RESET_ERRORS as exc:
                raise _error(errno.ECONNRESET) from exc
            if not chunk:
                raise _error(errno.EPIPE, "connection closed by peer")
            return chunk

    def _recv_exact(self, size: int, deadline: int) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            buf += self._recv_some(size - len(buf), deadline)
        return bytes(buf)

    def done(self, deadline: int = -1) -> None:
        """Signal the peer that no more data will be sent."""
        if self._outdone:
            raise _error(errno.EPIPE)
        if self._outerr:
            raise _error(errno.ECONNRESET)
        try:
            self._sock.shutdown(socket.SHUT_WR)
        except OSError as exc:
            if exc.errno == errno.ENOTCONN:
                self._outerr = True
                raise _error(errno.ECONNRESET) from exc
            if exc.errno == errno.ENOBUFS:
                self._outerr = True
                raise MemoryError("out of buffer space") from exc
            raise
        self._outdone = True

    def close(self, deadline: int = -1) -> None:
        """Shut the connection down gracefully, then release it.

        Sends end-of-stream if not done already and discards inbound data
        until the peer ends its side too.  The socket is released even
        when this raises.
        """
        try:
            if self._inerr or self._outerr:
                raise _error(errno.ECONNRESET)
            if not self._outdone:
                self.done(deadline)
            self._drain(deadline)
        finally:
            self.abort()

    def _drain(self, deadline: int) -> None:
        if self._indone:
            return
        try:
            while True:
                self._recv_some(_RECV_CHUNK, deadline)
                if deadline >= 0 and now() >= deadline:
                    raise _error(errno.ETIMEDOUT)
        except BrokenPipeError:
            self._indone = True
        except OSError:
            self._inerr = True
            raise

    def abort(self) -> None:
        """Release the socket immediately without any handshake."""
        if not self._closed:
            self._closed = True
            self._sock.close()

    def __enter__(self) -> TcpConnection:
        return self

    def __exit__(self, *args) -> None:
        self.abort()


class TcpListener:
    """A listening TCP socket."""

    def __init__(self, sock: socket.socket):
        sock.setblocking(False)
        self._sock = sock
        self._closed = False

    @property
    def address(self):
        return self._sock.getsockname()[:2]

    def accept(self, deadline: int = -1) -> TcpConnection:
        """Wait for an incoming connection and return it."""
        while True:
            try:
                sock, _ = self._sock.accept()
            except BlockingIOError:
                _wait(self._sock, write=False, deadline=deadline)
                continue
            try:
                return TcpConnection(sock)
            except OSError:
                sock.close()
                raise

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._sock.close()

    def __enter__(self) -> TcpListener:
        return self

    def __exit__(self, *args) -> None:
        self.close()


def connect(address, deadline: int = -1) -> TcpConnection:
    """Connect to ``address`` (a ``(host, port)`` pair)."""
    family, sockaddr = _resolve(address, passive=False)
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setblocking(False)
        rc = sock.connect_ex(sockaddr)
        if rc in _IN_PROGRESS:
            _wait(sock, write=True, deadline=deadline)
            rc = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if rc:
            raise _error(rc)
        return TcpConnection(sock)
    except BaseException:
        sock.close()
        raise


def listen(address, backlog: int = 10) -> TcpListener:
    """Listen on ``address``; port 0 picks an ephemeral port."""
    family, sockaddr = _resolve(address, passive=True)
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
        sock.listen(backlog)
        return TcpListener(sock)
    except BaseException:
        sock.close()
        raise


def _check_socket(sock: socket.socket, listening: bool) -> None:
    if sock.fileno() < 0:
        raise ValueError("socket is closed")
    if sock.type != socket.SOCK_STREAM:
        raise ValueError("not a stream socket")
    if sock.family not in (socket.AF_INET, socket.AF_INET6):
        raise ValueError("not an IPv4 or IPv6 socket")
    option = getattr(socket, "SO_ACCEPTCONN", None)
    if option is not None:
        accepting = bool(sock.getsockopt(socket.SOL_SOCKET, option))
        if accepting != listening:
            raise ValueError("socket is listening" if accepting else "socket is not listening")


def from_socket(sock: socket.socket) -> TcpConnection:
    """Take ownership of an already connected TCP socket."""
    _check_socket(sock, listening=False)
    return TcpConnection(sock)


def listener_from_socket(sock: socket.socket) -> TcpListener:
    """Take ownership of an already listening TCP socket."""
    _check_socket(sock, listening=True)
    return TcpListener(sock)