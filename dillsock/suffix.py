"""Message framing over a byte stream: each message ends with a fixed suffix."""

from __future__ import annotations

import errno
import os

__all__ = ["SuffixSocket", "attach", "MAX_SUFFIX_LENGTH"]

MAX_SUFFIX_LENGTH = 32


def _error(code: int) -> OSError:
    return OSError(code, os.strerror(code))


def _has_methods(obj, *names: str) -> bool:
    return all(callable(getattr(obj, name, None)) for name in names)


class _Layer:
    """Common handling of a protocol layer that owns an underlying socket."""

    def __init__(self, inner):
        self._inner = inner

    def _underlying(self):
        if self._inner is None:
            raise _error(errno.EBADF)
        return self._inner

    def _release(self):
        inner = self._underlying()
        self._inner = None
        return inner

    def _close_inner(self) -> None:
        inner, self._inner = self._inner, None
        if inner is not None:
            (getattr(inner, "abort", None) or inner.close)()

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self._close_inner()


class SuffixSocket(_Layer):
    """Messages delimited by a suffix on top of a ``bsend``/``brecv`` stream."""

    def __init__(self, stream, suffix: bytes):
        super().__init__(stream)
        self._suffix = bytes(suffix)
        self._inerr = False
        self._outerr = False

    @property
    def suffix(self) -> bytes:
        return self._suffix

    def msend(self, data, deadline: int = -1) -> None:
        """Send ``data`` followed by the suffix."""
        stream = self._underlying()
        if self._outerr:
            raise _error(errno.ECONNRESET)
        try:
            stream.bsend(bytes(data) + self._suffix, deadline)
        except OSError:
            self._outerr = True
            raise

    def mrecv(self, maxsize: int | None = None, deadline: int = -1) -> bytes:
        """Receive one message, without its suffix.

        Raises ``OSError(EMSGSIZE)`` if the message is longer than
        ``maxsize``; any failure makes further receives fail.
        """
        stream = self._underlying()
        if self._inerr:
            raise _error(errno.ECONNRESET)
        try:
            return self._recv_message(stream, maxsize, deadline)
        except OSError:
            self._inerr = True
            raise

    def _recv_message(self, stream, maxsize, deadline) -> bytes:
        window = bytearray(stream.brecv(len(self._suffix), deadline))
        message = bytearray()
        while window != self._suffix:
            if maxsize is not None and len(message) >= maxsize:
                raise _error(errno.EMSGSIZE)
            message.append(window[0])
            del window[0]
            window += stream.brecv(1, deadline)
        return bytes(message)

    def detach(self, deadline: int = -1):
        """Stop framing and hand back the underlying stream."""
        self._underlying()
        if self._inerr or self._outerr:
            self.close()
            raise _error(errno.ECONNRESET)
        return self._release()

    def close(self) -> None:
        """Close the underlying stream immediately."""
        self._close_inner()


def attach(stream, suffix: bytes) -> SuffixSocket:
    """Wrap a byte stream so that it carries suffix-delimited messages."""
    if not suffix or len(suffix) > MAX_SUFFIX_LENGTH:
        raise ValueError(f"suffix must be 1 to {MAX_SUFFIX_LENGTH} bytes long")
    if not _has_methods(stream, "bsend", "brecv"):
        raise TypeError("underlying object is not a byte stream")
    return SuffixSocket(stream, suffix)