"""Termination handshake on top of a message socket.

A special terminal message, agreed on by both peers, marks the end of the
conversation in one direction.  An empty terminator means that an empty
message ends the conversation.
"""

from __future__ import annotations

import errno

from dillsock.suffix import _error, _has_methods, _Layer

__all__ = ["TermSocket", "attach", "MAX_TERMINATOR_LENGTH"]

MAX_TERMINATOR_LENGTH = 32


class TermSocket(_Layer):
    """A message socket whose end is signalled by a terminal message."""

    def __init__(self, sock, terminator: bytes):
        super().__init__(sock)
        self._terminator = bytes(terminator)
        self._indone = False
        self._outdone = False

    @property
    def terminator(self) -> bytes:
        return self._terminator

    def _sending(self):
        sock = self._underlying()
        if self._outdone:
            raise _error(errno.EPIPE)
        return sock

    def msend(self, data, deadline: int = -1) -> None:
        """Send one message."""
        self._sending().msend(data, deadline)

    def mrecv(self, maxsize: int | None = None, deadline: int = -1) -> bytes:
        """Receive one message.

        Raises ``BrokenPipeError`` once the peer's terminal message arrives.
        """
        sock = self._underlying()
        if self._indone:
            raise _error(errno.EPIPE)
        term = self._terminator
        limit = None if maxsize is None else max(maxsize, len(term))
        message = bytes(sock.mrecv(limit, deadline))
        if message == term:
            self._indone = True
            raise _error(errno.EPIPE)
        if maxsize is not None and len(message) > maxsize:
            raise _error(errno.EMSGSIZE)
        return message

    def done(self, deadline: int = -1) -> None:
        """Send the terminal message; no more messages may be sent."""
        self._sending().msend(self._terminator, deadline)
        self._outdone = True

    def detach(self, deadline: int = -1):
        """Finish the termination handshake and return the underlying socket.

        Messages still arriving from the peer are discarded.  On failure the
        underlying socket is closed and the error is raised.
        """
        self._underlying()
        try:
            if not self._outdone:
                self.done(deadline)
            while not self._indone:
                try:
                    self.mrecv(None, deadline)
                except BrokenPipeError:
                    break
        except BaseException:
            self.close()
            raise
        return self._release()

    def close(self) -> None:
        """Close the underlying socket immediately."""
        self._close_inner()


def attach(sock, terminator: bytes = b"") -> TermSocket:
    """Wrap a message socket so that it carries a termination handshake."""
    terminator = bytes(terminator)
    if len(terminator) > MAX_TERMINATOR_LENGTH:
        raise ValueError(f"terminator must be at most {MAX_TERMINATOR_LENGTH} bytes long")
    if not _has_methods(sock, "msend", "mrecv"):
        raise TypeError("underlying object is not a message socket")
    return TermSocket(sock, terminator)