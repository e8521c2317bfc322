"""TLS encryption on top of a byte stream.

The underlying stream may be any object with ``bsend(data, deadline)`` and
``brecv(size, deadline)`` methods, such as :class:`dillsock.tcp.TcpConnection`.
TLS records are read off the stream one at a time, so nothing beyond the
end of the TLS session is consumed and the stream can be handed back
intact by :meth:`TlsSocket.detach`.
"""

from __future__ import annotations

import errno
import os
import ssl

__all__ = ["TlsSocket", "attach_client", "attach_server"]

_RECORD_HEADER = 5
_READ_CHUNK = 16384


def _error(code: int) -> OSError:
    return OSError(code, os.strerror(code))


def _check_stream(stream) -> None:
    if not (callable(getattr(stream, "bsend", None)) and callable(getattr(stream, "brecv", None))):
        raise TypeError("underlying object is not a byte stream")


def _close_stream(stream) -> None:
    closer = getattr(stream, "abort", None) or getattr(stream, "close", None)
    if closer is not None:
        closer()


class TlsSocket:
    """An encrypted byte stream layered over another byte stream."""

    def __init__(self, stream, sslobj: ssl.SSLObject, incoming: ssl.MemoryBIO,
                 outgoing: ssl.MemoryBIO):
        self._stream = stream
        self._ssl = sslobj
        self._incoming = incoming
        self._outgoing = outgoing
        self._indone = False
        self._outdone = False
        self._inerr = False
        self._outerr = False

    @property
    def version(self) -> str | None:
        """The negotiated protocol version, e.g. ``"TLSv1.3"``."""
        return self._ssl.version()

    def _underlying(self):
        if self._stream is None:
            raise _error(errno.EBADF)
        return self._stream

    def _flush(self, deadline: int) -> None:
        data = self._outgoing.read()
        if data:
            self._underlying().bsend(data, deadline)

    def _read_record(self, deadline: int) -> None:
        stream = self._underlying()
        header = bytes(stream.brecv(_RECORD_HEADER, deadline))
        length = int.from_bytes(header[3:5], "big")
        body = bytes(stream.brecv(length, deadline)) if length else b""
        self._incoming.write(header + body)

    def _call(self, operation, deadline: int):
        """Run an SSL operation, shuttling records to and from the stream."""
        while True:
            try:
                result = operation()
            except ssl.SSLWantReadError:
                self._flush(deadline)
                self._read_record(deadline)
                continue
            except BaseException:
                # Alerts generated by the failure still go to the peer.
                try:
                    self._flush(deadline)
                except OSError:
                    pass
                raise
            self._flush(deadline)
            return result

    def bsend(self, data, deadline: int = -1) -> None:
        """Encrypt and send all of ``data``."""
        if self._outdone:
            raise _error(errno.EPIPE)
        if self._outerr:
            raise _error(errno.ECONNRESET)
        view = memoryview(data).cast("B")
        try:
            while view:
                written = self._call(lambda: self._ssl.write(view), deadline)
                view = view[written:]
        except ssl.SSLZeroReturnError:
            self._outerr = True
            raise _error(errno.EPIPE) from None
        except OSError:
            self._outerr = True
            raise

    def brecv(self, size: int, deadline: int = -1) -> bytes:
        """Receive and decrypt exactly ``size`` bytes.

        Raises ``BrokenPipeError`` once the peer has ended the session.
        """
        if size < 0:
            raise ValueError("size must not be negative")
        if self._indone:
            raise _error(errno.EPIPE)
        if self._inerr:
            raise _error(errno.ECONNRESET)
        buf = bytearray()
        try:
            while len(buf) < size:
                chunk = self._call(lambda: self._ssl.read(size - len(buf)), deadline)
                if not chunk:
                    raise _error(errno.EPIPE)
                buf += chunk
        except ssl.SSLZeroReturnError:
            self._indone = True
            raise _error(errno.EPIPE) from None
        except BrokenPipeError:
            self._indone = True
            raise
        except OSError:
            self._inerr = True
            raise
        return bytes(buf)

    def done(self, deadline: int = -1) -> None:
        """Send the TLS close notification; no more data may be sent."""
        if self._outerr:
            raise _error(errno.ECONNRESET)
        if self._outdone:
            raise _error(errno.EPIPE)
        try:
            try:
                self._ssl.unwrap()
            except ssl.SSLWantReadError:
                # Our close notification is out; the peer's is still pending.
                self._flush(deadline)
                self._outdone = True
                return
            self._flush(deadline)
        except OSError:
            self._outerr = True
            raise
        self._outdone = True
        self._indone = True

    def detach(self, deadline: int = -1):
        """Finish the TLS closing handshake and return the underlying stream.

        Data still arriving from the peer is discarded.  On failure the
        underlying stream is closed and the error is raised.
        """
        stream = self._underlying()
        try:
            if self._inerr or self._outerr:
                raise _error(errno.ECONNRESET)
            if not self._outdone:
                self.done(deadline)
            while not self._indone:
                try:
                    self._call(lambda: self._ssl.read(_READ_CHUNK), deadline)
                except ssl.SSLZeroReturnError:
                    self._indone = True
        except BaseException:
            self.close()
            raise
        self._stream = None
        return stream

    def close(self) -> None:
        """Close the underlying stream immediately, without a TLS handshake."""
        stream, self._stream = self._stream, None
        if stream is not None:
            _close_stream(stream)

    def __enter__(self) -> TlsSocket:
        return self

    def __exit__(self, *args) -> None:
        self.close()


def _handshake(stream, context: ssl.SSLContext, server_side: bool, deadline: int) -> TlsSocket:
    incoming = ssl.MemoryBIO()
    outgoing = ssl.MemoryBIO()
    sslobj = context.wrap_bio(incoming, outgoing, server_side=server_side)
    sock = TlsSocket(stream, sslobj, incoming, outgoing)
    try:
        sock._call(sslobj.do_handshake, deadline)
    except ssl.SSLZeroReturnError:
        sock.close()
        raise _error(errno.EPIPE) from None
    except BaseException:
        sock.close()
        raise
    return sock


def attach_client(stream, deadline: int = -1) -> TlsSocket:
    """Start a TLS session as the client; the peer's certificate is not verified."""
    _check_stream(stream)
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return _handshake(stream, context, server_side=False, deadline=deadline)


def attach_server(stream, cert, key, deadline: int = -1) -> TlsSocket:
    """Start a TLS session as the server using PEM ``cert`` and ``key`` files."""
    _check_stream(stream)
    try:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(os.fspath(cert), os.fspath(key))
    except BaseException:
        _close_stream(stream)
        raise
    return _handshake(stream, context, server_side=True, deadline=deadline)