"""SOCKS5 client and proxy-side handshakes over a byte stream.

The stream may be any object with ``bsend(data, deadline)`` and
``brecv(size, deadline)`` methods, such as :class:`dillsock.tcp.TcpConnection`.
Addresses are ``(host, port)`` pairs whose host is an IP literal.
"""

from __future__ import annotations

import enum
import errno
import ipaddress
import os
import socket
from typing import Callable

__all__ = [
    "Socks5Command",
    "Socks5Reply",
    "client_connect",
    "client_connect_by_name",
    "proxy_auth",
    "proxy_recv_command",
    "proxy_recv_command_by_name",
    "proxy_send_reply",
]

_VERSION = 0x05
_METHOD_NO_AUTH = 0x00
_METHOD_USER_PASS = 0x02
_METHOD_NONE = 0xFF

_AUTH_VERSION = 0x01
_AUTH_SUCCESS = 0x00
_AUTH_FAIL = 0xFF

_ATYP_IPV4 = 1
_ATYP_NAME = 3
_ATYP_IPV6 = 4

_MAX_FIELD = 255


class Socks5Command(enum.IntEnum):
    """Commands a SOCKS5 client can request."""

    CONNECT = 1
    BIND = 2
    UDP_ASSOCIATE = 3


class Socks5Reply(enum.IntEnum):
    """Reply codes a SOCKS5 proxy sends back."""

    SUCCESS = 0
    GENERAL_FAILURE = 1
    NOT_ALLOWED = 2
    NETWORK_UNREACHABLE = 3
    HOST_UNREACHABLE = 4
    CONNECTION_REFUSED = 5
    TTL_EXPIRED = 6
    COMMAND_NOT_SUPPORTED = 7
    ADDRESS_TYPE_NOT_SUPPORTED = 8


_REPLY_ERRORS = {
    Socks5Reply.GENERAL_FAILURE: errno.EIO,
    Socks5Reply.NOT_ALLOWED: errno.EACCES,
    Socks5Reply.NETWORK_UNREACHABLE: errno.ENETUNREACH,
    Socks5Reply.HOST_UNREACHABLE: errno.EHOSTUNREACH,
    Socks5Reply.CONNECTION_REFUSED: errno.ECONNREFUSED,
    Socks5Reply.TTL_EXPIRED: errno.ETIMEDOUT,
    Socks5Reply.COMMAND_NOT_SUPPORTED: errno.EOPNOTSUPP,
    Socks5Reply.ADDRESS_TYPE_NOT_SUPPORTED: errno.EAFNOSUPPORT,
}


def _error(code: int) -> OSError:
    return OSError(code, os.strerror(code))


def _check_stream(stream) -> None:
    if not (callable(getattr(stream, "bsend", None)) and callable(getattr(stream, "brecv", None))):
        raise TypeError("underlying object is not a byte stream")


def _encode(value, what: str) -> bytes | None:
    if value is None:
        return None
    raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    if len(raw) > _MAX_FIELD:
        raise ValueError(f"{what} must be at most {_MAX_FIELD} bytes long")
    return raw


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _client_auth(stream, username, password, deadline: int) -> None:
    _check_stream(stream)
    user = _encode(username, "username")
    secret = _encode(password, "password")
    if user is None or secret is None:
        methods = bytes([_METHOD_NO_AUTH])
    else:
        methods = bytes([_METHOD_NO_AUTH, _METHOD_USER_PASS])
    stream.bsend(bytes([_VERSION, len(methods)]) + methods, deadline)
    version, method = stream.brecv(2, deadline)
    if version != _VERSION:
        raise _error(errno.EPROTO)
    if method == _METHOD_NO_AUTH:
        return
    if method == _METHOD_USER_PASS:
        if user is None or secret is None:
            # The proxy chose a method that was never offered.
            raise _error(errno.EPROTO)
        request = bytes([_AUTH_VERSION, len(user)]) + user + bytes([len(secret)]) + secret
        stream.bsend(request, deadline)
        version, status = stream.brecv(2, deadline)
        if version != _AUTH_VERSION:
            raise _error(errno.EPROTO)
        if status != _AUTH_SUCCESS:
            raise _error(errno.EACCES)
        return
    if method == _METHOD_NONE:
        raise _error(errno.EACCES)
    raise _error(errno.EPROTO)


def _pack_port(port: int) -> bytes:
    if not 0 <= port <= 65535:
        raise ValueError("port must be between 0 and 65535")
    return port.to_bytes(2, "big")


def _pack_address(address) -> bytes:
    host, port = address
    try:
        ip = ipaddress.ip_address(host if not isinstance(host, str) else host.strip())
    except ValueError as exc:
        raise ValueError(f"not an IPv4 or IPv6 address: {host!r}") from exc
    atyp = _ATYP_IPV4 if ip.version == 4 else _ATYP_IPV6
    return bytes([atyp]) + ip.packed + _pack_port(int(port))


def _recv_frame(stream, deadline: int):
    """Read a command request or reply; return (code, atyp, raw address, port)."""
    head = stream.brecv(4, deadline)
    if head[0] != _VERSION or head[2] != 0x00:
        raise _error(errno.EPROTO)
    atyp = head[3]
    if atyp == _ATYP_IPV4:
        body = stream.brecv(6, deadline)
    elif atyp == _ATYP_IPV6:
        body = stream.brecv(18, deadline)
    elif atyp == _ATYP_NAME:
        length = stream.brecv(1, deadline)[0]
        body = stream.brecv(length + 2, deadline)
    else:
        raise _error(errno.EPROTO)
    return head[1], atyp, bytes(body[:-2]), int.from_bytes(body[-2:], "big")


def _handle_connection_response(stream, deadline: int) -> None:
    code, _, _, _ = _recv_frame(stream, deadline)
    if code == Socks5Reply.SUCCESS:
        return
    try:
        raise _error(_REPLY_ERRORS[Socks5Reply(code)])
    except ValueError:
        raise _error(errno.EPROTO) from None


def _recv_command(stream, deadline: int):
    _check_stream(stream)
    code, atyp, raw, port = _recv_frame(stream, deadline)
    try:
        command = Socks5Command(code)
    except ValueError:
        raise _error(errno.EPROTO) from None
    return command, atyp, raw, port


def client_connect(stream, username, password, address, deadline: int = -1) -> None:
    """Authenticate with the proxy and ask it to connect to ``address``.

    Without both a username and a password only "no authentication" is
    offered.  Raises an ``OSError`` matching the proxy's reply on failure.
    """
    _client_auth(stream, username, password, deadline)
    request = bytes([_VERSION, Socks5Command.CONNECT, 0x00]) + _pack_address(address)
    stream.bsend(request, deadline)
    _handle_connection_response(stream, deadline)


def client_connect_by_name(stream, username, password, hostname, port, deadline: int = -1) -> None:
    """Authenticate with the proxy and ask it to connect to ``hostname:port``.

    IP literals are sent as addresses; anything else is left for the proxy
    to resolve.
    """
    _client_auth(stream, username, password, deadline)
    if hostname is None:
        raise ValueError("hostname is required")
    name = _encode(hostname, "hostname")
    if not 0 < port <= 65535:
        raise ValueError("port must be between 1 and 65535")
    text = _decode(name)
    try:
        target = bytes([_ATYP_IPV4]) + ipaddress.IPv4Address(text).packed
    except ValueError:
        try:
            target = bytes([_ATYP_IPV6]) + ipaddress.IPv6Address(text).packed
        except ValueError:
            target = bytes([_ATYP_NAME, len(name)]) + name
    request = bytes([_VERSION, Socks5Command.CONNECT, 0x00]) + target + _pack_port(port)
    stream.bsend(request, deadline)
    _handle_connection_response(stream, deadline)


def proxy_auth(stream, auth_fn: Callable[[str, str], bool] | None, deadline: int = -1) -> None:
    """Run the proxy side of method selection and authentication.

    With no ``auth_fn`` a client offering "no authentication" is accepted.
    With one, the client must offer username/password and ``auth_fn``
    decides.  Raises ``PermissionError`` when the client is refused.
    """
    _check_stream(stream)
    version, count = stream.brecv(2, deadline)
    if version != _VERSION:
        raise _error(errno.EPROTO)
    methods = set(stream.brecv(count, deadline))
    if _METHOD_NO_AUTH in methods and auth_fn is None:
        stream.bsend(bytes([_VERSION, _METHOD_NO_AUTH]), deadline)
        return
    if _METHOD_USER_PASS in methods and auth_fn is not None:
        stream.bsend(bytes([_VERSION, _METHOD_USER_PASS]), deadline)
        version, ulen = stream.brecv(2, deadline)
        if version != _AUTH_VERSION:
            raise _error(errno.EPROTO)
        user = stream.brecv(ulen, deadline)
        plen = stream.brecv(1, deadline)[0]
        secret = stream.brecv(plen, deadline)
        if auth_fn(_decode(user), _decode(secret)):
            stream.bsend(bytes([_AUTH_VERSION, _AUTH_SUCCESS]), deadline)
            return
        stream.bsend(bytes([_AUTH_VERSION, _AUTH_FAIL]), deadline)
        raise _error(errno.EACCES)
    stream.bsend(bytes([_VERSION, _METHOD_NONE]), deadline)
    raise _error(errno.EACCES)


def _resolve(name: str, port: int):
    infos = socket.getaddrinfo(name, port, type=socket.SOCK_STREAM)
    if not infos:
        raise _error(errno.EADDRNOTAVAIL)
    infos.sort(key=lambda info: info[0] != socket.AF_INET)
    return infos[0][4][0], port


def proxy_recv_command(stream, deadline: int = -1):
    """Receive a client's command; return ``(command, (ip, port))``.

    Domain names are resolved, IPv4 preferred.
    """
    command, atyp, raw, port = _recv_command(stream, deadline)
    if atyp == _ATYP_NAME:
        return command, _resolve(_decode(raw), port)
    return command, (str(ipaddress.ip_address(raw)), port)


def proxy_recv_command_by_name(stream, deadline: int = -1):
    """Receive a client's command; return ``(command, host, port)`` unresolved."""
    command, atyp, raw, port = _recv_command(stream, deadline)
    host = _decode(raw) if atyp == _ATYP_NAME else str(ipaddress.ip_address(raw))
    return command, host, port


def proxy_send_reply(stream, reply, address, deadline: int = -1) -> None:
    """Send the reply to a command, with the bound ``address``."""
    _check_stream(stream)
    try:
        code = Socks5Reply(reply)
    except ValueError:
        raise ValueError(f"invalid SOCKS5 reply code: {reply!r}") from None
    stream.bsend(bytes([_VERSION, code, 0x00]) + _pack_address(address), deadline)