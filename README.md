# dillsock

Small, blocking socket building blocks with absolute deadlines.

Every operation that may wait takes a `deadline`: an absolute time in
milliseconds as returned by `dillsock.tcp.now()` (a monotonic clock),
`-1` to wait forever, or `0` not to wait at all. Failures are raised as
`OSError` subclasses carrying the matching `errno`, for example
`TimeoutError` when the deadline passes, `BrokenPipeError` at end of
stream, and `ConnectionResetError` once a direction of a connection has
failed.

## Modules

- `dillsock.tcp`
  - `connect(address, deadline)` and `listen(address, backlog)` take
    `(host, port)` pairs; port 0 picks an ephemeral port, readable from
    `TcpListener.address`.
  - `from_socket(sock)` and `listener_from_socket(sock)` take ownership of
    an existing connected or listening IPv4/IPv6 stream socket.
  - `TcpConnection`: `bsend(data, deadline)` sends everything,
    `brecv(size, deadline)` returns exactly `size` bytes, `done(deadline)`
    half-closes the sending side, `close(deadline)` shuts down gracefully by
    discarding the peer's data until its end of stream, and `abort()`
    releases the socket at once. Used as a context manager it aborts on exit.
  - `TcpListener`: `accept(deadline)` returns a `TcpConnection`; `close()`.
- `dillsock.suffix`: `attach(stream, suffix)` wraps any object with
  `bsend`/`brecv` in a `SuffixSocket` whose messages each end with a fixed
  suffix of 1 to 32 bytes. `mrecv(maxsize, deadline)` raises
  `OSError(EMSGSIZE)` for longer messages; `detach(deadline)` hands the
  stream back.
- `dillsock.term`: `attach(sock, terminator=b"")` wraps any object with
  `msend`/`mrecv` in a `TermSocket`. `done(deadline)` sends the terminator
  (at most 32 bytes); receiving the peer's terminator raises
  `BrokenPipeError`. `detach(deadline)` completes the handshake, discarding
  remaining messages, and returns the underlying socket.
- `dillsock.socks5`: client handshakes `client_connect` (to an IP address)
  and `client_connect_by_name` (IP literals are sent as addresses, other
  names are resolved by the proxy), with optional username/password
  authentication; proxy-side `proxy_auth`, `proxy_recv_command`,
  `proxy_recv_command_by_name` and `proxy_send_reply`, plus the
  `Socks5Command` and `Socks5Reply` enums. A failed reply from the proxy is
  raised as the matching `OSError`; a refused client as `PermissionError`.
- `dillsock.tls`: `attach_client(stream, deadline)` and
  `attach_server(stream, cert, key, deadline)` (PEM file paths) return a
  `TlsSocket` with `bsend`, `brecv`, `done`, `detach` and `close`. The
  client does not verify the server's certificate. TLS records are read one
  at a time, so `detach` returns the underlying stream without having
  consumed anything past the end of the session.
- `dillsock.rbtree`: `RBTree`, a red-black tree of `Node` items keyed by
  integer `val`, with `insert(val, payload)`, `erase(node)`, `first()`,
  `next(node)`, `is_empty()`, `len()` and iteration from the lowest value
  to the highest.

## Example

```python
from dillsock import suffix, tcp, term

with tcp.listen(("127.0.0.1", 0), 10) as listener:
    port = listener.address[1]
    client = tcp.connect(("127.0.0.1", port), tcp.now() + 1000)
    server = listener.accept(-1)

    client.bsend(b"ABC", -1)
    assert server.brecv(3, -1) == b"ABC"

    left = term.attach(suffix.attach(client, b"\r\n"), b"STOP")
    right = term.attach(suffix.attach(server, b"\r\n"), b"STOP")
    left.msend(b"hello", -1)
    assert right.mrecv(1024, -1) == b"hello"
    left.close()
    right.close()
```

## SOCKS5 through a proxy

```python
from dillsock import socks5, tcp

conn = tcp.connect(("127.0.0.1", 1080), tcp.now() + 1000)
socks5.client_connect_by_name(conn, None, None, "example.com", 80, tcp.now() + 5000)
conn.bsend(b"HEAD / HTTP/1.0\r\n\r\n", -1)
```

Pass a username and a password instead of `None, None` to offer
username/password authentication as well.

## Ordered tree

```python
from dillsock.rbtree import RBTree

tree = RBTree()
for value in (5, 1, 3):
    tree.insert(value, f"item {value}")
print([node.val for node in tree])  # [1, 3, 5]
```

## What it does not do

All operations block the calling thread until they finish or their
deadline passes; there is no coroutine scheduler, no channels, no
local (Unix-domain) or UDP sockets, and no DNS resolver of its own:
names are looked up with the system's `getaddrinfo`. The package offers no
command-line program; the SOCKS5 functions are handshakes only, not a
running proxy server.

## Running the tests

```
pip install -e .[test]
pytest
```