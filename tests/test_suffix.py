import errno

import pytest

from dillsock.suffix import MAX_SUFFIX_LENGTH, attach
from dillsock.tcp import connect, listen, now


class _Stream:
    def __init__(self, incoming=b""):
        self.incoming = bytearray(incoming)
        self.sent = bytearray()
        self.closed = False
        self.fail_send = False

    def bsend(self, data, deadline=-1):
        if self.fail_send:
            raise ConnectionResetError(errno.ECONNRESET, "reset")
        self.sent += data

    def brecv(self, size, deadline=-1):
        if len(self.incoming) < size:
            self.incoming.clear()
            raise BrokenPipeError(errno.EPIPE, "eof")
        chunk = bytes(self.incoming[:size])
        del self.incoming[:size]
        return chunk

    def abort(self):
        self.closed = True


def _receive_all(sock, count, maxsize=None):
    return [sock.mrecv(maxsize, -1) for _ in range(count)]


def test_msend_appends_suffix():
    stream = _Stream()
    s = attach(stream, b"\r\n")
    for message in (b"hello", b""):
        s.msend(message, -1)
    assert bytes(stream.sent) == b"hello\r\n\r\n"


def test_mrecv_splits_messages():
    s = attach(_Stream(b"ABC\r\nDEFG\r\n\r\n"), b"\r\n")
    assert _receive_all(s, 3) == [b"ABC", b"DEFG", b""]


def test_round_trip_through_stream():
    out = _Stream()
    sender = attach(out, b"END")
    messages = [b"first", b"", b"with\nnewline", bytes(range(50))]
    for message in messages:
        sender.msend(message, -1)
    receiver = attach(_Stream(out.sent), b"END")
    assert _receive_all(receiver, len(messages)) == messages


@pytest.mark.parametrize(
    "incoming, maxsize, expected_errno",
    [(b"ABCDE\n", 4, errno.EMSGSIZE), (b"AB", None, errno.EPIPE)],
)
def test_receive_failure_breaks_socket(incoming, maxsize, expected_errno):
    s = attach(_Stream(incoming), incoming[-1:] if maxsize else b"\r\n")
    with pytest.raises(OSError) as info:
        s.mrecv(maxsize, -1)
    assert info.value.errno == expected_errno
    with pytest.raises(ConnectionResetError):
        s.mrecv(maxsize, -1)


def test_message_of_exact_maxsize():
    s = attach(_Stream(b"ABCD\n"), b"\n")
    assert s.mrecv(4, -1) == b"ABCD"


def test_send_failure_breaks_socket_and_detach():
    stream = _Stream()
    s = attach(stream, b"\n")
    stream.fail_send = True
    with pytest.raises(ConnectionResetError):
        s.msend(b"x", -1)
    stream.fail_send = False
    with pytest.raises(ConnectionResetError):
        s.msend(b"x", -1)
    with pytest.raises(ConnectionResetError):
        s.detach(-1)
    assert stream.closed


def test_detach_returns_stream_with_remaining_data():
    stream = _Stream(b"A\r\nrest")
    s = attach(stream, b"\r\n")
    assert s.mrecv(None, -1) == b"A"
    assert s.detach(-1) is stream
    assert stream.brecv(4) == b"rest"
    assert not stream.closed
    with pytest.raises(OSError) as info:
        s.msend(b"x", -1)
    assert info.value.errno == errno.EBADF


def test_close_closes_underlying():
    stream = _Stream()
    with attach(stream, b"\n"):
        pass
    assert stream.closed


@pytest.mark.parametrize(
    "stream, suffix, error",
    [
        (_Stream(), b"", ValueError),
        (_Stream(), bytes(MAX_SUFFIX_LENGTH + 1), ValueError),
        (object(), b"\n", TypeError),
    ],
)
def test_attach_rejects_bad_arguments(stream, suffix, error):
    with pytest.raises(error):
        attach(stream, suffix)


def test_longest_suffix_accepted():
    suffix = bytes(range(1, MAX_SUFFIX_LENGTH + 1))
    stream = _Stream()
    attach(stream, suffix).msend(b"m", -1)
    assert bytes(stream.sent) == b"m" + suffix


def test_over_tcp():
    with listen(("127.0.0.1", 0), 10) as ls:
        client = connect(ls.address, now() + 1000)
        server = ls.accept(now() + 1000)
    cs = attach(client, b"\r\n")
    ss = attach(server, b"\r\n")
    for message in (b"ABC", b"DEFGH"):
        cs.msend(message, -1)
    assert _receive_all(ss, 2) == [b"ABC", b"DEFGH"]
    with ss.detach(-1) as raw:
        cs.msend(b"Z", -1)
        assert raw.brecv(3, -1) == b"Z\r\n"
    cs.close()
    assert client.closed