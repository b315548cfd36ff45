import io
import socket

from valkms.connection import UnixConnection


class RecordingStream(io.BytesIO):
    def __init__(self, *args):
        super().__init__(*args)
        self.flushes = 0

    def flush(self):
        self.flushes += 1
        super().flush()


def test_socket_write_reaches_peer():
    left, right = socket.socketpair()
    with left, right:
        conn = UnixConnection(left)
        assert conn.write(b"hello") == 5
        assert right.recv(16) == b"hello"


def test_socket_read_from_peer():
    left, right = socket.socketpair()
    with left, right:
        conn = UnixConnection(left)
        right.sendall(b"data")
        assert conn.read(1024) == b"data"


def test_socket_read_limited_by_size():
    left, right = socket.socketpair()
    with left, right:
        conn = UnixConnection(left)
        right.sendall(b"abcdef")
        first = conn.read(3)
        assert first == b"abc"
        assert conn.read(3) == b"def"


def test_context_manager_closes_socket():
    left, right = socket.socketpair()
    with right:
        with UnixConnection(left):
            pass
        assert left.fileno() == -1


def test_stream_read_and_write():
    stream = RecordingStream(b"incoming")
    conn = UnixConnection(stream)
    assert conn.read(4) == b"inco"
    assert conn.read(100) == b"ming"
    assert conn.write(b"out") == 3
    assert stream.getvalue().endswith(b"out")


def test_stream_flush_is_forwarded():
    stream = RecordingStream()
    conn = UnixConnection(stream)
    conn.flush()
    conn.flush()
    assert stream.flushes == 2