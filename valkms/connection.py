"""Unix domain socket connection to a validator."""

from __future__ import annotations


class UnixConnection:
    """Byte stream over a Unix domain socket or any binary stream."""

    def __init__(self, socket) -> None:
        self._socket = socket
        self._is_socket = hasattr(socket, "recv") and hasattr(socket, "send")

    def read(self, size: int) -> bytes:
        """Read up to `size` bytes."""
        if self._is_socket:
            return self._socket.recv(size)
        return self._socket.read(size)

    def write(self, data: bytes) -> int:
        """Write bytes, returning how many were written."""
        if self._is_socket:
            return self._socket.send(bytes(data))
        return self._socket.write(bytes(data))

    def flush(self) -> None:
        """Flush buffered output, if the underlying stream buffers."""
        if not self._is_socket:
            self._socket.flush()

    def __enter__(self) -> "UnixConnection":
        return self

    def __exit__(self, *exc_info) -> None:
        self._socket.close()