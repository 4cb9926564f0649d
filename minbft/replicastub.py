"""A stand-in for a replica that may become available only later."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator

from .connector import ConnectionHandler, MessageStreamHandler


class _MessageStreamHandlerStub(MessageStreamHandler):
    """Handler resolved from the replica once it is assigned."""

    def __init__(self, resolve: Callable[[], MessageStreamHandler | None]) -> None:
        self._resolve = resolve
        self._lock = threading.Lock()
        self._resolved = False
        self._handler: MessageStreamHandler | None = None

    def _get_handler(self) -> MessageStreamHandler | None:
        with self._lock:
            if not self._resolved:
                self._handler = self._resolve()
                self._resolved = True
            return self._handler

    def handle_message_stream(self, incoming: Iterable[bytes]) -> Iterator[bytes]:
        """Wait for the replica, then relay the stream through its handler."""
        handler = self._get_handler()
        if handler is None:
            return
        yield from handler.handle_message_stream(incoming)


class ReplicaStub(ConnectionHandler):
    """Forwards to a replica that is assigned once, possibly after use begins.

    Streams opened before the assignment block until it happens.
    """

    def __init__(self) -> None:
        self._replica: ConnectionHandler | None = None
        self._ready = threading.Event()
        self._lock = threading.Lock()

    def assign_replica(self, replica: ConnectionHandler) -> None:
        """Assign the replica; allowed only once."""
        with self._lock:
            if self._ready.is_set():
                raise RuntimeError("replica already assigned")
            self._replica = replica
            self._ready.set()

    def _wait_replica(self) -> ConnectionHandler:
        self._ready.wait()
        assert self._replica is not None
        return self._replica

    def peer_message_stream_handler(self) -> MessageStreamHandler:
        return _MessageStreamHandlerStub(
            lambda: self._wait_replica().peer_message_stream_handler())

    def client_message_stream_handler(self) -> MessageStreamHandler:
        return _MessageStreamHandlerStub(
            lambda: self._wait_replica().client_message_stream_handler())