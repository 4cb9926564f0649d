"""Dispatching of message streams to local representations of replicas."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator


class MessageStreamHandler(ABC):
    """Handles a stream of incoming messages, producing outgoing ones."""

    @abstractmethod
    def handle_message_stream(self, incoming: Iterable[bytes]) -> Iterator[bytes]:
        """Consume incoming messages and yield the messages sent back."""


class ConnectionHandler(ABC):
    """A replica as seen by whoever connects to it."""

    @abstractmethod
    def peer_message_stream_handler(self) -> MessageStreamHandler | None:
        """Handler for a stream from another replica."""

    @abstractmethod
    def client_message_stream_handler(self) -> MessageStreamHandler | None:
        """Handler for a stream from a client."""


class ReplicaConnector(ABC):
    """Routes message streams to replica representations by replica ID."""

    def __init__(self) -> None:
        self._replicas: dict[int, ConnectionHandler] = {}

    def assign_replica(self, replica_id: int, replica: ConnectionHandler) -> None:
        """Associate the replica ID with a replica representation."""
        self._replicas[replica_id] = replica

    def assign_replica_stub(self, replica_id: int, stub: ConnectionHandler) -> None:
        """Associate the replica ID with a replica stub in the same process."""
        self.assign_replica(replica_id, stub)

    @abstractmethod
    def replica_message_stream_handler(self, replica_id: int) -> MessageStreamHandler | None:
        """Handler for a stream to the replica, or None if it is not assigned."""


class ClientSideConnector(ReplicaConnector):
    """Connector that opens client-to-replica streams."""

    def replica_message_stream_handler(self, replica_id: int) -> MessageStreamHandler | None:
        replica = self._replicas.get(replica_id)
        if replica is None:
            return None
        return replica.client_message_stream_handler()


class ReplicaSideConnector(ReplicaConnector):
    """Connector that opens replica-to-replica streams."""

    def replica_message_stream_handler(self, replica_id: int) -> MessageStreamHandler | None:
        replica = self._replicas.get(replica_id)
        if replica is None:
            return None
        return replica.peer_message_stream_handler()