"""A toy ledger in which every delivered request becomes one block."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import queue
import struct
import threading
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass

logger = logging.getLogger(__name__)

HASH_SIZE = hashlib.sha256().digest_size

_HEIGHT = struct.Struct(">Q")


def _b64_or_none(data: bytes | None) -> str | None:
    return None if data is None else base64.b64encode(data).decode("ascii")


@dataclass(frozen=True)
class SimpleBlock:
    """A block: its height, the previous block's hash and the payload."""

    height: int
    prev_block_hash: bytes | None = None
    payload: bytes | None = None

    def to_bytes(self) -> bytes:
        """Serialize as big-endian height, 32-byte previous hash and payload."""
        prev = (self.prev_block_hash or b"")[:HASH_SIZE].ljust(HASH_SIZE, b"\x00")
        return _HEIGHT.pack(self.height) + prev + (self.payload or b"")

    @classmethod
    def from_bytes(cls, data: bytes) -> SimpleBlock:
        """Parse the form produced by :meth:`to_bytes`.

        An all-zero previous hash marks the first block and yields None.
        """
        data = bytes(data)
        if len(data) < _HEIGHT.size:
            raise ValueError("block data too short to hold a height")
        (height,) = _HEIGHT.unpack_from(data)
        end = _HEIGHT.size + HASH_SIZE
        if len(data) < end:
            raise ValueError("block data too short to hold the previous block hash")
        prev = data[_HEIGHT.size:end]
        return cls(
            height=height,
            prev_block_hash=None if not any(prev) else prev,
            payload=data[end:],
        )

    def hash(self) -> bytes:
        """Return the SHA-256 hash of the serialized block."""
        return hashlib.sha256(self.to_bytes()).digest()

    def to_json(self) -> bytes:
        """Return the block as compact JSON with byte fields in base64."""
        doc = {
            "Height": self.height,
            "PrevBlockHash": _b64_or_none(self.prev_block_hash),
            "Payload": _b64_or_none(self.payload),
        }
        return json.dumps(doc, separators=(",", ":")).encode("utf-8")


class SimpleLedger:
    """Request consumer turning each delivered message into a new block.

    Messages are processed in delivery order by a background worker.
    """

    def __init__(self) -> None:
        self._blocks: list[SimpleBlock] = []
        self._state_lock = threading.Lock()
        self._submit_lock = threading.Lock()
        self._closed = False
        self._queue: queue.Queue = queue.Queue()
        self._worker = threading.Thread(target=self._run, name="simple-ledger", daemon=True)
        self._worker.start()

    def __enter__(self) -> SimpleLedger:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __len__(self) -> int:
        with self._state_lock:
            return len(self._blocks)

    def deliver(self, msg: bytes) -> Future:
        """Queue a committed message; the future resolves to the block's JSON."""
        future: Future = Future()
        with self._submit_lock:
            if self._closed:
                raise RuntimeError("ledger is closed")
            self._queue.put((bytes(msg), future))
        return future

    def state_digest(self) -> bytes | None:
        """Return the digest of the latest block, or None for an empty ledger.

        The digest is the serialized last block followed by the SHA-256
        hash of empty input.
        """
        with self._state_lock:
            if not self._blocks:
                return None
            last = self._blocks[-1]
        return last.to_bytes() + hashlib.sha256().digest()

    def blocks(self) -> list[SimpleBlock]:
        """Return a snapshot of all blocks, oldest first."""
        with self._state_lock:
            return list(self._blocks)

    def close(self) -> None:
        """Stop the worker after it has processed every queued message."""
        with self._submit_lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(None)
        self._worker.join()

    def _run(self) -> None:
        while (item := self._queue.get()) is not None:
            payload, future = item
            block = self._append_block(payload)
            logger.info("Received block[%d]: %s", block.height,
                        payload.decode("utf-8", errors="replace"))
            try:
                future.set_result(block.to_json())
            except InvalidStateError:
                pass

    def _append_block(self, payload: bytes) -> SimpleBlock:
        with self._state_lock:
            prev = self._blocks[-1].hash() if self._blocks else None
            block = SimpleBlock(
                height=len(self._blocks) + 1,
                prev_block_hash=prev,
                payload=payload,
            )
            self._blocks.append(block)
            return block