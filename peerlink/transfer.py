"""Chunked files and the queue that sends them to peers over TCP."""

from __future__ import annotations

import logging
import socket
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

log = logging.getLogger(__name__)

MAX_CONCURRENT = 2


@dataclass
class Chunk:
    pos: int
    size: int
    buffer: bytes

    def payload(self) -> bytes:
        """Wire frame for this chunk: `size` zero bytes, a header, then the data."""
        return bytes(self.size) + f"CHUNK_{self.pos},".encode() + self.buffer


@dataclass
class File:
    id: int
    size: int
    name: str
    chunk_size: int
    chunks: list[Chunk] = field(default_factory=list)

    def get_chunk(self, pos: int) -> Chunk:
        if pos < 0:
            raise IndexError("chunk position out of range")
        return self.chunks[pos]


def build_file(file_id: int, size: int, name: str, chunk_size: int, buffer: bytes) -> File:
    """Split the first `size` bytes of `buffer` into chunks of `chunk_size`."""
    if chunk_size <= 0:
        raise ValueError("chunk size must be positive")
    if len(buffer) < size:
        raise ValueError("buffer is shorter than the declared size")
    full, rest = divmod(size, chunk_size)
    chunks = [
        Chunk(pos, chunk_size, bytes(buffer[pos * chunk_size:(pos + 1) * chunk_size]))
        for pos in range(full)
    ]
    if rest:
        chunks.append(Chunk(full, rest, bytes(buffer[full * chunk_size:])))
    return File(file_id, size, name, chunk_size, chunks)


@dataclass
class Transfer:
    id: int
    from_addr: Optional[tuple[str, int]]
    to_addr: tuple[str, int]
    file: File

    def start_payload(self) -> bytes:
        f = self.file
        return f"START:{self.id},{f.id},{f.name},{f.size},{f.chunk_size}".encode()

    def start(self) -> TransferResult:
        """Connect to the destination and send the header and every chunk."""
        try:
            with socket.create_connection(self.to_addr, source_address=self.from_addr) as conn:
                conn.sendall(self.start_payload())
                for chunk in self.file.chunks:
                    conn.sendall(chunk.payload())
        except OSError:
            return TransferResult(self, False)
        return TransferResult(self, True)


@dataclass
class TransferResult:
    transfer: Transfer
    result: bool


class TransferQueue:
    """FIFO of transfers, run at most two at a time by loop()."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: deque[Transfer] = deque()
        self._slots = threading.Semaphore(MAX_CONCURRENT)
        self._stopped = threading.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def has(self, transfer: Transfer) -> bool:
        with self._lock:
            return any(t.id == transfer.id for t in self._pending)

    def add_transfer(self, transfer: Transfer) -> bool:
        """Queue a transfer unless one with the same id is pending."""
        with self._lock:
            if any(t.id == transfer.id for t in self._pending):
                return False
            self._pending.append(transfer)
            return True

    def _next(self) -> Optional[Transfer]:
        with self._lock:
            return self._pending.popleft() if self._pending else None

    def _run(self, transfer: Transfer) -> None:
        try:
            if transfer.start().result:
                log.info("Transfer succeeded: %s", transfer.id)
            else:
                log.info("Transfer failed: %s", transfer.id)
        finally:
            self._slots.release()

    def loop(self) -> None:
        """Block, starting queued transfers until stop() is called."""
        while not self._stopped.is_set():
            if not self._slots.acquire(timeout=0.1):
                continue
            transfer = self._next()
            if transfer is None:
                self._slots.release()
                self._stopped.wait(0.1)
                continue
            threading.Thread(target=self._run, args=(transfer,), daemon=True).start()

    def stop(self) -> None:
        self._stopped.set()