"""Polling watcher that reports created, updated and deleted files."""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

log = logging.getLogger(__name__)


class EventType(IntEnum):
    CREATED = 1
    UPDATED = 2
    DELETED = 3


@dataclass(frozen=True)
class FileSystemEvent:
    event_type: EventType
    file_path: str


@dataclass(frozen=True)
class FileStat:
    name: str
    path: str
    checksum: str

    def same_as(self, other: FileStat) -> bool:
        """True when both have the same name and content checksum."""
        return self.name == other.name and self.checksum == other.checksum


@dataclass
class DirStat:
    """Snapshot of the regular files in a directory."""

    directory_path: str
    files: dict[str, FileStat] = field(default_factory=dict)

    def has_file(self, file_name: str) -> bool:
        return file_name in self.files

    def compare(self, other: DirStat) -> list[FileSystemEvent]:
        """Events that turn this snapshot into `other`."""
        events = []
        for name, mine in self.files.items():
            theirs = other.files.get(name)
            if theirs is None:
                events.append(FileSystemEvent(EventType.DELETED, mine.path))
            elif theirs.checksum != mine.checksum:
                events.append(FileSystemEvent(EventType.UPDATED, mine.path))
        for name, theirs in other.files.items():
            if name not in self.files:
                events.append(FileSystemEvent(EventType.CREATED, theirs.path))
        return events


def file_checksum(file_path) -> str:
    """Hex MD5 digest of a file's content."""
    digest = hashlib.md5()
    with open(file_path, "rb") as handle:
        for block in iter(lambda: handle.read(65536), b""):
            digest.update(block)
    return digest.hexdigest()


def dir_stat(directory_path) -> DirStat:
    """Snapshot the regular files directly inside a directory."""
    directory_path = os.fspath(directory_path)
    with os.scandir(directory_path) as entries:
        listing = sorted(entries, key=lambda entry: entry.name)
    files = {}
    for entry in listing:
        if entry.is_dir(follow_symlinks=False):
            continue
        path = os.path.join(directory_path, entry.name)
        files[entry.name] = FileStat(entry.name, path, file_checksum(path))
    return DirStat(directory_path, files)


class Watcher:
    """Polls a directory every `cooldown` seconds and puts events on `events`."""

    def __init__(self, directory_path, cooldown: float, events) -> None:
        self.directory_path = os.fspath(directory_path)
        self.cooldown = cooldown
        self.events = events
        self._base: Optional[DirStat] = None
        self._stopped = threading.Event()

    def poll(self) -> list[FileSystemEvent]:
        """Compare against the last snapshot, publish and return the changes."""
        current = dir_stat(self.directory_path)
        if self._base is None:
            self._base = current
            return []
        changes = self._base.compare(current)
        self._base = current
        if changes:
            log.info("File system events detected: %s", changes)
            for event in changes:
                self.events.put(event)
        return changes

    def listen(self) -> None:
        """Block, polling until stop() is called."""
        log.info("Listening for file system events in %s", self.directory_path)
        self._base = dir_stat(self.directory_path)
        while not self._stopped.wait(self.cooldown):
            self.poll()

    def stop(self) -> None:
        self._stopped.set()