"""
Polling file watcher.

Snapshots (mtime, size) of every file matching a set of glob patterns
and compares snapshots every `interval` seconds. A batch of changes is
handed to an async callback; the next poll does not start until the
callback has returned.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from gamebuild.logging import get_logger

log = get_logger('watcher')

Snapshot = Dict[Path, Tuple[int, int]]


class ChangeType(str, Enum):
    ADDED = 'added'
    MODIFIED = 'modified'
    REMOVED = 'removed'


@dataclass(frozen=True)
class FileChange:
    path: Path
    change: ChangeType


@dataclass
class FileWatcher:
    """
    Watches files under root matching any of patterns.

    Attributes:
        root: Directory the patterns are relative to
        patterns: Glob patterns, e.g. ['**/*.js']
        callback: Awaited with the list of changes in one poll
        interval: Seconds between polls
    """
    root: Path
    patterns: Sequence[str]
    callback: Callable[[List[FileChange]], Awaitable[object]]
    interval: float = 0.5
    name: str = 'watcher'
    _snapshot: Snapshot = field(default_factory=dict, init=False, repr=False)
    _task: Optional['asyncio.Task'] = field(default=None, init=False, repr=False)

    def scan(self) -> Snapshot:
        """Current (mtime_ns, size) of every watched file."""
        snapshot: Snapshot = {}
        if not self.root.is_dir():
            return snapshot
        for pattern in self.patterns:
            for path in self.root.glob(pattern):
                try:
                    stat = path.stat()
                except OSError:
                    continue
                if path.is_file():
                    snapshot[path] = (stat.st_mtime_ns, stat.st_size)
        return snapshot

    def diff(self, before: Snapshot, after: Snapshot) -> List[FileChange]:
        changes = []
        for path in sorted(after.keys() - before.keys()):
            changes.append(FileChange(path, ChangeType.ADDED))
        for path in sorted(before.keys() & after.keys()):
            if before[path] != after[path]:
                changes.append(FileChange(path, ChangeType.MODIFIED))
        for path in sorted(before.keys() - after.keys()):
            changes.append(FileChange(path, ChangeType.REMOVED))
        return changes

    def prime(self) -> None:
        """Take the baseline snapshot without reporting anything."""
        self._snapshot = self.scan()

    async def poll(self) -> List[FileChange]:
        """
        Compare against the last snapshot and run the callback on changes.

        Callback errors are logged; the watcher keeps going.
        """
        current = await asyncio.to_thread(self.scan)
        changes = self.diff(self._snapshot, current)
        self._snapshot = current
        if not changes:
            return changes

        log.info("[%s] %d file(s) changed: %s", self.name, len(changes),
                 ', '.join(c.path.name for c in changes[:5]))
        try:
            await self.callback(changes)
        except Exception as e:
            log.exception("[%s] Change handler failed: %s", self.name, e, exc=e)
        return changes

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.poll()

    def start(self) -> 'asyncio.Task':
        """Prime the snapshot and start polling in a background task."""
        if self._task is None or self._task.done():
            self.prime()
            log.debug("Watching %s %s", self.root, list(self.patterns))
            self._task = asyncio.create_task(self._loop(), name=self.name)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
