"""
Retention sweep for the media directory.

Deletes deliverables, logs and abandoned tmp-{id} request directories once
they are older than a maximum age. Runs out of band; never part of a request.
"""

import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass
class SweptEntry:
    path: Path
    age_seconds: float
    size: int


@dataclass
class SweepResult:
    deleted: List[SweptEntry] = field(default_factory=list)
    failed: List[Path] = field(default_factory=list)

    @property
    def freed_bytes(self):
        return sum(entry.size for entry in self.deleted)


def _entry_size(path):
    if path.is_dir():
        return sum(f.stat().st_size for f in path.rglob('*') if f.is_file())
    return path.stat().st_size


def find_expired(media_dir, max_age_hours, now=None):
    """
    List entries of the media directory older than the maximum age.

    Looks at top-level files, tmp-* directories and files under logs/.

    Returns:
        list: SweptEntry, oldest first
    """
    media_dir = Path(media_dir)
    if not media_dir.exists():
        return []

    now = time.time() if now is None else now
    max_age = max_age_hours * 3600

    paths = [p for p in media_dir.iterdir() if p.is_file() or (p.is_dir() and p.name.startswith('tmp-'))]
    logs_dir = media_dir / 'logs'
    if logs_dir.is_dir():
        paths.extend(p for p in logs_dir.iterdir() if p.is_file())

    expired = []
    for path in paths:
        age = now - path.stat().st_mtime
        if age > max_age:
            expired.append(SweptEntry(path=path, age_seconds=age, size=_entry_size(path)))
    return sorted(expired, key=lambda entry: -entry.age_seconds)


def sweep_media_dir(media_dir, max_age_hours=24, dry_run=False, now=None, logger=None):
    """
    Delete media directory entries older than max_age_hours.

    Args:
        media_dir: Directory holding deliverables and request dirs
        max_age_hours: Age threshold
        dry_run: Report what would be deleted without deleting
        now: Reference timestamp (default: current time)
        logger: Optional callable(str) for logging

    Returns:
        SweepResult
    """

    def log(message):
        if logger:
            logger(message)

    result = SweepResult()
    for entry in find_expired(media_dir, max_age_hours, now=now):
        if dry_run:
            result.deleted.append(entry)
            continue
        try:
            if entry.path.is_dir():
                shutil.rmtree(entry.path)
            else:
                entry.path.unlink()
        except OSError as e:
            log(f'Failed to delete {entry.path}: {e}')
            result.failed.append(entry.path)
            continue
        log(f'Removed old file: {entry.path.name}')
        result.deleted.append(entry)
    return result
