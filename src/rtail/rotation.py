"""
rotation.py: Detect truncation or replacement of a followed file.
"""

import enum
import logging
import os
from pathlib import Path
from typing import NamedTuple

from .tail_common import RotationRecoveryPending, TailIOError


class FileIdentity(NamedTuple):
    """Stable identity of a file plus its size at observation time."""
    device: int
    inode: int
    size: int

    def same_file(self, other: "FileIdentity") -> bool:
        return (self.device, self.inode) == (other.device, other.inode)


class RotationStatus(enum.Enum):
    UNCHANGED = "unchanged"
    TRUNCATED = "truncated"
    REPLACED = "replaced"


def _from_stat(st) -> FileIdentity:
    return FileIdentity(st.st_dev, st.st_ino, st.st_size)


def identity_of_handle(fh) -> FileIdentity:
    try:
        return _from_stat(os.fstat(fh.fileno()))
    except OSError as e:
        raise TailIOError(e.errno, e.strerror or str(e), getattr(fh, 'name', None)) from e


def identity_of_path(path: Path) -> FileIdentity:
    """
    Raises:
        RotationRecoveryPending: the path does not exist right now
        TailIOError: any other stat failure
    """
    try:
        return _from_stat(os.stat(path))
    except FileNotFoundError as e:
        raise RotationRecoveryPending(f"{path} is missing") from e
    except OSError as e:
        raise TailIOError(e.errno, e.strerror or str(e), str(path)) from e


def detect(previous_identity: FileIdentity, previous_size: int, path: Path) -> tuple:
    """
    Compare the file now at `path` with the last observation.

    Returns:
        (RotationStatus, current FileIdentity)
    """
    current = identity_of_path(path)

    if not current.same_file(previous_identity):
        logging.debug(f"{path}: identity changed {previous_identity[:2]} -> {current[:2]}")
        return RotationStatus.REPLACED, current
    if current.size < previous_size:
        logging.debug(f"{path}: size shrank {previous_size} -> {current.size}")
        return RotationStatus.TRUNCATED, current
    return RotationStatus.UNCHANGED, current
