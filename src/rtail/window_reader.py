"""
window_reader.py: Random-access byte window reads.

Backward reads walk from a cursor toward the start of the file, one window
at a time. Forward reads are used by follow mode to pick up appended bytes.
Neither retries: a failed read is raised as TailIOError and the caller
closes the handle.
"""

import logging
import os

from .tail_common import TailIOError

DEFAULT_WINDOW_SIZE = 8192


def _io_failure(fh, e: OSError) -> TailIOError:
    name = getattr(fh, 'name', None)
    return TailIOError(e.errno, e.strerror or str(e), str(name) if name is not None else None)


def file_size(fh) -> int:
    """Current length of the open file in bytes."""
    try:
        return os.fstat(fh.fileno()).st_size
    except OSError as e:
        raise _io_failure(fh, e) from e


def read_window_backward(fh, cursor: int, max_size: int = DEFAULT_WINDOW_SIZE) -> tuple:
    """
    Read the window that ends at `cursor`.

    Args:
        fh: Open binary file handle
        cursor: Byte offset the window ends at (exclusive)
        max_size: Window capacity in bytes

    Returns:
        (bytes, new_cursor) where new_cursor == max(0, cursor - max_size)

    Raises:
        TailIOError: on seek/read failure or a short read
    """
    if cursor <= 0:
        return b"", 0

    start = max(0, cursor - max_size)
    wanted = cursor - start

    try:
        fh.seek(start, os.SEEK_SET)
        data = fh.read(wanted)
    except OSError as e:
        raise _io_failure(fh, e) from e

    if len(data) != wanted:
        # The file shrank underneath us; the window no longer matches the cursor.
        raise TailIOError(None, f"Short read at offset {start}: wanted {wanted} bytes, got {len(data)}",
                          getattr(fh, 'name', None))

    logging.debug(f"Read backward window [{start}, {cursor})")
    return data, start


def read_forward(fh, cursor: int, end: int, max_size: int = DEFAULT_WINDOW_SIZE):
    """
    Generator yielding (bytes, new_cursor) windows covering [cursor, end).

    Stops early, without error, if the file ends before `end` (the writer may
    have truncated it between stat and read; rotation detection handles that
    on the next poll).
    """
    try:
        fh.seek(cursor, os.SEEK_SET)
    except OSError as e:
        raise _io_failure(fh, e) from e

    while cursor < end:
        try:
            data = fh.read(min(max_size, end - cursor))
        except OSError as e:
            raise _io_failure(fh, e) from e
        if not data:
            logging.debug(f"File ended at {cursor} before expected end {end}")
            return
        cursor += len(data)
        yield data, cursor
