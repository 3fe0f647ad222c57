"""
follow_engine.py: Emit lines appended to a file as it grows ("tail -f").

FollowEngine seeds a sliding window of the last N lines, then polls the
file. Growth is read forward from the cursor and split into lines;
truncation or replacement (log rotation) closes the handle, reopens the
path and starts over on the new file.

The loop is single-threaded. Cancellation is checked before each sleep and
before each poll, never in the middle of reading a delta, and on_line is
called synchronously so a slow consumer slows the loop instead of growing
a queue.
"""

import enum
import logging
import time
from collections import deque
from pathlib import Path

from .extractor import TailExtractor
from .line_assembler import ForwardLineSplitter
from .rotation import RotationStatus, detect, identity_of_handle
from .tail_common import (
    ROTATE_FROM_END,
    RotationRecoveryPending,
    RotationRetriesExhausted,
    TailFileNotFoundError,
    TailPermissionError,
    get_config,
    open_for_tail,
)
from .window_reader import file_size, read_forward


class FollowState(enum.Enum):
    INITIALIZED = "initialized"
    POLLING = "polling"
    READING = "reading"
    ROTATED = "rotated"
    STOPPED = "stopped"


class FollowEngine:
    """
    Follow one file. Owns its handle and cursor exclusively; create one
    engine per session.
    """

    def __init__(self, path: Path, n: int, on_line, config: dict = None,
                 cancel_token=None, sleep=time.sleep):
        self.path = Path(path)
        self.n = max(0, n)
        self.on_line = on_line
        self.config = config if config is not None else get_config()
        self.cancel_token = cancel_token
        self._sleep = sleep

        self.state = FollowState.INITIALIZED
        self._fh = None
        self._identity = None
        self._cursor = 0
        self._pending_polls = 0
        self._window = deque(maxlen=self.n)
        self._splitter = ForwardLineSplitter(
            encoding=self.config['ENCODING'],
            terminator_policy=self.config['LINE_TERMINATOR_POLICY'],
            malformed_policy=self.config['MALFORMED_LINE_POLICY'],
        )

    @property
    def window(self) -> list:
        """The most recent completed lines, oldest first."""
        return list(self._window)

    @property
    def cursor(self) -> int:
        return self._cursor

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> list:
        """
        Open the file, seed the sliding window and emit the seed lines.

        Raises:
            TailFileNotFoundError, TailPermissionError, TailIOError
        """
        if self.state is not FollowState.INITIALIZED:
            raise RuntimeError(f"Cannot start a follow session in state {self.state.name}")

        self._fh = open_for_tail(self.path)
        try:
            self._identity = identity_of_handle(self._fh)
            seeded = self._seed(emit=True)
        except Exception:
            self.stop()
            raise
        self.state = FollowState.POLLING
        logging.debug(f"Following {self.path} from offset {self._cursor}")
        return seeded

    def run(self):
        """Poll until cancelled. Returns on cancellation; raises on fatal errors."""
        interval = self.config['POLL_INTERVAL_MS'] / 1000.0
        try:
            if self.state is FollowState.INITIALIZED:
                self.start()
            while not self._cancelled():
                self._sleep(interval)
                if self._cancelled():
                    break
                self.poll_once()
        finally:
            self.stop()

    def stop(self):
        self._close()
        self.state = FollowState.STOPPED

    def poll_once(self) -> list:
        """
        Run one poll cycle without sleeping.

        Returns:
            The lines emitted during this cycle.
        """
        if self.state in (FollowState.INITIALIZED, FollowState.STOPPED):
            raise RuntimeError(f"Cannot poll a follow session in state {self.state.name}")

        if self._fh is None:
            return self._reopen()

        try:
            status, current = detect(self._identity, self._identity.size, self.path)
        except RotationRecoveryPending as e:
            # Deleted or renamed away; keep reading the old handle until a new file appears.
            emitted = self._drain()
            self._note_pending(e)
            return emitted

        self._pending_polls = 0
        if status is RotationStatus.UNCHANGED:
            self._identity = current
            if current.size > self._cursor:
                return self._read_to(current.size)
            return []

        emitted = []
        if status is RotationStatus.REPLACED:
            emitted = self._drain()
        return emitted + self._rotate(status)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.is_set()

    def _close(self):
        if self._fh is not None:
            fh, self._fh = self._fh, None
            fh.close()

    def _push(self, line: str, emit: bool):
        self._window.append(line)
        if emit:
            self.on_line(line)

    def _seed(self, emit: bool) -> list:
        """Fill the window from the current file's tail and park the cursor at its end."""
        size = self._identity.size
        extractor = TailExtractor(self.config)
        # A last line still being written stays raw until its terminator arrives.
        terminated_end, pending = extractor.split_unterminated(self._fh, end=size)
        lines = extractor.extract(self._fh, self.n, end=terminated_end)

        self._splitter.reset(pending)
        self._cursor = size
        self._window.clear()
        for line in lines:
            self._push(line, emit)
        return lines

    def _read_to(self, end: int) -> list:
        self.state = FollowState.READING
        emitted = []
        for data, cursor in read_forward(self._fh, self._cursor, end, self.config['WINDOW_SIZE_BYTES']):
            self._cursor = cursor
            for line in self._splitter.feed(data):
                self._push(line, emit=True)
                emitted.append(line)
        self.state = FollowState.POLLING
        return emitted

    def _drain(self) -> list:
        """Read whatever was appended to the old handle before it was rotated away."""
        size = file_size(self._fh)
        if size > self._cursor:
            return self._read_to(size)
        return []

    def _rotate(self, status: RotationStatus) -> list:
        self.state = FollowState.ROTATED
        logging.info(f"{self.path} was {status.value}; reopening")
        self._close()
        self._splitter.reset()
        self._cursor = 0
        return self._reopen()

    def _reopen(self) -> list:
        try:
            self._fh = open_for_tail(self.path)
        except (TailFileNotFoundError, TailPermissionError) as e:
            # A rotator may create the new file before fixing its mode.
            self._note_pending(e)
            return []

        self._pending_polls = 0
        try:
            self._identity = identity_of_handle(self._fh)
        except Exception:
            self._close()
            raise

        if self.config['ROTATE_FROM'] == ROTATE_FROM_END:
            self._seed(emit=False)
            self.state = FollowState.POLLING
            return []

        self._window.clear()
        self._splitter.reset()
        self._cursor = 0
        self.state = FollowState.POLLING
        return self._read_to(self._identity.size)

    def _note_pending(self, error: Exception):
        self._pending_polls += 1
        limit = self.config['MAX_ROTATION_RETRIES']
        logging.warning(f"Waiting for {self.path} to become readable ({self._pending_polls} poll(s)): {error}")
        if limit is not None and self._pending_polls > limit:
            raise RotationRetriesExhausted(
                None, f"Gave up after {self._pending_polls - 1} retries", str(self.path)) from error


def follow(path: Path, n: int, on_line, cancel_token=None, *, encoding: str = None,
           config: dict = None, sleep=time.sleep):
    """
    Emit the last `n` lines of `path`, then every line appended to it, through
    `on_line` until `cancel_token.is_set()`.

    Raises:
        TailFileNotFoundError, TailPermissionError: at open time
        TailIOError: unrecoverable read failure mid-session
    """
    if config is None:
        config = get_config(overrides={'ENCODING': encoding})
    elif encoding is not None:
        config = dict(config, ENCODING=encoding)

    FollowEngine(path, n, on_line, config=config, cancel_token=cancel_token, sleep=sleep).run()
