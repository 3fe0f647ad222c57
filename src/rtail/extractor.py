"""
extractor.py: Return the last N lines of a file without reading it from the start.

The file is read backward in fixed-size windows until N lines have been
assembled or the beginning of the file is reached.
"""

import logging
from pathlib import Path

from .line_assembler import BackwardLineAssembler
from .tail_common import get_config, open_for_tail
from .window_reader import file_size, read_window_backward


class TailExtractor:
    """
    Collect up to N trailing lines from an open binary handle.

    The extractor borrows the handle for the duration of extract(); it never
    closes it.
    """

    def __init__(self, config: dict = None):
        self.config = config if config is not None else get_config()
        self.unterminated_tail = None

    def _assembler(self) -> BackwardLineAssembler:
        return BackwardLineAssembler(
            encoding=self.config['ENCODING'],
            terminator_policy=self.config['LINE_TERMINATOR_POLICY'],
            malformed_policy=self.config['MALFORMED_LINE_POLICY'],
        )

    def extract(self, fh, n: int, end: int = None) -> list:
        """
        Args:
            fh: Open binary handle
            n: Number of lines wanted; n <= 0 returns []
            end: Byte offset to treat as end of file (defaults to current size)

        Returns:
            At most n lines, in original file order.
        """
        self.unterminated_tail = None
        if n <= 0:
            return []

        cursor = file_size(fh) if end is None else end
        window_size = self.config['WINDOW_SIZE_BYTES']
        assembler = self._assembler()

        done = False
        while cursor > 0 and not done:
            window, cursor = read_window_backward(fh, cursor, window_size)
            done = assembler.feed(window, limit=n)

        if done:
            lines = assembler.forward_lines()
        else:
            lines = assembler.finish()

        self.unterminated_tail = assembler.unterminated_tail
        logging.debug(f"Extracted {len(lines)} line(s), stopped at offset {cursor}")
        return lines[-n:]

    def split_unterminated(self, fh, end: int = None) -> tuple:
        """
        Find the bytes after the last terminator before `end`, without decoding.

        Returns:
            (offset, raw) where offset is just past the last terminator (0 if
            there is none) and raw is the unterminated remainder, possibly b"".
        """
        cursor = file_size(fh) if end is None else end
        window_size = self.config['WINDOW_SIZE_BYTES']
        chunks = []
        while cursor > 0:
            window, start = read_window_backward(fh, cursor, window_size)
            idx = window.rfind(b"\n")
            if idx >= 0:
                chunks.append(window[idx + 1:])
                cursor = start + idx + 1
                break
            chunks.append(window)
            cursor = start
        return cursor, b"".join(reversed(chunks))


def tail(path: Path, n: int, *, encoding: str = None, config: dict = None) -> list:
    """
    Return the last `n` lines of the file at `path`.

    Raises:
        TailFileNotFoundError, TailPermissionError, TailIOError,
        LineDecodeError (FAIL_FAST only)
    """
    if config is None:
        config = get_config(overrides={'ENCODING': encoding})
    elif encoding is not None:
        config = dict(config, ENCODING=encoding)

    with open_for_tail(path) as fh:
        return TailExtractor(config).extract(fh, n)
