"""
line_assembler.py: Turn raw byte windows into decoded lines.

BackwardLineAssembler consumes windows delivered back-to-front and
produces lines last-to-first. ForwardLineSplitter consumes appended bytes
front-to-back for follow mode. Both keep raw bytes until a terminator is
seen and only then decode the whole span, so a multi-byte character split
across two windows is never decoded in halves.
"""

import logging

from .tail_common import (
    LineDecodeError,
    MALFORMED_FAIL_FAST,
    MALFORMED_SUBSTITUTE,
    TERMINATOR_LF_OPTIONAL_CR,
)

LF = b"\n"
CR = b"\r"


def decode_line(raw: bytes, encoding: str = 'utf-8', malformed_policy: str = MALFORMED_SUBSTITUTE) -> str:
    """
    Decode one line's bytes.

    Under SUBSTITUTE, malformed sequences become U+FFFD and a warning is
    logged. Under FAIL_FAST a LineDecodeError is raised.
    """
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as e:
        if malformed_policy == MALFORMED_FAIL_FAST:
            raise LineDecodeError(raw, encoding, e.reason) from e
        logging.warning(f"Malformed {encoding} sequence in line ({e.reason}); substituting replacement characters")
        return raw.decode(encoding, errors='replace')


class _LineDecoder:
    """Terminator and malformed-line policy shared by both scan directions."""

    def __init__(self, encoding: str = 'utf-8',
                 terminator_policy: str = TERMINATOR_LF_OPTIONAL_CR,
                 malformed_policy: str = MALFORMED_SUBSTITUTE):
        self.encoding = encoding
        self.terminator_policy = terminator_policy
        self.malformed_policy = malformed_policy

    def _decode(self, raw: bytes, terminated: bool = True) -> str:
        # A CR only belongs to the terminator when an LF follows it.
        if terminated and self.terminator_policy == TERMINATOR_LF_OPTIONAL_CR and raw.endswith(CR):
            raw = raw[:-1]
        return decode_line(raw, self.encoding, self.malformed_policy)


class BackwardLineAssembler(_LineDecoder):
    """
    Reassemble lines from windows read end-of-file first.

    Each window is scanned from its last byte to its first. Bytes after the
    most recent terminator are held as the pending fragment (a list of
    slices, latest-read first) until the next terminator closes the line.

    Attributes:
        lines: Completed lines, last line of the file first.
        unterminated_tail: Raw bytes of the file's final line when the file
            does not end with a terminator, else None.
    """

    def __init__(self, encoding: str = 'utf-8',
                 terminator_policy: str = TERMINATOR_LF_OPTIONAL_CR,
                 malformed_policy: str = MALFORMED_SUBSTITUTE):
        super().__init__(encoding, terminator_policy, malformed_policy)
        self.lines = []
        self.unterminated_tail = None
        self._pending = []
        self._seen_terminator = False
        self._finished = False

    def feed(self, window: bytes, limit: int = None) -> bool:
        """
        Consume the window that sits directly before the previous one.

        Returns:
            True once `limit` lines have been completed; the rest of the
            window is then left unread.
        """
        if self._finished:
            raise RuntimeError("feed() after finish()")

        end = len(window)
        while True:
            idx = window.rfind(LF, 0, end)
            if idx < 0:
                break
            if idx + 1 < end:
                self._pending.append(window[idx + 1:end])
            self._close_pending()
            end = idx
            if limit is not None and len(self.lines) >= limit:
                return True

        if end > 0:
            self._pending.append(window[:end])
        return False

    def finish(self) -> list:
        """
        Beginning of file reached: the pending fragment is the first line.

        Returns:
            All completed lines in original file order.
        """
        if not self._finished:
            self._finished = True
            raw = self._take_pending()
            if self._seen_terminator:
                # Bounded by file start and the first terminator; may be empty.
                self.lines.append(self._decode(raw))
            elif raw:
                self.unterminated_tail = raw
                self.lines.append(self._decode(raw, terminated=False))
        return self.forward_lines()

    def forward_lines(self) -> list:
        """Completed lines in original file order."""
        return self.lines[::-1]

    def _take_pending(self) -> bytes:
        raw = b"".join(reversed(self._pending))
        self._pending = []
        return raw

    def _close_pending(self):
        raw = self._take_pending()
        if self._seen_terminator:
            self.lines.append(self._decode(raw))
            return

        self._seen_terminator = True
        if raw:
            # Content after the last terminator: the file has no trailing newline.
            self.unterminated_tail = raw
            self.lines.append(self._decode(raw, terminated=False))


class ForwardLineSplitter(_LineDecoder):
    """
    Split appended bytes into lines, carrying a partial line across feeds.
    """

    def __init__(self, encoding: str = 'utf-8',
                 terminator_policy: str = TERMINATOR_LF_OPTIONAL_CR,
                 malformed_policy: str = MALFORMED_SUBSTITUTE,
                 pending: bytes = b""):
        super().__init__(encoding, terminator_policy, malformed_policy)
        self._pending = bytearray(pending)

    @property
    def pending(self) -> bytes:
        return bytes(self._pending)

    def reset(self, pending: bytes = b""):
        self._pending = bytearray(pending)

    def feed(self, data: bytes) -> list:
        """Return the lines completed by `data`, in order."""
        lines = []
        start = 0
        while True:
            idx = data.find(LF, start)
            if idx < 0:
                break
            if self._pending:
                self._pending += data[start:idx]
                raw = bytes(self._pending)
                self._pending.clear()
            else:
                raw = data[start:idx]
            lines.append(self._decode(raw))
            start = idx + 1

        self._pending += data[start:]
        return lines
