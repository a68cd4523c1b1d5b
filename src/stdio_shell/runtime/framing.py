"""Line framing for text streams.

stdio-shell runtime v0.1.0

Converts an arbitrary sequence of text chunks into complete lines. A chunk
may end in the middle of a line (or in the middle of a delimiter); the
incomplete tail is kept and prepended to the next chunk, so the lines
produced never depend on how the stream happened to be fragmented.
"""

from __future__ import annotations

__all__ = ["LineFramer", "DEFAULT_DELIMITER"]

DEFAULT_DELIMITER = "\n"


class LineFramer:
    """Stateful per-stream line splitter.

    Example:
        framer = LineFramer()
        framer.feed("hel")        # []
        framer.feed("lo\\nwor")    # ["hello"]
        framer.feed("ld\\n")       # ["world"]

    Attributes:
        delimiter: Line delimiter
        strip_cr: Drop a trailing carriage return from each line, so CRLF
            output frames cleanly with a "\\n" delimiter
    """

    def __init__(self, delimiter: str = DEFAULT_DELIMITER, strip_cr: bool = True) -> None:
        if not delimiter:
            raise ValueError("delimiter cannot be empty")
        self.delimiter = delimiter
        self.strip_cr = strip_cr and delimiter == "\n"
        self._remaining = ""

    @property
    def remainder(self) -> str:
        """Incomplete trailing fragment waiting for its delimiter."""
        return self._remaining

    def feed(self, chunk: str) -> list[str]:
        """Add a chunk and return the lines it completes.

        Args:
            chunk: Next piece of the stream

        Returns:
            Complete lines in stream order (possibly empty)
        """
        # Split the joined buffer rather than the chunk alone: a multi-char
        # delimiter may straddle the chunk boundary.
        parts = (self._remaining + chunk).split(self.delimiter)

        if len(parts) == 1:
            # incomplete record, keep buffering
            self._remaining = parts[0]
            return []

        self._remaining = parts.pop()
        if self.strip_cr:
            return [p[:-1] if p.endswith("\r") else p for p in parts]
        return parts

    def flush(self) -> str | None:
        """Return and clear the pending fragment (end of stream).

        Returns:
            The unterminated last line, or None if nothing is pending
        """
        rest, self._remaining = self._remaining, ""
        if not rest:
            return None
        if self.strip_cr and rest.endswith("\r"):
            rest = rest[:-1]
        return rest

    def reset(self) -> None:
        self._remaining = ""
