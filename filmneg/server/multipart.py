"""
Extraction of a single uploaded file from a multipart/form-data body.

Only the first part is of interest. Its headers are skipped up to the
first blank line; the end of its data is located by trying, in order:

    1. CRLF--boundary--      (final part)
    2. CRLF--boundary CRLF   (another part follows)
    3. CRLF--boundary        (anything after, e.g. truncated terminator)
    4. end of body, minus trailing CR, LF and '-' bytes

Some clients and proxies rewrite or drop the closing delimiter, hence
the fallbacks.
"""

import logging
from enum import Enum, auto
from typing import Optional

from .config import MAX_REQUEST_BYTES


logger = logging.getLogger(__name__)

CRLF = b"\r\n"
BLANK_LINE = b"\r\n\r\n"
MAX_BOUNDARY_LENGTH = 255
_TRAILER_BYTES = b"\r\n-"


class MultipartError(ValueError):
    """Raised when no file payload can be recovered from the body."""
    pass


def extract_boundary(content_type: str) -> Optional[str]:
    """
    Boundary token from a Content-Type value.

    Surrounding quotes are dropped; the token ends at a quote, ';', CR or
    LF. Returns None if there is no non-empty boundary parameter.
    """
    idx = content_type.lower().find("boundary=")
    if idx < 0:
        return None

    rest = content_type[idx + len("boundary="):]
    if rest.startswith('"'):
        rest = rest[1:]

    chars = []
    for ch in rest[:MAX_BOUNDARY_LENGTH]:
        if ch in '";\r\n':
            break
        chars.append(ch)

    boundary = "".join(chars).strip()
    return boundary or None


class _State(Enum):
    PART_HEADERS = auto()
    FINAL_DELIMITER = auto()
    NEXT_DELIMITER = auto()
    ANY_DELIMITER = auto()
    REMAINDER = auto()
    DONE = auto()


class MultipartExtractor:
    """
    Scans a body for the file payload delimited by `boundary`.

    Each state performs one forward scan and either settles the payload
    end or hands over to the next, looser state.
    """

    def __init__(self, boundary: str, max_size: int = MAX_REQUEST_BYTES):
        token = boundary.encode("latin-1")
        self.max_size = max_size
        self.final_delimiter = CRLF + b"--" + token + b"--"
        self.next_delimiter = CRLF + b"--" + token + CRLF
        self.any_delimiter = CRLF + b"--" + token

    def extract(self, body: bytes) -> bytes:
        """
        Returns:
            The exact bytes of the embedded file

        Raises:
            MultipartError: If no part data is found, or its size is zero
                or above max_size
        """
        state = _State.PART_HEADERS
        start = end = -1

        while state is not _State.DONE:
            if state is _State.PART_HEADERS:
                pos = body.find(BLANK_LINE)
                if pos < 0:
                    logger.warning("Header separator not found")
                    raise MultipartError("Header separator not found")
                start = pos + len(BLANK_LINE)
                state = _State.FINAL_DELIMITER

            elif state is _State.FINAL_DELIMITER:
                end = body.find(self.final_delimiter, start)
                state = _State.DONE if end >= 0 else _State.NEXT_DELIMITER

            elif state is _State.NEXT_DELIMITER:
                end = body.find(self.next_delimiter, start)
                state = _State.DONE if end >= 0 else _State.ANY_DELIMITER

            elif state is _State.ANY_DELIMITER:
                # the delimiter must leave at least one byte of data
                end = body.find(self.any_delimiter, start + 1)
                state = _State.DONE if end >= 0 else _State.REMAINDER

            elif state is _State.REMAINDER:
                logger.warning("Boundary end not found - using body end")
                end = len(body)
                while end > start and body[end - 1] in _TRAILER_BYTES:
                    end -= 1
                state = _State.DONE

        size = end - start
        if size <= 0 or size > self.max_size:
            logger.warning("Invalid image size: %d", max(size, 0))
            raise MultipartError(f"Invalid image size: {max(size, 0)}")

        logger.debug("Extracted image data: %d bytes", size)
        return body[start:end]


def extract_file(body: bytes, boundary: str, max_size: int = MAX_REQUEST_BYTES) -> bytes:
    """Shortcut for MultipartExtractor(boundary, max_size).extract(body)."""
    return MultipartExtractor(boundary, max_size).extract(body)
