"""
HTTP request parsing, error taxonomy and the response writer.
"""

import json
import logging
import socket
import time
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Iterable, Optional


logger = logging.getLogger(__name__)

HEADER_DELIMITER = b"\r\n\r\n"
SERVER_NAME = "FilmProcessor/2.0"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


# ============================================================================
# Errors
# ============================================================================

class HttpError(Exception):
    """An error that is answered with a JSON error response."""

    status = 500

    def __init__(self, message: str, headers: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.headers = headers or {}


class BadRequest(HttpError):
    status = 400


class NotFound(HttpError):
    status = 404


class MethodNotAllowed(HttpError):
    status = 405

    def __init__(self, allowed: Iterable[str], message: str = "Method not allowed"):
        super().__init__(message, {"Allow": ", ".join(sorted(allowed))})


class PayloadTooLarge(HttpError):
    status = 413

    def __init__(self, message: str = "Request too large"):
        super().__init__(message)


class ProcessingFailed(HttpError):
    status = 500


class ServiceUnavailable(HttpError):
    status = 503


# ============================================================================
# Requests
# ============================================================================

@dataclass
class HttpRequest:
    """A request as read from one connection."""

    method: str
    path: str
    version: str
    header_block: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def body_length(self) -> int:
        return len(self.body)

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


def parse_headers(lines: Iterable[str]) -> dict[str, str]:
    """Header lines -> dict with lowercase names. Later duplicates win."""
    parsed = {}
    for line in lines:
        name, sep, value = line.partition(":")
        if sep and name.strip():
            parsed[name.strip().lower()] = value.strip()
    return parsed


def split_head(buffer: bytes) -> tuple[bytes, bytes]:
    """Split at the first CRLFCRLF. Without one, everything is header."""
    head_end = buffer.find(HEADER_DELIMITER)
    if head_end < 0:
        return buffer, b""
    return buffer[:head_end], buffer[head_end + len(HEADER_DELIMITER):]


def parse_request(buffer: bytes) -> HttpRequest:
    """
    Parse the raw bytes of a request.

    The body is whatever follows the header block; its length comes from
    the bytes actually received, not from Content-Length.

    Raises:
        BadRequest: If the request line has fewer than three tokens
    """
    head, body = split_head(buffer)
    header_block = head.decode("latin-1")
    lines = header_block.split("\r\n")

    tokens = lines[0].split()
    if len(tokens) < 3:
        raise BadRequest("Malformed request")

    method, path, version = tokens[:3]
    return HttpRequest(
        method=method,
        path=path,
        version=version,
        header_block=header_block,
        headers=parse_headers(lines[1:]),
        body=body,
    )


def declared_length(head: bytes) -> Optional[int]:
    """Content-Length from a raw header block, None if absent or invalid."""
    headers = parse_headers(head.decode("latin-1").split("\r\n")[1:])
    value = headers.get("content-length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


# ============================================================================
# Responses
# ============================================================================

def build_head(
    status: int,
    content_type: str,
    content_length: int,
    extra_headers: Optional[dict[str, str]] = None,
) -> bytes:
    """Status line and header block, terminated by an empty line."""
    headers = {
        "Content-Type": content_type,
        "Content-Length": str(content_length),
        **CORS_HEADERS,
        **SECURITY_HEADERS,
        "Server": SERVER_NAME,
        **(extra_headers or {}),
        "Connection": "close",
    }
    lines = [f"HTTP/1.1 {status} {HTTPStatus(status).phrase}"]
    lines.extend(f"{name}: {value}" for name, value in headers.items())
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


def send_response(
    sock: socket.socket,
    status: int,
    body: bytes = b"",
    content_type: str = "application/json",
    extra_headers: Optional[dict[str, str]] = None,
) -> bool:
    """
    Write header block, then body.

    sendall() keeps writing until every byte is sent. A failed write is
    logged and abandons the response.

    Returns:
        True if the full response was written
    """
    try:
        sock.sendall(build_head(status, content_type, len(body), extra_headers))
    except OSError as e:
        logger.error("Failed to send response header: %s", e)
        return False

    if body:
        try:
            sock.sendall(body)
        except OSError as e:
            logger.error("Failed to send response body: %s", e)
            return False

    return True


def json_response(sock: socket.socket, status: int, payload: dict) -> bool:
    return send_response(sock, status, json.dumps(payload).encode("utf-8"))


def error_body(status: int, message: str) -> bytes:
    return json.dumps({
        "error": message,
        "status": status,
        "timestamp": int(time.time()),
    }).encode("utf-8")


def send_error(
    sock: socket.socket,
    status: int,
    message: str,
    extra_headers: Optional[dict[str, str]] = None,
) -> bool:
    """Send a JSON error response and log it."""
    logger.error("Error %d: %s", status, message)
    return send_response(sock, status, error_body(status, message), extra_headers=extra_headers)
