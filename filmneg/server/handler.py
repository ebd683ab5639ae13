"""
Per-connection request handling.

One ConnectionHandler owns one accepted socket from accept to close:

    ACCEPTED -> READING -> PARSED -> ROUTED -> RESPONDED -> CLOSED

READING goes straight to CLOSED when the peer sends nothing before the
read timeout or disconnects. Any validation or processing failure is
answered with a JSON error; nothing propagates past handle().
"""

import contextlib
import logging
import os
import socket
import tempfile
import time
from enum import Enum

from ..core.codec import CodecError, encode_image
from ..core.image_processor import FilmProcessor, ProcessMode
from .config import ServerConfig
from .http import (
    HEADER_DELIMITER,
    BadRequest,
    HttpError,
    HttpRequest,
    MethodNotAllowed,
    NotFound,
    PayloadTooLarge,
    ProcessingFailed,
    ServiceUnavailable,
    declared_length,
    error_body,
    json_response,
    parse_request,
    send_error,
    send_response,
)
from .multipart import MultipartError, extract_boundary, extract_file


logger = logging.getLogger(__name__)

RECV_CHUNK = 64 * 1024
LINGER_SECONDS = 1.0

SUPPORTED_METHODS = ("GET", "POST", "OPTIONS")

HEALTH_PAYLOAD = {"status": "healthy", "service": "film-processor", "version": "2.0"}
INDEX_PAYLOAD = {
    "service": "Film Negative Processor",
    "version": "2.0.0",
    "endpoints": ["/api/to-negative", "/api/to-positive", "/health"],
}

# path -> (method, processing mode or None for static JSON)
ROUTES = {
    "/": ("GET", None),
    "/health": ("GET", None),
    "/health/": ("GET", None),
    "/api/to-negative": ("POST", ProcessMode.TO_NEGATIVE),
    "/api/to-positive": ("POST", ProcessMode.TO_POSITIVE),
}


class ConnectionState(Enum):
    ACCEPTED = "accepted"
    READING = "reading"
    PARSED = "parsed"
    ROUTED = "routed"
    RESPONDED = "responded"
    CLOSED = "closed"


class ConnectionHandler:
    """Reads one request, answers it, closes the connection."""

    def __init__(
        self,
        sock: socket.socket,
        address,
        config: ServerConfig,
        processor: FilmProcessor,
    ):
        self.sock = sock
        self.address = address
        self.config = config
        self.processor = processor
        self.state = ConnectionState.ACCEPTED
        self.status: int | None = None
        self.request_line: str | None = None
        # request bytes the peer may still be sending when we answer
        self._unread_input = False

    # ---------- lifecycle ----------

    def handle(self) -> None:
        try:
            self._serve()
        except HttpError as e:
            self._send_error(e)
        except Exception:
            logger.exception("Unhandled error on connection from %s", self.address)
            self._send_error(ProcessingFailed("Internal server error"))
        finally:
            self.close()
            if self.status is not None:
                logger.info(
                    "%s %s -> %d",
                    self.address, self.request_line or "-", self.status,
                )

    def close(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        try:
            if self._unread_input:
                self._linger()
        finally:
            self.sock.close()
            self.state = ConnectionState.CLOSED

    def _linger(self) -> None:
        """Half-close, then discard input so the peer gets our response, not a reset."""
        deadline = time.monotonic() + LINGER_SECONDS
        try:
            self.sock.shutdown(socket.SHUT_WR)
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.sock.settimeout(remaining)
                if not self.sock.recv(RECV_CHUNK):
                    break
        except OSError as e:
            logger.debug("Lingering close ended early: %s", e)

    # ---------- reading ----------

    def _serve(self) -> None:
        self.state = ConnectionState.READING
        try:
            raw = self._read_request()
        except OSError as e:
            logger.error("Failed to read request from %s: %s", self.address, e)
            return

        if not raw:
            return

        # reads shrink the timeout toward the read deadline; writes get a full one
        self.sock.settimeout(self.config.request_timeout)

        request = parse_request(raw)
        self.state = ConnectionState.PARSED
        self.request_line = f"{request.method} {request.path}"
        logger.info("%s", self.request_line)

        self._route(request)

    def _read_request(self) -> bytes:
        """
        Read one request within the read timeout and size cap.

        Stops once the header block is complete and the declared body (if
        any) has arrived. A timeout ends reading with whatever arrived.

        Raises:
            PayloadTooLarge: If the declared or received size exceeds
                max_request_bytes
        """
        cap = self.config.max_request_bytes
        deadline = time.monotonic() + self.config.request_timeout
        buf = bytearray()

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self.sock.settimeout(remaining)
            try:
                chunk = self.sock.recv(min(RECV_CHUNK, cap + 1 - len(buf)))
            except socket.timeout:
                if buf:
                    logger.warning("Read timeout, using %d bytes received", len(buf))
                break
            if not chunk:
                break

            buf += chunk
            if len(buf) > cap:
                self._unread_input = True
                raise PayloadTooLarge()

            head_end = buf.find(HEADER_DELIMITER)
            if head_end < 0:
                continue

            expected = declared_length(bytes(buf[:head_end]))
            if expected is None:
                break
            body_start = head_end + len(HEADER_DELIMITER)
            if body_start + expected > cap:
                self._unread_input = True
                raise PayloadTooLarge()
            if len(buf) - body_start >= expected:
                break

        return bytes(buf)

    # ---------- routing ----------

    def _route(self, request: HttpRequest) -> None:
        self.state = ConnectionState.ROUTED

        if request.method == "OPTIONS":
            self._respond(204, b"", "text/plain")
            return

        route = ROUTES.get(request.path)
        if route is None:
            if request.method == "GET":
                raise NotFound("Not found")
            if request.method == "POST":
                raise NotFound("Endpoint not found")
            raise MethodNotAllowed(SUPPORTED_METHODS)

        method, mode = route
        if request.method != method:
            raise MethodNotAllowed((method, "OPTIONS"))

        if mode is None:
            self._handle_get(request)
        else:
            self._handle_post(request, mode)

    def _handle_get(self, request: HttpRequest) -> None:
        if request.path == "/":
            payload = INDEX_PAYLOAD
        else:
            payload = HEALTH_PAYLOAD
            logger.debug("Health check OK")
        self.status = 200
        json_response(self.sock, 200, payload)
        self.state = ConnectionState.RESPONDED

    def _handle_post(self, request: HttpRequest, mode: ProcessMode) -> None:
        cap = self.config.max_request_bytes
        content_type = request.header("Content-Type")
        if content_type is None:
            raise BadRequest("Content-Type header missing")
        if "multipart/form-data" not in content_type.lower():
            raise BadRequest("Content-Type must be multipart/form-data")

        boundary = extract_boundary(content_type)
        if boundary is None:
            raise BadRequest("Invalid multipart boundary")

        try:
            image_data = extract_file(request.body, boundary, cap)
        except MultipartError:
            raise BadRequest("Failed to parse image from multipart data")

        logger.info("Processing: %s", mode.value)
        outcome = self.processor.process(image_data, mode)
        if not outcome.success:
            raise ProcessingFailed(f"Image processing failed: {outcome.error}")

        try:
            jpeg = encode_image(outcome.pixels, "jpeg", self.config.jpeg_quality)
        except CodecError as e:
            logger.error("JPEG encoding failed: %s", e)
            raise ProcessingFailed("Failed to encode output image")

        if self.config.staging_dir is not None:
            jpeg = self._stage_through_file(jpeg)

        logger.debug("Sending JPEG response: %d bytes", len(jpeg))
        logger.info("Image processed successfully")
        self._respond(200, jpeg, "image/jpeg")

    def _stage_through_file(self, data: bytes) -> bytes:
        """Round-trip the response body through a unique temp file."""
        fd, path = tempfile.mkstemp(prefix="film_", suffix=".jpg", dir=self.config.staging_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            with open(path, "rb") as f:
                staged = f.read()
        except OSError as e:
            logger.error("Staging file %s failed: %s", path, e)
            raise ProcessingFailed("Failed to read output image")
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(path)

        if len(staged) != len(data):
            logger.error("File size mismatch: expected %d, read %d", len(data), len(staged))
            raise ProcessingFailed("Failed to read complete file")
        return staged

    # ---------- writing ----------

    def _respond(self, status: int, body: bytes, content_type: str) -> None:
        self.status = status
        send_response(self.sock, status, body, content_type)
        self.state = ConnectionState.RESPONDED

    def _send_error(self, error: HttpError) -> None:
        if self.state is ConnectionState.RESPONDED:
            return
        self.status = error.status
        # errors raised while reading leave the shrunken read timeout behind
        self.sock.settimeout(self.config.request_timeout)
        send_error(self.sock, error.status, error.message, error.headers)
        self.state = ConnectionState.RESPONDED


def reject_connection(sock: socket.socket, message: str = "Server busy") -> None:
    """Answer 503 and close without reading the request."""
    busy = ServiceUnavailable(message, {"Retry-After": "1"})
    try:
        send_response(sock, busy.status, error_body(busy.status, busy.message), extra_headers=busy.headers)
        # drop whatever already arrived so close() does not reset the connection
        sock.setblocking(False)
        with contextlib.suppress(BlockingIOError):
            while sock.recv(RECV_CHUNK):
                pass
    except OSError as e:
        logger.debug("Rejected connection dropped: %s", e)
    finally:
        sock.close()
