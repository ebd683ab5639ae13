"""
Listening socket and worker pool.

Each accepted connection is handed to its own ConnectionHandler running
on a bounded thread pool. Once max_connections handlers are in flight,
further connections are answered with 503 and closed immediately.
"""

import logging
import socket
import threading
from concurrent.futures import ThreadPoolExecutor

from ..core.image_processor import FilmProcessor
from .config import ServerConfig
from .handler import ConnectionHandler, reject_connection


logger = logging.getLogger(__name__)

# accept() poll interval, bounds how long shutdown() takes to be noticed
ACCEPT_POLL_SECONDS = 0.5


class RequestListener:
    """
    Accept loop for the HTTP service.

    Usage:
        listener = RequestListener(config)
        listener.bind()
        listener.serve_forever()   # until shutdown() is called
    """

    def __init__(self, config: ServerConfig, processor: FilmProcessor | None = None):
        self.config = config
        self.processor = processor or FilmProcessor()
        self._socket: socket.socket | None = None
        self._stop = threading.Event()
        self._slots = threading.BoundedSemaphore(config.max_connections)
        self._active = 0
        self._active_lock = threading.Lock()

    @property
    def server_address(self) -> tuple[str, int]:
        if self._socket is None:
            raise RuntimeError("Listener is not bound")
        host, port = self._socket.getsockname()[:2]
        return host, port

    @property
    def active_connections(self) -> int:
        with self._active_lock:
            return self._active

    def bind(self) -> tuple[str, int]:
        """Create the listening socket. Port 0 picks a free port."""
        self._socket = socket.create_server(
            (self.config.host, self.config.port),
            backlog=self.config.max_connections,
        )
        self._socket.settimeout(ACCEPT_POLL_SECONDS)
        return self.server_address

    def shutdown(self) -> None:
        """Stop accepting. In-flight handlers run to completion."""
        if not self._stop.is_set():
            logger.info("Shutdown requested")
        self._stop.set()

    def serve_forever(self) -> None:
        if self._socket is None:
            self.bind()

        host, port = self.server_address
        logger.info("Server ready at http://%s:%d", host, port)

        executor = ThreadPoolExecutor(
            max_workers=self.config.max_connections,
            thread_name_prefix="film-conn",
        )
        try:
            while not self._stop.is_set():
                try:
                    client, address = self._socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._stop.is_set():
                        break
                    logger.warning("Failed to accept connection: %s", e)
                    continue
                self._dispatch(executor, client, address)
        finally:
            self._socket.close()
            executor.shutdown(wait=True)
            logger.info("Server shutdown complete")

    def _dispatch(self, executor: ThreadPoolExecutor, client: socket.socket, address) -> None:
        if not self._slots.acquire(blocking=False):
            logger.warning(
                "Rejecting connection from %s: %d connections in flight",
                address, self.config.max_connections,
            )
            reject_connection(client)
            return

        handler = ConnectionHandler(client, address, self.config, self.processor)
        with self._active_lock:
            self._active += 1
        executor.submit(self._run, handler)

    def _run(self, handler: ConnectionHandler) -> None:
        try:
            handler.handle()
        finally:
            with self._active_lock:
                self._active -= 1
            self._slots.release()
