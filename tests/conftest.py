import threading

import pytest

from filmneg.core.grain import GrainSource
from filmneg.core.image_processor import FilmProcessor
from filmneg.server.config import ServerConfig
from filmneg.server.listener import RequestListener


@pytest.fixture
def grain_source():
    return GrainSource(seed=1234)


@pytest.fixture
def processor(grain_source):
    return FilmProcessor(grain_source)


@pytest.fixture
def start_server():
    """Factory: start a listener on a free port, returns (listener, address)."""
    running = []

    def _start(**overrides):
        settings = {"host": "127.0.0.1", "port": 0, "request_timeout": 2.0}
        settings.update(overrides)
        listener = RequestListener(ServerConfig(**settings), FilmProcessor(GrainSource(seed=7)))
        address = listener.bind()
        thread = threading.Thread(target=listener.serve_forever, daemon=True)
        thread.start()
        running.append((listener, thread))
        return listener, address

    yield _start

    for listener, thread in running:
        listener.shutdown()
        thread.join(timeout=10)


@pytest.fixture
def server(start_server):
    _, address = start_server()
    return address
