"""Shared builders for test images, multipart bodies and raw HTTP exchanges."""

import socket

import numpy as np

from filmneg.core.codec import encode_image


BOUNDARY = "----filmnegTestBoundary7MA4YWxk"


def make_image(width: int, height: int, channels: int = 3, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)


def png_bytes(img: np.ndarray) -> bytes:
    return encode_image(img, "png")


def multipart_body(payload: bytes, boundary: str = BOUNDARY, terminator: str = "final") -> bytes:
    head = (
        f"--{boundary}\r\n"
        'Content-Disposition: form-data; name="image"; filename="photo.png"\r\n'
        "Content-Type: image/png\r\n"
        "\r\n"
    ).encode()
    tail = {
        "final": f"\r\n--{boundary}--\r\n",
        "next": f"\r\n--{boundary}\r\n",
        "truncated": f"\r\n--{boundary}",
        "none": "\r\n",
    }[terminator]
    return head + payload + tail.encode()


def raw_request(method: str, path: str, headers: dict | None = None, body: bytes = b"") -> bytes:
    lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
    lines.extend(f"{k}: {v}" for k, v in (headers or {}).items())
    return ("\r\n".join(lines) + "\r\n\r\n").encode() + body


def post_image(path: str, payload: bytes, boundary: str = BOUNDARY) -> bytes:
    body = multipart_body(payload, boundary)
    headers = {
        "Content-Type": f"multipart/form-data; boundary={boundary}",
        "Content-Length": str(len(body)),
    }
    return raw_request("POST", path, headers, body)


class Response:
    def __init__(self, raw: bytes):
        head, _, self.body = raw.partition(b"\r\n\r\n")
        lines = head.decode("latin-1").split("\r\n")
        self.status_line = lines[0]
        self.status = int(lines[0].split()[1])
        self.headers = {}
        for line in lines[1:]:
            name, _, value = line.partition(":")
            self.headers[name.strip().lower()] = value.strip()


def exchange(address, data: bytes, timeout: float = 10.0) -> bytes:
    """Send raw bytes, read until the server closes."""
    with socket.create_connection(address, timeout=timeout) as sock:
        if data:
            sock.sendall(data)
        return read_all(sock)


def read_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def request(address, data: bytes, timeout: float = 10.0) -> Response:
    return Response(exchange(address, data, timeout))
