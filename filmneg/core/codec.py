"""
Image decoding and encoding.

Decodes compressed bytes (JPEG, PNG, BMP, TGA, ...) with OpenCV into
uint8 arrays in RGB(A) channel order, and encodes them back. OpenCV has
no TGA writer, so TGA output goes through Pillow.
"""

import io
from pathlib import Path

import cv2
import numpy as np
from PIL import Image


DEFAULT_JPEG_QUALITY = 90

# Output format by file extension (lowercase)
FORMATS_BY_EXTENSION = {
    ".png": "png",
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".bmp": "bmp",
    ".tga": "tga",
}


class CodecError(Exception):
    """Raised when image bytes cannot be decoded or encoded."""
    pass


def _swap_rb(img: np.ndarray) -> np.ndarray:
    """BGR(A) <-> RGB(A). Returns a new contiguous array."""
    if img.ndim == 3 and img.shape[2] >= 3:
        order = [2, 1, 0] + list(range(3, img.shape[2]))
        return np.ascontiguousarray(img[..., order])
    return img


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode compressed image bytes.

    Args:
        data: Encoded image file contents

    Returns:
        uint8 array, shape (H, W, C) in RGB(A) order, or (H, W, 1) for
        grayscale input

    Raises:
        CodecError: If the bytes are not a decodable image
    """
    if not data:
        raise CodecError("Failed to load image: empty input")

    buf = np.frombuffer(data, dtype=np.uint8)
    try:
        img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise CodecError(f"Failed to load image: {e}")

    if img is None:
        raise CodecError("Failed to load image: unknown or corrupt image format")

    # 16-bit PNG/TIFF -> 8 bit
    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)
    elif img.dtype != np.uint8:
        raise CodecError(f"Failed to load image: unsupported sample type {img.dtype}")

    if img.ndim == 2:
        img = img[..., None]

    return _swap_rb(img)


def load_image(path: str | Path) -> np.ndarray:
    """Read and decode an image file. Read errors surface as CodecError."""
    path = Path(path)

    if not path.exists():
        raise CodecError(f"File not found: {path}")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise CodecError(f"Failed to load image: {e}")

    return decode_image(data)


def format_for_path(path: str | Path) -> str | None:
    """Output format from the file extension, None if unrecognized."""
    return FORMATS_BY_EXTENSION.get(Path(path).suffix.lower())


def encode_image(
    img: np.ndarray,
    fmt: str = "png",
    quality: int = DEFAULT_JPEG_QUALITY,
) -> bytes:
    """
    Encode an RGB(A) uint8 array.

    Args:
        img: Pixel buffer, shape (H, W, C)
        fmt: "png", "jpeg", "bmp" or "tga"
        quality: JPEG quality (ignored for other formats)

    Returns:
        Encoded file contents

    Raises:
        CodecError: If encoding fails
    """
    if fmt == "tga":
        return _encode_tga(img)

    ext = {"png": ".png", "jpeg": ".jpg", "bmp": ".bmp"}.get(fmt)
    if ext is None:
        raise CodecError(f"Unsupported output format: {fmt}")

    params = [cv2.IMWRITE_JPEG_QUALITY, int(quality)] if fmt == "jpeg" else []
    try:
        ok, encoded = cv2.imencode(ext, _swap_rb(img), params)
    except cv2.error as e:
        raise CodecError(f"Failed to encode image: {e}")

    if not ok:
        raise CodecError(f"Failed to encode image as {fmt}")

    return encoded.tobytes()


def _encode_tga(img: np.ndarray) -> bytes:
    channels = img.shape[2] if img.ndim == 3 else 1
    arr = img[..., 0] if channels == 1 else img[..., :4]

    try:
        pil_img = Image.fromarray(np.ascontiguousarray(arr))
        out = io.BytesIO()
        pil_img.save(out, format="TGA")
    except (ValueError, OSError) as e:
        raise CodecError(f"Failed to encode image as tga: {e}")

    return out.getvalue()


def save_image(img: np.ndarray, path: str | Path, quality: int = DEFAULT_JPEG_QUALITY) -> str:
    """
    Encode and write an image, picking the format from the extension.

    Unknown extensions are written as PNG. Returns the format used.
    """
    fmt = format_for_path(path) or "png"
    Path(path).write_bytes(encode_image(img, fmt, quality))
    return fmt
