"""
Pixel operators for the film negative effect.

All operators work in place on uint8 arrays of shape (H, W, C) with
C >= 3 and return the same array. Only the first three channels are
touched; alpha (or any further channel) passes through unchanged.
"""

import numpy as np

from .grain import GrainSource


GRAIN_INTENSITY = 12

# Film base and hole colors (RGB)
FILM_BASE_COLOR = (220, 150, 130)
SPROCKET_HOLE_COLOR = (240, 240, 240)

_F32 = np.float32


def _clamp_u8(values: np.ndarray) -> np.ndarray:
    """Truncate toward zero, then clamp to 0..255."""
    return np.clip(np.trunc(values), 0, 255).astype(np.uint8)


def invert(img: np.ndarray) -> np.ndarray:
    """Invert colors (v -> 255 - v). Self-inverse."""
    img[..., :3] = 255 - img[..., :3]
    return img


def apply_color_cast(img: np.ndarray) -> np.ndarray:
    """Add the orange/amber base tint of a film negative."""
    rgb = img[..., :3].astype(np.float32)

    img[..., 0] = _clamp_u8(rgb[..., 0] * _F32(1.15) + _F32(20))
    img[..., 1] = _clamp_u8(rgb[..., 1] * _F32(1.05) + _F32(10))
    img[..., 2] = _clamp_u8(rgb[..., 2] * _F32(0.85))
    return img


def remove_color_cast(img: np.ndarray) -> np.ndarray:
    """Undo apply_color_cast (up to truncation loss)."""
    rgb = img[..., :3].astype(np.float32)

    img[..., 0] = _clamp_u8((rgb[..., 0] - _F32(20)) / _F32(1.15))
    img[..., 1] = _clamp_u8((rgb[..., 1] - _F32(10)) / _F32(1.05))
    img[..., 2] = _clamp_u8(rgb[..., 2] / _F32(0.85))
    return img


def add_grain(
    img: np.ndarray,
    source: GrainSource,
    intensity: int = GRAIN_INTENSITY,
) -> np.ndarray:
    """
    Add monochromatic film grain.

    One value in [-intensity, intensity] is drawn per pixel and added to
    all three color channels, so the grain changes brightness only.
    """
    h, w = img.shape[:2]
    grain = source.draw((h, w), intensity)

    rgb = img[..., :3].astype(np.int16) + grain[..., None]
    img[..., :3] = np.clip(rgb, 0, 255).astype(np.uint8)
    return img


def sprocket_geometry(width: int, height: int) -> dict:
    """Border and hole sizes for an image of the given size."""
    border_height = height // 15
    return {
        "border_height": border_height,
        "hole_width": width // 25,
        "hole_height": border_height // 2,
        "spacing": width // 12,
    }


def _mirrored_rows(height: int, start: int, stop: int) -> tuple[slice, slice]:
    """Row slices for [start, stop) at the top and its mirror at the bottom."""
    return slice(start, stop), slice(height - stop, height - start)


def draw_sprocket_holes(img: np.ndarray) -> np.ndarray:
    """Paint film border bands with sprocket holes at top and bottom."""
    h, w = img.shape[:2]
    geo = sprocket_geometry(w, h)
    border_h = geo["border_height"]
    if border_h == 0:
        return img

    for rows in _mirrored_rows(h, 0, border_h):
        img[rows, :, :3] = FILM_BASE_COLOR

    spacing = geo["spacing"]
    if spacing == 0:
        # narrower than 12px: bands only
        return img

    y0 = border_h // 4
    y1 = y0 + geo["hole_height"]
    for hole_idx in range(w // spacing):
        x0 = hole_idx * spacing + spacing // 4
        x1 = min(x0 + geo["hole_width"], w)
        if x0 >= x1:
            continue
        for rows in _mirrored_rows(h, y0, y1):
            img[rows, x0:x1, :3] = SPROCKET_HOLE_COLOR

    return img


def crop_sprocket_holes(img: np.ndarray) -> np.ndarray:
    """Blank the border bands (zeroed, not restored)."""
    h = img.shape[0]
    border_h = h // 15
    if border_h == 0:
        return img

    for rows in _mirrored_rows(h, 0, border_h):
        img[rows, :, :3] = 0
    return img
