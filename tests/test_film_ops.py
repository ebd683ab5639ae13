import numpy as np
import pytest

from filmneg.core import film_ops
from filmneg.core.grain import GrainSource
from helpers import make_image


def test_invert_is_self_inverse_and_keeps_alpha():
    img = make_image(37, 23, channels=4, seed=1)
    original = img.copy()

    film_ops.invert(img)
    assert np.array_equal(img[..., :3], 255 - original[..., :3])
    assert np.array_equal(img[..., 3], original[..., 3])

    film_ops.invert(img)
    assert np.array_equal(img, original)


def test_color_cast_extremes():
    black = np.zeros((1, 1, 3), dtype=np.uint8)
    white = np.full((1, 1, 3), 255, dtype=np.uint8)

    assert film_ops.apply_color_cast(black)[0, 0].tolist() == [20, 10, 0]
    assert film_ops.apply_color_cast(white)[0, 0].tolist() == [255, 255, 216]

    cast = np.array([[[20, 10, 0]]], dtype=np.uint8)
    assert film_ops.remove_color_cast(cast)[0, 0].tolist() == [0, 0, 0]


def test_remove_color_cast_clamps_below_zero():
    img = np.array([[[5, 3, 0]]], dtype=np.uint8)
    assert film_ops.remove_color_cast(img)[0, 0].tolist() == [0, 0, 0]


def test_color_cast_round_trip_within_truncation_error():
    # non-saturating ranges: r*1.15+20 <= 255, g*1.05+10 <= 255
    r = np.arange(0, 205, dtype=np.uint8)
    g = np.arange(0, 234, dtype=np.uint8)
    b = np.arange(0, 256, dtype=np.uint8)
    n = max(len(r), len(g), len(b))
    img = np.zeros((1, n, 3), dtype=np.uint8)
    img[0, :, 0] = np.resize(r, n)
    img[0, :, 1] = np.resize(g, n)
    img[0, :, 2] = np.resize(b, n)
    original = img.copy()

    film_ops.remove_color_cast(film_ops.apply_color_cast(img))

    delta = np.abs(img.astype(np.int16) - original.astype(np.int16))
    # red/green lose at most 1, blue (x0.85) at most 2
    assert delta[..., 0].max() <= 1
    assert delta[..., 1].max() <= 1
    assert delta[..., 2].max() <= 2
    # truncation only ever rounds down
    assert np.all(img <= original)


def test_grain_is_identical_across_channels(grain_source):
    img = np.full((64, 64, 4), 128, dtype=np.uint8)
    img[..., 3] = 77

    film_ops.add_grain(img, grain_source)

    delta = img[..., :3].astype(np.int16) - 128
    assert np.array_equal(delta[..., 0], delta[..., 1])
    assert np.array_equal(delta[..., 1], delta[..., 2])
    assert delta.min() >= -12
    assert delta.max() <= 12
    # uniform over 25 values: all of them show up in 4096 draws
    assert len(np.unique(delta[..., 0])) == 25
    assert np.all(img[..., 3] == 77)


def test_grain_clamps_at_range_limits(grain_source):
    img = np.zeros((32, 32, 3), dtype=np.uint8)
    img[16:] = 255

    film_ops.add_grain(img, grain_source)

    assert img[:16].max() <= 12
    assert img[16:].min() >= 243


def test_grain_source_is_reproducible_with_seed():
    a = GrainSource(seed=99).draw((8, 8), 12)
    b = GrainSource(seed=99).draw((8, 8), 12)
    assert np.array_equal(a, b)
    assert a.dtype == np.int16


def test_sprocket_geometry():
    geo = film_ops.sprocket_geometry(300, 150)
    assert geo == {"border_height": 10, "hole_width": 12, "hole_height": 5, "spacing": 25}


def test_draw_sprocket_holes_layout():
    w, h = 300, 150
    img = np.full((h, w, 4), 50, dtype=np.uint8)

    film_ops.draw_sprocket_holes(img)

    base = list(film_ops.FILM_BASE_COLOR)
    hole = list(film_ops.SPROCKET_HOLE_COLOR)
    # border rows 0..9 top, 140..149 bottom
    assert img[0, 0, :3].tolist() == base
    assert img[9, 299, :3].tolist() == base
    assert img[h - 1, 0, :3].tolist() == base
    assert img[h - 10, 150, :3].tolist() == base
    # first row below the band is untouched
    assert img[10, 0, :3].tolist() == [50, 50, 50]
    assert img[h - 11, 0, :3].tolist() == [50, 50, 50]
    # holes: rows 2..6, x from k*25+6, 12 wide
    for k in range(12):
        x0 = k * 25 + 6
        assert img[2, x0, :3].tolist() == hole
        assert img[6, x0 + 11, :3].tolist() == hole
        assert img[h - 1 - 2, x0, :3].tolist() == hole
        assert img[h - 1 - 6, x0 + 11, :3].tolist() == hole
        assert img[7, x0, :3].tolist() == base
        assert img[2, x0 + 12, :3].tolist() == base
    assert img[2, 5, :3].tolist() == base
    # alpha untouched everywhere
    assert np.all(img[..., 3] == 50)


def test_hole_count_follows_spacing():
    # w=100: spacing 8 -> 12 holes of width 4 on rows 1..2
    img = np.zeros((60, 100, 3), dtype=np.uint8)
    film_ops.draw_sprocket_holes(img)

    hole_pixels = np.all(img[1] == film_ops.SPROCKET_HOLE_COLOR, axis=-1)
    assert hole_pixels.sum() == 12 * 4
    assert hole_pixels[2] and not hole_pixels[1]
    assert not np.any(np.all(img[3] == film_ops.SPROCKET_HOLE_COLOR, axis=-1))


def test_narrow_image_gets_bands_without_holes():
    img = np.zeros((30, 10, 3), dtype=np.uint8)
    film_ops.draw_sprocket_holes(img)

    assert np.all(img[:2] == film_ops.FILM_BASE_COLOR)
    assert np.all(img[-2:] == film_ops.FILM_BASE_COLOR)
    assert np.all(img[2:-2] == 0)


@pytest.mark.parametrize("op", [film_ops.draw_sprocket_holes, film_ops.crop_sprocket_holes])
def test_short_image_has_no_border(op):
    img = make_image(40, 14, seed=3)
    original = img.copy()
    op(img)
    assert np.array_equal(img, original)


def test_crop_sprocket_holes_zeroes_bands_only():
    img = np.full((150, 40, 4), 200, dtype=np.uint8)

    film_ops.crop_sprocket_holes(img)

    assert np.all(img[:10, :, :3] == 0)
    assert np.all(img[140:, :, :3] == 0)
    assert np.all(img[10:140] == 200)
    assert np.all(img[..., 3] == 200)
