# -*- coding: utf-8 -*-
"""
Tests for the raster <-> form conversions and PGM input/output.
"""
import numpy as np
import pytest
from numpy.testing import assert_array_equal, assert_allclose
from PIL import Image

from grid_calculus import GridCalculus
from image_fields import (
    form0_to_image, form1_to_image, image_to_form0, output_paths, read_grayscale,
    to_gray_levels, write_pgm,
)


@pytest.fixture(scope="module")
def calculus():
    return GridCalculus(4, 3)


def test_gray_levels_round_and_clamp():
    levels = to_gray_levels(np.array([0.0, 1.0, 1.5, -0.2, 0.5, 0.2]))
    assert levels.dtype == np.uint8
    assert_array_equal(levels, [0, 255, 255, 0, 128, 51])


def test_image_round_trip(calculus):
    image = np.arange(12, dtype=np.uint8).reshape(3, 4) * 20
    g = image_to_form0(calculus, image)
    assert g.shape == (12,)
    assert_allclose(g[5], image[1, 1] / 255.0)
    assert_array_equal(form0_to_image(calculus, g), image)


def test_shape_mismatch_is_rejected(calculus):
    with pytest.raises(ValueError):
        image_to_form0(calculus, np.zeros((4, 3), dtype=np.uint8))


def test_form1_raster_layout(calculus):
    v = np.zeros(calculus.n_cells(1))
    v[0] = 1.0                        # first horizontal edge, between (0,0) and (1,0)
    v[calculus.n_horizontal] = 0.5    # first vertical edge, between (0,0) and (0,1)
    raster = form1_to_image(calculus, v)
    assert raster.shape == (5, 7)
    assert raster[0, 1] == 255
    assert raster[1, 0] == 128
    assert raster[0, 3] == 0
    # pixels and faces keep the background
    assert np.all(raster[::2, ::2] == 255)
    assert np.all(raster[1::2, 1::2] == 255)


def test_pgm_write_read(tmp_path):
    raster = np.array([[0, 64, 128], [192, 255, 7]], dtype=np.uint8)
    path = tmp_path / "x.pgm"
    write_pgm(raster, str(path))
    assert path.read_bytes().startswith(b"P5")
    assert_array_equal(read_grayscale(str(path)), raster)
    with pytest.raises(ValueError):
        write_pgm(np.zeros(4, dtype=np.uint8), str(tmp_path / "bad.pgm"))


def test_color_image_is_converted(tmp_path):
    path = tmp_path / "c.png"
    Image.new("RGB", (5, 2), (255, 255, 255)).save(path)
    image = read_grayscale(str(path))
    assert image.shape == (2, 5)
    assert np.all(image == 255)


def test_output_paths():
    assert output_paths("AT", 0.3125) == ("AT-l0.3125000-u.pgm", "AT-l0.3125000-v.pgm")


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s", "--tb=short"])
