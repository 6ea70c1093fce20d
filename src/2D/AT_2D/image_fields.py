"""
image_fields.py
===============

Conversions between 8‑bit grayscale rasters and forms of the grid calculus.

  - :func:`image_to_form0` normalizes pixel intensities into the 0‑form
    ``g = pixel / 255``;
  - :func:`form0_to_image` maps a 0‑form back to a W×H raster;
  - :func:`form1_to_image` maps a 1‑form to a (2W−1)×(2H−1) raster in
    Khalimsky coordinates, every non‑edge cell left at 255.

Both directions use the plain linear scaling ``round(value · 255)`` clamped
to [0, 255]; a form is never normalized against its own range.  Rasters are
read and written with Pillow.
"""
from typing import Tuple

import numpy as np
from PIL import Image

from grid_calculus import GridCalculus


def read_grayscale(filepath: str) -> np.ndarray:
    """Read an image file as an 8‑bit grayscale array of shape (H, W)."""
    with Image.open(filepath) as img:
        if img.mode != "L":
            img = img.convert("L")
        return np.array(img, dtype=np.uint8)


def write_pgm(raster: np.ndarray, filepath: str) -> None:
    """Write an 8‑bit raster of shape (H, W) as a binary PGM file."""
    raster = np.ascontiguousarray(raster, dtype=np.uint8)
    if raster.ndim != 2:
        raise ValueError(f"Expected a 2D raster, got shape {raster.shape}")
    Image.fromarray(raster).save(filepath, format="PPM")


def to_gray_levels(values: np.ndarray) -> np.ndarray:
    """``round(value · 255)`` clamped to [0, 255], halves rounded away from zero."""
    scaled = np.asarray(values, dtype=float) * 255.0
    rounded = np.sign(scaled) * np.floor(np.abs(scaled) + 0.5)
    return np.clip(rounded, 0, 255).astype(np.uint8)


def image_to_form0(calculus: GridCalculus, image: np.ndarray) -> np.ndarray:
    """Normalized intensities ``g ∈ [0, 1]`` as a primal 0‑form."""
    image = np.asarray(image)
    if image.shape != (calculus.height, calculus.width):
        raise ValueError(f"Image of shape {image.shape} does not match calculus "
                         f"({calculus.height}, {calculus.width})")
    return image.astype(float).ravel(order="C") / 255.0


def form0_to_image(calculus: GridCalculus, u: np.ndarray, verbose: bool = False) -> np.ndarray:
    """Raster of shape (H, W) holding the gray levels of the 0‑form ``u``."""
    u = calculus.check_form(u, 0)
    if verbose:
        print(f"  min_u={u.min():g} max_u={u.max():g}")
    return to_gray_levels(u).reshape((calculus.height, calculus.width), order="C")


def form1_to_image(calculus: GridCalculus, v: np.ndarray, verbose: bool = False) -> np.ndarray:
    """Raster of shape (2H−1, 2W−1): 255 everywhere, edge gray levels at edge cells."""
    v = calculus.check_form(v, 1)
    if verbose and v.size:
        print(f"  min_v={v.min():g} max_v={v.max():g}")
    raster = np.full(calculus.kspace_shape, 255, dtype=np.uint8)
    coords = calculus.cell_coords(1)
    raster[coords[:, 1], coords[:, 0]] = to_gray_levels(v)
    return raster


def output_paths(basename: str, lam: float) -> Tuple[str, str]:
    """File names of the u and v rasters exported for the λ value ``lam``."""
    return f"{basename}-l{lam:.7f}-u.pgm", f"{basename}-l{lam:.7f}-v.pgm"
