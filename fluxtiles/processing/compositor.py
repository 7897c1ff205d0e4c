"""
Derive a tile from the two tiles covering the same window one level below.
"""

import numpy as np
from PIL import Image


def blank_tile(width: int, height: int) -> np.ndarray:
    """
    A fully transparent RGBA tile.
    """
    return np.zeros((height, width, 4), dtype=np.uint8)


def multiply_alpha(data: np.ndarray, factor: float) -> np.ndarray:
    """
    Multiply the alpha channel of an RGBA buffer, clipping to the valid range.
    """
    if factor == 1.0:
        return data

    result = data.copy()
    alpha = result[..., 3].astype(np.float64) * factor
    result[..., 3] = np.clip(np.rint(alpha), 0, 255).astype(np.uint8)

    return result


def compose(
    left: np.ndarray,
    right: np.ndarray | None,
    width: int,
    height: int,
    alpha_factor: float = 1.0,
) -> np.ndarray:
    """
    Creates the tile one level up from two adjacent tiles.

    Parameters
    ----------
    left : np.ndarray
        RGBA buffer (height, width, 4) covering the first half of the window.
    right : np.ndarray | None
        RGBA buffer covering the second half of the window. None when that
        half lies in the future; it is replaced by a transparent tile.
    width : int
        Width of the resulting tile in pixels.
    height : int
        Height of the resulting tile in pixels.
    alpha_factor : float
        Multiplier for the alpha channel of the result.

    Returns
    -------
    np.ndarray
        RGBA buffer of shape (height, width, 4).

    Notes
    -----

    The two halves are placed side by side on a canvas of double width which is
    then scaled back to the tile width with bilinear interpolation, halving the
    number of pixels per second.
    """

    if left.ndim != 3 or left.shape[2] != 4:
        raise ValueError(f"Expected an RGBA buffer, got shape {left.shape}.")

    if right is None:
        right = blank_tile(left.shape[1], left.shape[0])

    if right.shape != left.shape:
        raise ValueError(
            f"Adjacent tiles differ in shape: {left.shape} and {right.shape}."
        )

    canvas = Image.fromarray(np.ascontiguousarray(np.hstack((left, right))))
    scaled = canvas.resize((width, height), resample=Image.Resampling.BILINEAR)

    return multiply_alpha(np.array(scaled, dtype=np.uint8), alpha_factor)
