"""
Swatch Rendering Module

Renders the trained palette as an image: one row of color chips per class,
in palette order.
"""

import numpy as np
from loguru import logger

from votecounter.services.colors.training import TrainedPalette


def render_palette_image(palette: TrainedPalette,
                         chip_size: int = 40,
                         gap: int = 2) -> np.ndarray:
    """
    Render the palette chips of each class as a grid.

    Args:
        palette: Trained palette
        chip_size: Size of each color chip in pixels
        gap: Black spacing between chips and rows

    Returns:
        RGB uint8 image; a single black chip for an empty palette
    """
    if palette.size == 0:
        return np.zeros((chip_size, chip_size, 3), dtype=np.uint8)

    rows = len(palette.slices)
    cols = max(stop - start for start, stop in palette.slices.values())

    img_height = rows * chip_size + (rows - 1) * gap
    img_width = cols * chip_size + (cols - 1) * gap
    img = np.zeros((img_height, img_width, 3), dtype=np.uint8)

    for row, (start, stop) in enumerate(palette.slices.values()):
        y_start = row * (chip_size + gap)
        for col, entry in enumerate(range(start, stop)):
            x_start = col * (chip_size + gap)
            img[y_start:y_start + chip_size, x_start:x_start + chip_size] = palette.colors_rgb[entry]

    logger.debug(f"Rendered palette image {img_width}×{img_height} ({rows} classes, {palette.size} chips)")
    return img
