"""
VoteCounter Imaging Utilities
Handles image I/O, resizing and color-space conversion for snapshots.

All in-memory images are RGB ``uint8`` arrays; Lab matrices are ``float32``
with L in [0, 100] as produced by OpenCV for floating-point input.
"""
import base64
import io
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError


def read_image(path: Union[str, Path]) -> np.ndarray:
    """
    Read an image file into an RGB numpy array.

    Args:
        path: Image file path

    Returns:
        RGB uint8 array of shape (H, W, 3)

    Raises:
        FileNotFoundError: If the file is missing or cannot be decoded
    """
    path = Path(path)
    try:
        with Image.open(path) as pil_image:
            # Convert to RGB if necessary
            if pil_image.mode != 'RGB':
                pil_image = pil_image.convert('RGB')
            return np.array(pil_image)
    except (FileNotFoundError, UnidentifiedImageError, OSError) as e:
        raise FileNotFoundError(f"Could not read image: {path} ({e})")


def read_cached_image(path: Union[str, Path]) -> Optional[np.ndarray]:
    """
    Read a cached RGB artifact, returning None when it does not exist or
    cannot be decoded.
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        with Image.open(path) as pil_image:
            pil_image = pil_image.convert("RGB")
            return np.array(pil_image)
    except (UnidentifiedImageError, OSError):
        return None


def write_image(path: Union[str, Path], image: np.ndarray) -> None:
    """Write an RGB or single-channel uint8 array to disk."""
    Image.fromarray(np.ascontiguousarray(image)).save(str(path))


def fit_long_edge(img_rgb: np.ndarray, size_limit: int) -> np.ndarray:
    """
    Resize image so the longest edge is exactly size_limit pixels.

    Aspect ratio is preserved. Shrinking uses area interpolation, enlarging
    uses bicubic smoothing.

    Args:
        img_rgb: Input image
        size_limit: Target length of the longest edge

    Returns:
        Resized image (the input itself if already at size)
    """
    height, width = img_rgb.shape[:2]
    current_max = max(height, width)

    if current_max == size_limit:
        return img_rgb

    # Calculate new dimensions
    scale = size_limit / current_max
    if width >= height:
        new_width = size_limit
        new_height = max(1, int(round(height * scale)))
    else:
        new_height = size_limit
        new_width = max(1, int(round(width * scale)))

    interpolation = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_CUBIC
    return cv2.resize(img_rgb, (new_width, new_height), interpolation=interpolation)


def rgb_to_lab(img_rgb: np.ndarray) -> np.ndarray:
    """Convert an RGB uint8 image to a float32 Lab matrix."""
    rgb_float = img_rgb.astype(np.float32) / 255.0
    return cv2.cvtColor(rgb_float, cv2.COLOR_RGB2Lab)


def lab_to_rgb(lab: np.ndarray) -> np.ndarray:
    """
    Convert float Lab colors back to RGB uint8.

    Accepts either an (H, W, 3) matrix or an (N, 3) list of colors.
    """
    lab = np.asarray(lab, dtype=np.float32)
    flat = lab.ndim == 2
    if flat:
        lab = lab.reshape(1, -1, 3)
    rgb_float = cv2.cvtColor(lab, cv2.COLOR_Lab2RGB)
    rgb = np.clip(np.round(rgb_float * 255.0), 0, 255).astype(np.uint8)
    return rgb.reshape(-1, 3) if flat else rgb


def rgb_to_hex(rgb_u8: np.ndarray) -> str:
    """Convert RGB uint8 array to hex color string."""
    r, g, b = [int(x) for x in rgb_u8]
    return f"#{r:02X}{g:02X}{b:02X}"


def encode_png_base64(image: np.ndarray) -> str:
    """
    Encode an RGB or single-channel image to a base64 PNG string.

    Args:
        image: uint8 image

    Returns:
        Base64 encoded PNG string
    """
    buffer = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(image)).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode('utf-8')


def get_image_dimensions(img: np.ndarray) -> Tuple[int, int]:
    """
    Get image width and height.

    Args:
        img: Input image

    Returns:
        Tuple of (width, height)
    """
    height, width = img.shape[:2]
    return width, height
