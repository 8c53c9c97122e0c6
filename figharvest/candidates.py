"""Region proposals for self-contained figures on a raster page.

Strokes are binarised with a Gaussian adaptive threshold and merged by
dilation; the external contours of the resulting blobs give candidate boxes.
Each surviving box is padded and scored by how much of it looks like small
text glyphs (see :func:`text_density`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import cv2  # type: ignore
import numpy as np

Box = Tuple[int, int, int, int]  # (x, y, width, height)


@dataclass(frozen=True)
class CandidateParams:
    block_size: int = 25
    threshold_offset: int = 15
    dilate_kernel: int = 5
    dilate_iterations: int = 3
    min_area_ratio: float = 0.01
    max_area_ratio: float = 0.7
    min_side: int = 100
    padding_ratio: float = 0.05
    # Text density pass
    text_block_size: int = 15
    text_threshold_offset: int = 10
    close_kernel: int = 3
    glyph_height: Tuple[int, int] = (5, 50)
    glyph_width: Tuple[int, int] = (3, 200)
    glyph_aspect: Tuple[float, float] = (0.2, 10.0)
    glyph_min_area: int = 20
    density_scale: float = 10000.0


DEFAULT_PARAMS = CandidateParams()


@dataclass(frozen=True)
class FigureCandidate:
    box: Box
    density: float
    area: float


def to_grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def crop(image: np.ndarray, box: Box) -> np.ndarray:
    x, y, w, h = box
    return image[y:y + h, x:x + w]


def pad_box(box: Box, image_width: int, image_height: int,
            padding_ratio: float = DEFAULT_PARAMS.padding_ratio) -> Box:
    """Grow *box* by ``padding_ratio`` of its size per side, clamped to the image."""
    x, y, w, h = box
    pad_x = int(w * padding_ratio)
    pad_y = int(h * padding_ratio)
    x0 = max(0, x - pad_x)
    y0 = max(0, y - pad_y)
    x1 = min(image_width, x + w + pad_x)
    y1 = min(image_height, y + h + pad_y)
    return x0, y0, x1 - x0, y1 - y0


def text_density(region: np.ndarray, params: CandidateParams = DEFAULT_PARAMS) -> float:
    """Text-like connected components per 10 000 pixels of *region*."""
    gray = to_grayscale(region)
    pixels = gray.shape[0] * gray.shape[1]
    if pixels == 0:
        return 0.0
    binary = cv2.adaptiveThreshold(gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY_INV,
                                   params.text_block_size, params.text_threshold_offset)
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (params.close_kernel, params.close_kernel))
    binary = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)
    count, _, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)

    min_h, max_h = params.glyph_height
    min_w, max_w = params.glyph_width
    min_aspect, max_aspect = params.glyph_aspect
    text_like = 0
    # Label 0 is the background.
    for label in range(1, count):
        width = int(stats[label, cv2.CC_STAT_WIDTH])
        height = int(stats[label, cv2.CC_STAT_HEIGHT])
        area = int(stats[label, cv2.CC_STAT_AREA])
        if not (min_h < height < max_h and min_w < width < max_w):
            continue
        aspect = width / height
        if min_aspect < aspect < max_aspect and area > params.glyph_min_area:
            text_like += 1
    return text_like / pixels * params.density_scale


def proposal_boxes(gray: np.ndarray, params: CandidateParams = DEFAULT_PARAMS) -> List[Box]:
    binary = cv2.adaptiveThreshold(gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY_INV,
                                   params.block_size, params.threshold_offset)
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (params.dilate_kernel, params.dilate_kernel))
    binary = cv2.dilate(binary, kernel, iterations=params.dilate_iterations)
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    return [tuple(int(v) for v in cv2.boundingRect(contour)) for contour in contours]


def generate_candidates(image: np.ndarray, params: CandidateParams = DEFAULT_PARAMS) -> List[FigureCandidate]:
    """Propose padded figure boxes for *image*, largest first."""
    gray = to_grayscale(image)
    height, width = gray.shape[:2]
    image_area = float(width * height)
    min_area = image_area * params.min_area_ratio
    max_area = image_area * params.max_area_ratio

    candidates: List[FigureCandidate] = []
    for box in proposal_boxes(gray, params):
        _, _, w, h = box
        area = float(w * h)
        if area < min_area or area > max_area:
            continue
        if w < params.min_side or h < params.min_side:
            continue
        padded = pad_box(box, width, height, params.padding_ratio)
        density = text_density(crop(gray, padded), params)
        candidates.append(FigureCandidate(box=padded, density=density, area=area))

    candidates.sort(key=lambda candidate: candidate.area, reverse=True)
    return candidates
