from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
import pytest


def draw_page(size: int = 1000, boxes=((200, 200, 599, 599),), thickness: int = 3) -> np.ndarray:
    page = np.full((size, size, 3), 255, dtype=np.uint8)
    for x0, y0, x1, y1 in boxes:
        cv2.rectangle(page, (x0, y0), (x1, y1), (0, 0, 0), thickness)
    return page


@pytest.fixture
def make_page():
    return draw_page


@pytest.fixture
def figure_page(tmp_path: Path) -> Path:
    """A white page carrying one framed, text-free figure."""
    path = tmp_path / "sample" / "page_0001.png"
    path.parent.mkdir(parents=True)
    assert cv2.imwrite(str(path), draw_page())
    return path
