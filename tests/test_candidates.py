from __future__ import annotations

import numpy as np
import pytest

from figharvest import candidates


def test_pad_box_grows_each_side_by_ratio():
    assert candidates.pad_box((100, 100, 300, 300), 1000, 1000) == (85, 85, 330, 330)


def test_pad_box_is_clamped_to_image():
    assert candidates.pad_box((0, 0, 100, 100), 100, 100) == (0, 0, 100, 100)
    x, y, w, h = candidates.pad_box((900, 10, 100, 200), 1000, 1000)
    assert (x, y) == (895, 0)
    assert x + w == 1000
    assert y + h == 220


def test_single_framed_figure_yields_one_candidate(make_page):
    page = make_page()
    found = candidates.generate_candidates(page)
    assert len(found) == 1
    x, y, w, h = found[0].box
    assert x <= 200 and y <= 200
    assert x + w >= 600 and y + h >= 600
    assert x >= 0 and y >= 0 and x + w <= 1000 and y + h <= 1000
    assert found[0].density == 0.0


def test_small_and_page_sized_regions_are_filtered(make_page):
    assert candidates.generate_candidates(make_page(boxes=[(300, 300, 340, 340)])) == []
    assert candidates.generate_candidates(make_page(boxes=[(10, 10, 989, 989)])) == []


def test_candidates_are_sorted_largest_first(make_page):
    page = make_page(boxes=[(600, 600, 799, 799), (50, 50, 449, 449)])
    found = candidates.generate_candidates(page)
    assert len(found) == 2
    assert found[0].area > found[1].area


def test_text_density_of_blank_region_is_zero():
    assert candidates.text_density(np.full((100, 100), 255, dtype=np.uint8)) == 0.0


def test_text_density_counts_glyph_sized_blobs():
    region = np.full((400, 400), 255, dtype=np.uint8)
    blocks = 0
    for y in range(20, 360, 40):
        for x in range(20, 380, 40):
            region[y:y + 20, x:x + 10] = 0
            blocks += 1
    assert candidates.text_density(region) == pytest.approx(blocks / (400 * 400) * 10000)


def test_grayscale_accepts_gray_bgr_and_bgra():
    gray = np.zeros((5, 5), dtype=np.uint8)
    assert candidates.to_grayscale(gray) is gray
    assert candidates.to_grayscale(np.zeros((5, 5, 3), dtype=np.uint8)).shape == (5, 5)
    assert candidates.to_grayscale(np.zeros((5, 5, 4), dtype=np.uint8)).shape == (5, 5)
