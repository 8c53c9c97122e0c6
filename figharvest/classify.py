"""Accept/reject decisions for figure candidates.

The decision itself (:func:`classify`) is a pure function of the candidate's
text density, whether the region carries graphical edges, and (only in the
ambiguous density band) an OCR verdict. Everything else in this module loads
rasters, computes those inputs and writes the accepted crops.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional

import cv2  # type: ignore
import numpy as np
import pytesseract  # type: ignore
from PIL import Image

from .candidates import (DEFAULT_PARAMS, CandidateParams, FigureCandidate, crop,
                         generate_candidates, to_grayscale)
from .errors import OCRUnavailable, UndecodableImage

FIGURES_DIR_NAME = "opencv_figures"
DEFAULT_OCR_LANGUAGE = "eng"
# Fully automatic page segmentation.
DEFAULT_OCR_CONFIG = "--psm 3"


@dataclass(frozen=True)
class ClassifierThresholds:
    dense_density: float = 20.0
    pure_text_density: float = 10.0
    sparse_density: float = 2.0
    min_edge_density: float = 0.005
    max_edge_density: float = 0.15
    canny_low: int = 50
    canny_high: int = 150
    ocr_min_confidence: float = 70.0
    ocr_min_words: int = 25


DEFAULT_THRESHOLDS = ClassifierThresholds()


@dataclass(frozen=True)
class Verdict:
    accepted: bool
    reason: str


def edge_density(region: np.ndarray, thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS) -> float:
    gray = to_grayscale(region)
    pixels = gray.shape[0] * gray.shape[1]
    if pixels == 0:
        return 0.0
    edges = cv2.Canny(gray, thresholds.canny_low, thresholds.canny_high)
    return cv2.countNonZero(edges) / pixels


def has_graphical_content(region: np.ndarray,
                          thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS) -> bool:
    density = edge_density(region, thresholds)
    return thresholds.min_edge_density < density < thresholds.max_edge_density


def classify(density: float, has_graphics: bool,
             confirm_text_block: Optional[Callable[[], bool]] = None,
             thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS) -> Verdict:
    """Decide whether a candidate is a figure. First matching rule wins.

    ``confirm_text_block`` is only called for densities between the sparse and
    pure-text thresholds; pass ``None`` when OCR is disabled or unavailable.
    """
    if density > thresholds.dense_density:
        return Verdict(has_graphics, "dense_with_graphics" if has_graphics else "dense_without_graphics")
    if density < thresholds.sparse_density:
        return Verdict(True, "sparse_text")
    if density > thresholds.pure_text_density:
        return Verdict(False, "pure_text")
    if confirm_text_block is not None and confirm_text_block():
        return Verdict(False, "ocr_text_block")
    return Verdict(has_graphics, "graphics" if has_graphics else "no_graphics")


@dataclass(frozen=True)
class OcrReading:
    confidence: float
    text: str

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class OcrEngine:
    """Tesseract wrapper used to confirm ambiguous regions as text blocks."""

    def __init__(self, language: str = DEFAULT_OCR_LANGUAGE, config: str = DEFAULT_OCR_CONFIG,
                 thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS) -> None:
        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as exc:
            raise OCRUnavailable(f"could not initialise tesseract: {exc}") from exc
        logging.debug("Using tesseract %s", version)
        self.language = language
        self.config = config
        self.thresholds = thresholds

    def read(self, region: np.ndarray) -> OcrReading:
        gray = Image.fromarray(to_grayscale(region))
        data = pytesseract.image_to_data(gray, lang=self.language, config=self.config,
                                         output_type=pytesseract.Output.DICT)
        words: List[str] = []
        confidences: List[float] = []
        for text, conf in zip(data.get("text", []), data.get("conf", [])):
            if not text or not text.strip():
                continue
            words.append(text.strip())
            if float(conf) >= 0:
                confidences.append(float(conf))
        mean_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return OcrReading(confidence=mean_confidence, text=" ".join(words))

    def is_text_block(self, region: np.ndarray) -> bool:
        try:
            reading = self.read(region)
        except pytesseract.TesseractError as exc:
            logging.warning("OCR failed on region, treating it as non-text: %s", exc)
            return False
        return (reading.confidence > self.thresholds.ocr_min_confidence
                and reading.word_count > self.thresholds.ocr_min_words)


def load_image(image_path: Path) -> np.ndarray:
    image = cv2.imread(str(image_path), cv2.IMREAD_COLOR)
    if image is None:
        raise UndecodableImage(f"cannot decode {image_path}")
    return image


def select_figures(image: np.ndarray, candidates: List[FigureCandidate],
                   ocr: Optional[OcrEngine] = None,
                   thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS) -> List[FigureCandidate]:
    """Return the accepted candidates, keeping the input (largest-first) order."""
    accepted: List[FigureCandidate] = []
    for candidate in candidates:
        region = crop(image, candidate.box)
        graphics = has_graphical_content(region, thresholds)
        confirm = None
        if ocr is not None:
            confirm = partial(ocr.is_text_block, region)
        verdict = classify(candidate.density, graphics, confirm, thresholds)
        logging.debug("Candidate %s density=%.2f graphics=%s -> %s (%s)",
                      candidate.box, candidate.density, graphics,
                      "accept" if verdict.accepted else "reject", verdict.reason)
        if verdict.accepted:
            accepted.append(candidate)
    return accepted


def figures_dir_for(folder: Path) -> Path:
    return folder / FIGURES_DIR_NAME


def figure_stems(sources: List[Path]) -> List[str]:
    """Output stem per source; clashing stems get the source suffix appended."""
    counts = Counter(source.stem for source in sources)
    return [f"{source.stem}_{source.suffix.lstrip('.').lower()}"
            if counts[source.stem] > 1 and source.suffix else source.stem
            for source in sources]


def figure_path(figures_dir: Path, stem: str, number: int) -> Path:
    return figures_dir / f"{stem}_figure_{number}.png"


def classify_image(image_path: Path, figures_dir: Path, ocr: Optional[OcrEngine] = None,
                   thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS,
                   params: CandidateParams = DEFAULT_PARAMS,
                   stem: Optional[str] = None) -> List[Path]:
    """Detect figures in one raster and write each accepted crop as a PNG.

    Crops are named after *stem*, which defaults to the raster's own stem.
    """
    image = load_image(image_path)
    candidates = generate_candidates(image, params)
    figures = select_figures(image, candidates, ocr, thresholds)
    logging.debug("%s: %s candidates, %s figures", image_path.name, len(candidates), len(figures))

    outputs: List[Path] = []
    if not figures:
        return outputs
    figures_dir.mkdir(parents=True, exist_ok=True)
    for number, candidate in enumerate(figures, start=1):
        output_path = figure_path(figures_dir, stem or image_path.stem, number)
        if not cv2.imwrite(str(output_path), crop(image, candidate.box)):
            raise OSError(f"could not write {output_path}")
        outputs.append(output_path)
    return outputs
