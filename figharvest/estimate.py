"""Heuristic total-work estimate that drives the progress percentage.

The estimate is deliberately approximate: it is computed before any page is
rendered, so it cannot know how many images an extraction will yield. The
orchestrator closes the gap with :meth:`ProgressState.finish` at the end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from .capabilities import CapabilityMatrix
from .commands import ExternalTools
from .dispatch import RENDER_STRATEGIES, Strategy, select_strategy
from .documents import Document, DocumentType


@dataclass(frozen=True)
class EstimatorCosts:
    # One unit to render a page, one to classify it.
    units_per_rendered_page: int = 2
    # Extraction yields an unknown number of images; six is an observed average.
    unknown_extraction_units: int = 6
    unsupported_units: int = 1
    single_job_units: int = 1


DEFAULT_COSTS = EstimatorCosts()


def page_count(document: Document, tools: ExternalTools) -> int:
    if document.doc_type is DocumentType.PDF:
        return max(1, tools.pdf_page_count(document.path))
    if document.doc_type is DocumentType.DJVU:
        return max(1, tools.djvu_page_count(document.path))
    return 1


def document_cost(document: Document, use_vision: bool, capabilities: CapabilityMatrix,
                  tools: ExternalTools, costs: EstimatorCosts = DEFAULT_COSTS) -> int:
    strategy = select_strategy(document, capabilities, use_vision)
    if strategy is Strategy.UNSUPPORTED:
        return costs.unsupported_units
    if use_vision:
        if strategy in RENDER_STRATEGIES:
            return page_count(document, tools) * costs.units_per_rendered_page
        return costs.unknown_extraction_units
    if strategy is Strategy.EXTRACT_EMBEDDED_DJVU:
        return page_count(document, tools)
    return costs.single_job_units


def estimate_total_work(documents: Iterable[Document], use_vision: bool, use_ocr: bool,
                        capabilities: CapabilityMatrix, tools: ExternalTools,
                        costs: EstimatorCosts = DEFAULT_COSTS) -> int:
    """Sum per-document costs; never returns less than 1.

    OCR confirmation runs inside a classification pass, so ``use_ocr`` does not
    add units of its own.
    """
    total = 0
    for document in documents:
        cost = document_cost(document, use_vision, capabilities, tools, costs)
        logging.debug("Estimated %s units for %s", cost, document.name)
        total += cost
    logging.info("Estimated work units: %s (vision=%s, ocr=%s)", max(1, total), use_vision, use_ocr)
    return max(1, total)
