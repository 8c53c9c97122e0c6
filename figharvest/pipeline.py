"""Run orchestration: documents in, figure files and result records out.

One background thread (:class:`ExtractionRun`) walks the documents in input
order. Inside a document the task pool runs the acquisition jobs, then one
classification job per acquired image. All failures are absorbed into
:class:`DocumentResult` records; the shared :class:`ProgressState` is the only
state the workers touch.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Iterable, List, Optional

from .candidates import DEFAULT_PARAMS, CandidateParams
from .capabilities import CapabilityMatrix
from .classify import (DEFAULT_OCR_LANGUAGE, DEFAULT_THRESHOLDS, ClassifierThresholds, OcrEngine,
                       classify_image, figure_stems, figures_dir_for)
from .commands import DEFAULT_RENDER_DPI, ExternalTools
from .dispatch import AcquisitionContext, PageImage, Strategy, acquire_pages, select_strategy
from .documents import Document
from .errors import OCRUnavailable
from .estimate import DEFAULT_COSTS, EstimatorCosts, estimate_total_work
from .progress import ProgressState
from .task_pool import Job, default_concurrency, run_jobs


@dataclass
class RunConfig:
    output_root: Path
    use_vision: bool = False
    use_ocr: bool = False
    serial: bool = False
    render_workers: int = field(default_factory=default_concurrency)
    classify_workers: int = field(default_factory=default_concurrency)
    render_dpi: int = DEFAULT_RENDER_DPI
    ocr_language: str = DEFAULT_OCR_LANGUAGE
    thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS
    candidate_params: CandidateParams = DEFAULT_PARAMS
    costs: EstimatorCosts = DEFAULT_COSTS

    def effective_vision(self, capabilities: CapabilityMatrix) -> bool:
        return self.use_vision and capabilities.can_use_vision_toolkit

    def effective_ocr(self, capabilities: CapabilityMatrix) -> bool:
        # OCR only ever confirms vision candidates.
        return self.use_ocr and self.effective_vision(capabilities) and capabilities.can_use_ocr


@dataclass
class DocumentResult:
    document: str
    doc_type: str
    strategy: str
    pages: int = 0
    images_classified: int = 0
    figures: int = 0
    status: str = "ok"
    message: str = ""
    failures: List[str] = field(default_factory=list)


def create_ocr_engine(config: RunConfig, capabilities: CapabilityMatrix) -> Optional[OcrEngine]:
    if not config.effective_ocr(capabilities):
        return None
    try:
        return OcrEngine(language=config.ocr_language, thresholds=config.thresholds)
    except OCRUnavailable as exc:
        logging.warning("%s; continuing with heuristic-only classification", exc)
        return None


def classify_pages(pages: List[PageImage], config: RunConfig, progress: Optional[ProgressState],
                   ocr: Optional[OcrEngine], result: DocumentResult) -> None:
    stems = figure_stems([page.path for page in pages])
    jobs = [
        Job(
            index=position,
            label=f"classify {page.path.name}",
            func=partial(classify_image, page.path, figures_dir_for(page.path.parent), ocr,
                         config.thresholds, config.candidate_params, stem),
        )
        for position, (page, stem) in enumerate(zip(pages, stems), start=1)
    ]
    for outcome in run_jobs(jobs, progress, workers=config.classify_workers, serial=config.serial):
        if outcome.ok:
            result.images_classified += 1
            result.figures += len(outcome.value or [])
        else:
            result.failures.append(f"{outcome.label}: {outcome.error}")


def summarise(result: DocumentResult, strategy: Strategy) -> DocumentResult:
    if strategy is Strategy.UNSUPPORTED:
        result.status = "skip"
        result.message = "Unsupported file type or missing tools"
    elif result.pages == 0:
        result.status = "error" if result.failures else "warn"
        result.message = "No images produced"
    elif result.failures:
        result.status = "warn"
        result.message = f"{len(result.failures)} job(s) failed"
    return result


def process_document(document: Document, config: RunConfig, capabilities: CapabilityMatrix,
                     tools: ExternalTools, progress: Optional[ProgressState] = None,
                     ocr: Optional[OcrEngine] = None) -> DocumentResult:
    vision = config.effective_vision(capabilities)
    strategy = select_strategy(document, capabilities, vision)
    result = DocumentResult(document=str(document.path), doc_type=document.doc_type.value,
                            strategy=strategy.value)
    try:
        logging.info("Processing %s (%s)", document.path, document.doc_type.value)
        ctx = AcquisitionContext(tools=tools, capabilities=capabilities, progress=progress,
                                 workers=config.render_workers, serial=config.serial)
        acquisition = acquire_pages(document, strategy, ctx)
        result.strategy = acquisition.strategy.value
        result.pages = len(acquisition.pages)
        result.failures.extend(acquisition.failures)
        if vision and acquisition.ok:
            classify_pages(acquisition.pages, config, progress, ocr, result)
        return summarise(result, acquisition.strategy)
    except Exception as exc:  # pylint: disable=broad-except
        logging.exception("Failed to process %s", document.path)
        result.status = "error"
        result.message = str(exc)
        return result


def run_pipeline(documents: List[Document], config: RunConfig, capabilities: CapabilityMatrix,
                 progress: ProgressState, tools: Optional[ExternalTools] = None) -> List[DocumentResult]:
    """Process *documents* in order; ``progress`` reaches its total on return."""
    tools = tools or ExternalTools(render_dpi=config.render_dpi)
    vision = config.effective_vision(capabilities)
    ocr_requested = config.effective_ocr(capabilities)
    progress.reset(estimate_total_work(documents, vision, ocr_requested, capabilities, tools,
                                       config.costs))
    ocr = create_ocr_engine(config, capabilities)

    results: List[DocumentResult] = []
    for document in documents:
        results.append(process_document(document, config, capabilities, tools, progress, ocr))
    logging.info("Run finished: %s units completed against an estimate of %s",
                 progress.completed_units, progress.total)
    progress.finish()
    return results


class ExtractionRun:
    """Drives :func:`run_pipeline` on a background thread for a polling consumer."""

    def __init__(self, documents: List[Document], config: RunConfig,
                 capabilities: CapabilityMatrix, tools: Optional[ExternalTools] = None,
                 progress: Optional[ProgressState] = None) -> None:
        self.documents = documents
        self.config = config
        self.capabilities = capabilities
        self.tools = tools
        self.progress = progress or ProgressState()
        self.results: List[DocumentResult] = []
        self.error: Optional[Exception] = None
        self._thread = threading.Thread(target=self._run, name="figharvest-run", daemon=True)

    def _run(self) -> None:
        try:
            self.results = run_pipeline(self.documents, self.config, self.capabilities,
                                        self.progress, self.tools)
        except Exception as exc:  # pylint: disable=broad-except
            logging.exception("Extraction run aborted")
            self.error = exc
            self.progress.finish()

    def start(self) -> "ExtractionRun":
        self._thread.start()
        return self

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)


def write_run_jsonl(results: Iterable[DocumentResult], log_dir: Path) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    jsonl_path = log_dir / f"run_{timestamp}.jsonl"
    with jsonl_path.open("w", encoding="utf-8") as fh:
        for result in results:
            fh.write(json.dumps(asdict(result), ensure_ascii=False) + "\n")
    return jsonl_path
