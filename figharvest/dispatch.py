"""Per-document page acquisition: pick a strategy, then render or extract.

Strategy selection is a pure function of the document type, the capability
matrix and the vision flag. Execution fans page jobs out through the task
pool; every strategy reports success or failure through an
:class:`AcquisitionResult` and never raises past this module.
"""

from __future__ import annotations

import logging
import shutil
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional

from .capabilities import CapabilityMatrix
from .commands import ExternalTools
from .documents import Document, DocumentType
from .errors import ToolExecutionFailure, UnsupportedFileType
from .progress import ProgressState
from .task_pool import Job, JobOutcome, run_jobs

DJVU_BACKGROUND_MIN_BYTES = 200
DJVU_RENDER_MIN_BYTES = 1000
CONVERTED_PDF_MIN_BYTES = 1000

CONTAINER_IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tif", ".tiff",
                            ".svg", ".wmf", ".emf"}
PAGE_IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".tif", ".tiff")

PDF_CONVERT_DIR = "_temp_pdf_convert"
DOC_CONVERT_DIR = "_temp_doc"
DJVU_TEMP_DIR = "_djvu_temp"


class Strategy(str, Enum):
    RENDER_THEN_DETECT = "render_then_detect"
    CONVERT_THEN_RENDER = "convert_then_render"
    EXTRACT_EMBEDDED = "extract_embedded"
    EXTRACT_EMBEDDED_DJVU = "extract_embedded_djvu"
    EXTRACT_CONTAINER_IMAGES = "extract_container_images"
    CONVERT_THEN_EXTRACT_ZIP = "convert_then_extract_zip"
    UNSUPPORTED = "unsupported"


RENDER_STRATEGIES = frozenset({Strategy.RENDER_THEN_DETECT, Strategy.CONVERT_THEN_RENDER})


@dataclass(frozen=True)
class PageImage:
    document: Document
    index: int
    path: Path


@dataclass
class AcquisitionResult:
    strategy: Strategy
    pages: List[PageImage] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.pages)


@dataclass
class AcquisitionContext:
    tools: ExternalTools
    capabilities: CapabilityMatrix
    progress: Optional[ProgressState] = None
    workers: Optional[int] = None
    serial: bool = False

    def run(self, jobs: List[Job]) -> List[JobOutcome]:
        return run_jobs(jobs, self.progress, workers=self.workers, serial=self.serial)


def extraction_strategy(document: Document, capabilities: CapabilityMatrix) -> Strategy:
    """Strategy used when no render path applies to *document*."""
    doc_type = document.doc_type
    if doc_type is DocumentType.PDF and capabilities.can_extract_pdf_images:
        return Strategy.EXTRACT_EMBEDDED
    if (doc_type is DocumentType.DJVU and capabilities.can_handle_djvu
            and capabilities.can_extract_djvu_backgrounds):
        return Strategy.EXTRACT_EMBEDDED_DJVU
    if doc_type is DocumentType.ZIP_CONTAINER and capabilities.can_extract_containers:
        return Strategy.EXTRACT_CONTAINER_IMAGES
    if (doc_type is DocumentType.LEGACY_DOC and capabilities.can_convert_documents
            and capabilities.can_extract_containers):
        return Strategy.CONVERT_THEN_EXTRACT_ZIP
    return Strategy.UNSUPPORTED


def select_strategy(document: Document, capabilities: CapabilityMatrix, use_vision: bool) -> Strategy:
    doc_type = document.doc_type
    if use_vision:
        if doc_type is DocumentType.PDF and capabilities.can_render_pdf:
            return Strategy.RENDER_THEN_DETECT
        if doc_type is DocumentType.DJVU and capabilities.can_handle_djvu:
            return Strategy.RENDER_THEN_DETECT
        if (doc_type is not DocumentType.UNKNOWN and capabilities.can_convert_documents
                and capabilities.can_render_pdf):
            return Strategy.CONVERT_THEN_RENDER
    return extraction_strategy(document, capabilities)


def page_png_path(output_dir: Path, index: int) -> Path:
    return output_dir / f"page_{index:04d}.png"


def list_page_images(folder: Path) -> List[Path]:
    if not folder.is_dir():
        return []
    return sorted(path for path in folder.iterdir()
                  if path.is_file() and path.suffix.lower() in PAGE_IMAGE_SUFFIXES)


def discard(path: Path) -> None:
    path.unlink(missing_ok=True)


def _collect(result: AcquisitionResult, outcomes: List[JobOutcome]) -> AcquisitionResult:
    for outcome in outcomes:
        if not outcome.ok:
            result.failures.append(f"{outcome.label}: {outcome.error}")
        elif outcome.value:
            result.pages.extend(outcome.value)
    return result


def _render_pages(document: Document, source: Path, page_count: int,
                  render: Callable[[Path, int, Path], object],
                  ctx: AcquisitionContext, strategy: Strategy) -> AcquisitionResult:
    result = AcquisitionResult(strategy=strategy)
    if page_count <= 0:
        result.failures.append(f"{source.name}: no pages detected")
        return result

    def make_job(page: int) -> Job:
        def job() -> List[PageImage]:
            output_png = page_png_path(document.output_dir, page)
            render(source, page, output_png).raise_for_failure()
            return [PageImage(document=document, index=page, path=output_png)]
        return Job(index=page, label=f"{document.name} page {page}", func=job)

    return _collect(result, ctx.run([make_job(page) for page in range(1, page_count + 1)]))


def render_pdf_pages(document: Document, ctx: AcquisitionContext,
                     pdf_path: Optional[Path] = None,
                     strategy: Strategy = Strategy.RENDER_THEN_DETECT) -> AcquisitionResult:
    source = pdf_path or document.path
    pages = ctx.tools.pdf_page_count(source)
    return _render_pages(document, source, pages, ctx.tools.render_pdf_page, ctx, strategy)


def render_djvu_pages(document: Document, ctx: AcquisitionContext) -> AcquisitionResult:
    pages = ctx.tools.djvu_page_count(document.path)
    return _render_pages(document, document.path, pages, ctx.tools.render_djvu_page, ctx,
                         Strategy.RENDER_THEN_DETECT)


def render_document(document: Document, ctx: AcquisitionContext) -> AcquisitionResult:
    if document.doc_type is DocumentType.DJVU:
        return render_djvu_pages(document, ctx)
    return render_pdf_pages(document, ctx)


def convert_then_render(document: Document, ctx: AcquisitionContext) -> AcquisitionResult:
    temp_dir = document.output_dir / PDF_CONVERT_DIR
    try:
        converted = ctx.tools.convert_document(document.path, temp_dir, "pdf",
                                               min_bytes=CONVERTED_PDF_MIN_BYTES)
        if not converted.ok or converted.output_path is None:
            return AcquisitionResult(strategy=Strategy.CONVERT_THEN_RENDER,
                                     failures=[f"{document.name}: {converted.reason}"])
        return render_pdf_pages(document, ctx, pdf_path=converted.output_path,
                                strategy=Strategy.CONVERT_THEN_RENDER)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def extract_embedded(document: Document, ctx: AcquisitionContext) -> AcquisitionResult:
    def job() -> List[PageImage]:
        ctx.tools.extract_pdf_images(document.path, document.output_dir).raise_for_failure()
        return [PageImage(document=document, index=index, path=path)
                for index, path in enumerate(list_page_images(document.output_dir), start=1)]

    outcomes = ctx.run([Job(index=0, label=f"{document.name} embedded images", func=job)])
    return _collect(AcquisitionResult(strategy=Strategy.EXTRACT_EMBEDDED), outcomes)


def extract_djvu_images(document: Document, ctx: AcquisitionContext) -> AcquisitionResult:
    """Render only the DJVU pages that carry a real background (picture) layer."""
    result = AcquisitionResult(strategy=Strategy.EXTRACT_EMBEDDED_DJVU)
    pages = ctx.tools.djvu_page_count(document.path)
    if pages <= 0:
        result.failures.append(f"{document.name}: no pages detected")
        return result

    temp_dir = document.output_dir / DJVU_TEMP_DIR
    temp_dir.mkdir(parents=True, exist_ok=True)

    def make_job(page: int) -> Job:
        def job() -> List[PageImage]:
            background = temp_dir / f"page_{page}.iw44"
            try:
                probe = ctx.tools.extract_djvu_background(document.path, page, background,
                                                          min_bytes=DJVU_BACKGROUND_MIN_BYTES)
                if not probe.ok:
                    logging.debug("Page %s of %s has no background layer", page, document.name)
                    return []
                output_png = page_png_path(document.output_dir, page)
                rendered = ctx.tools.render_djvu_page(document.path, page, output_png,
                                                      min_bytes=DJVU_RENDER_MIN_BYTES)
                if not rendered.ok:
                    discard(output_png)
                    if rendered.returncode not in (0, None):
                        raise ToolExecutionFailure(rendered.reason)
                    return []
                return [PageImage(document=document, index=page, path=output_png)]
            finally:
                discard(background)
        return Job(index=page, label=f"{document.name} page {page}", func=job)

    try:
        _collect(result, ctx.run([make_job(page) for page in range(1, pages + 1)]))
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
    if not result.pages and document.output_dir.is_dir() and not any(document.output_dir.iterdir()):
        document.output_dir.rmdir()
    return result


def _is_thumbnail(member: str) -> bool:
    return "/thumbnail" in member.lower()


def unpack_container_images(archive_path: Path, output_dir: Path) -> List[Path]:
    """Copy image members of a zip-based container into *output_dir*, flattened."""
    written: Dict[str, Path] = {}
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                if info.is_dir() or _is_thumbnail(info.filename):
                    continue
                name = PurePosixPath(info.filename).name
                if not name or PurePosixPath(name).suffix.lower() not in CONTAINER_IMAGE_SUFFIXES:
                    continue
                target = output_dir / name
                with archive.open(info) as src, target.open("wb") as dst:
                    shutil.copyfileobj(src, dst)
                written[name] = target
    except (zipfile.BadZipFile, OSError) as exc:
        raise ToolExecutionFailure(f"cannot unpack {archive_path.name}: {exc}") from exc
    return sorted(written.values())


def _container_pages(document: Document, paths: List[Path]) -> List[PageImage]:
    return [PageImage(document=document, index=index, path=path)
            for index, path in enumerate(paths, start=1)]


def extract_container_images(document: Document, ctx: AcquisitionContext) -> AcquisitionResult:
    def job() -> List[PageImage]:
        return _container_pages(document, unpack_container_images(document.path, document.output_dir))

    outcomes = ctx.run([Job(index=0, label=f"{document.name} container images", func=job)])
    return _collect(AcquisitionResult(strategy=Strategy.EXTRACT_CONTAINER_IMAGES), outcomes)


def convert_then_extract_zip(document: Document, ctx: AcquisitionContext) -> AcquisitionResult:
    temp_dir = document.output_dir / DOC_CONVERT_DIR

    def job() -> List[PageImage]:
        try:
            converted = ctx.tools.convert_document(document.path, temp_dir, "docx")
            converted.raise_for_failure()
            return _container_pages(document,
                                    unpack_container_images(converted.output_path, document.output_dir))
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    outcomes = ctx.run([Job(index=0, label=f"{document.name} legacy conversion", func=job)])
    return _collect(AcquisitionResult(strategy=Strategy.CONVERT_THEN_EXTRACT_ZIP), outcomes)


def skip_unsupported(document: Document, ctx: AcquisitionContext) -> AcquisitionResult:
    def job() -> List[PageImage]:
        raise UnsupportedFileType(f"no strategy for {document.doc_type.value} file {document.name}")

    outcomes = ctx.run([Job(index=0, label=f"{document.name} unsupported", func=job)])
    return _collect(AcquisitionResult(strategy=Strategy.UNSUPPORTED), outcomes)


HANDLERS: Dict[Strategy, Callable[[Document, AcquisitionContext], AcquisitionResult]] = {
    Strategy.RENDER_THEN_DETECT: render_document,
    Strategy.CONVERT_THEN_RENDER: convert_then_render,
    Strategy.EXTRACT_EMBEDDED: extract_embedded,
    Strategy.EXTRACT_EMBEDDED_DJVU: extract_djvu_images,
    Strategy.EXTRACT_CONTAINER_IMAGES: extract_container_images,
    Strategy.CONVERT_THEN_EXTRACT_ZIP: convert_then_extract_zip,
    Strategy.UNSUPPORTED: skip_unsupported,
}


def acquire_pages(document: Document, strategy: Strategy, ctx: AcquisitionContext) -> AcquisitionResult:
    """Execute *strategy* for *document*; a failed conversion falls back to extraction."""
    if strategy is not Strategy.UNSUPPORTED:
        document.output_dir.mkdir(parents=True, exist_ok=True)
    logging.info("Acquiring pages of %s via %s", document.name, strategy.value)
    result = HANDLERS[strategy](document, ctx)
    if strategy is Strategy.CONVERT_THEN_RENDER and not result.pages:
        fallback = extraction_strategy(document, ctx.capabilities)
        logging.info("Conversion produced no pages for %s; falling back to %s",
                     document.name, fallback.value)
        fallback_result = acquire_pages(document, fallback, ctx)
        fallback_result.failures = result.failures + fallback_result.failures
        return fallback_result
    return result
