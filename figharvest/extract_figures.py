"""Extract figures from PDF, DJVU, office/EPUB containers and legacy .doc files.

Each input document gets an output folder named after its basename. Pages are
rendered (or embedded images extracted) into that folder with poppler,
djvulibre or LibreOffice; with ``--vision`` every raster is scanned with
OpenCV and accepted figures are written to ``<folder>/opencv_figures/``.
A timestamped log and a JSONL summary of the run go to ``--log-dir``.

Example:

    python -m figharvest.extract_figures docs/*.pdf --output-dir output/figures --vision --ocr

Requirements:
    pip install opencv-python numpy pillow pymupdf pytesseract tqdm
    System tools (optional, probed at start): pdftoppm, pdfimages, ddjvu,
    djvused, djvuextract, soffice, tesseract.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from tqdm import tqdm

from .capabilities import probe_capabilities
from .commands import DEFAULT_RENDER_DPI
from .documents import build_documents
from .pipeline import ExtractionRun, RunConfig, write_run_jsonl
from .task_pool import default_concurrency

DEFAULT_OUTPUT_ROOT = Path("output/figures")
DEFAULT_LOG_DIR = Path("artifacts/logs/extract")
DEFAULT_POLL_INTERVAL = 0.2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Extract figures and images from documents")
    parser.add_argument("inputs", nargs="+", type=Path,
                        help="Documents to process (PDF, DJVU, DOCX/ODT/EPUB/ZIP, DOC)")
    parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_ROOT,
                        help="Root folder; one subfolder is created per document")
    parser.add_argument("--log-dir", type=Path, default=DEFAULT_LOG_DIR,
                        help="Directory to store run logs")
    parser.add_argument("--vision", action=argparse.BooleanOptionalAction, default=False,
                        help="Render pages and detect figures with OpenCV")
    parser.add_argument("--ocr", action="store_true",
                        help="Confirm ambiguous regions with Tesseract (requires --vision)")
    parser.add_argument("--serial", action="store_true",
                        help="Run every job one at a time (for unstable environments)")
    parser.add_argument("--render-workers", type=int, default=default_concurrency(),
                        help="Concurrent render/extract jobs per document")
    parser.add_argument("--classify-workers", type=int, default=default_concurrency(),
                        help="Concurrent figure-classification jobs per document")
    parser.add_argument("--render-dpi", type=int, default=DEFAULT_RENDER_DPI,
                        help="Resolution for rendered PDF pages")
    parser.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL,
                        help="Seconds between progress refreshes")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def configure_logging(log_dir: Path, verbose: bool = False) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = log_dir / f"run_{timestamp}.log"
    handlers = [logging.StreamHandler(sys.stdout),
                logging.FileHandler(log_path, encoding="utf-8")]
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=handlers,
        force=True,
    )
    logging.info("Logging to %s", log_path)
    return log_path


def poll_progress(run: ExtractionRun, interval: float) -> None:
    """Mirror the run's percentage into a progress bar until it completes."""
    shown = 0.0
    with tqdm(total=100.0, desc="Extracting", unit="%",
              bar_format="{l_bar}{bar}| {n:.0f}/{total:.0f}%") as bar:
        while True:
            percentage = run.progress.percentage()
            if percentage > shown:
                bar.update(percentage - shown)
                shown = percentage
            if run.progress.is_complete():
                break
            time.sleep(interval)
    run.join()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    log_path = configure_logging(args.log_dir, args.verbose)

    missing: List[Path] = [path for path in args.inputs if not path.is_file()]
    if missing:
        logging.error("The following input files do not exist:")
        for path in missing:
            logging.error("  - %s", path)
        return 1
    if args.ocr and not args.vision:
        logging.warning("--ocr only applies together with --vision; OCR verification disabled")

    capabilities = probe_capabilities()
    if args.vision and not capabilities.can_use_vision_toolkit:
        logging.warning("Figure detection requested but OpenCV is unavailable; extracting only")

    args.output_dir.mkdir(parents=True, exist_ok=True)
    config = RunConfig(
        output_root=args.output_dir,
        use_vision=args.vision,
        use_ocr=args.ocr,
        serial=args.serial,
        render_workers=max(1, args.render_workers),
        classify_workers=max(1, args.classify_workers),
        render_dpi=args.render_dpi,
    )
    documents = build_documents(args.inputs, args.output_dir)
    logging.info("Queued %s document(s) | capabilities=%s", len(documents), capabilities.summary())

    run = ExtractionRun(documents, config, capabilities).start()
    poll_progress(run, args.poll_interval)

    jsonl_path = write_run_jsonl(run.results, args.log_dir)
    ok = sum(1 for r in run.results if r.status == "ok")
    warn = sum(1 for r in run.results if r.status == "warn")
    skip = sum(1 for r in run.results if r.status == "skip")
    err = sum(1 for r in run.results if r.status == "error")
    figures = sum(r.figures for r in run.results)
    logging.info("Extraction complete | ok=%s warn=%s skip=%s error=%s figures=%s | log=%s | jsonl=%s",
                 ok, warn, skip, err, figures, log_path, jsonl_path)
    return 1 if run.error else 0


if __name__ == "__main__":
    sys.exit(main())
