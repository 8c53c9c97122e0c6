"""One-time startup probe for the external tools the pipeline can drive.

The probe runs once per process and produces an immutable
:class:`CapabilityMatrix`. Every later stage receives the matrix explicitly and
only reads it, so worker threads can share it without locking.
"""

from __future__ import annotations

import importlib.util
import logging
import shutil
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional

import pytesseract  # type: ignore

BASE_DEPENDENCY_COUNT = 5

DJVU_BINARIES = ("ddjvu", "djvused")


@dataclass(frozen=True)
class CapabilityMatrix:
    can_render_pdf: bool = False
    can_extract_pdf_images: bool = False
    can_handle_djvu: bool = False
    can_extract_djvu_backgrounds: bool = False
    can_convert_documents: bool = False
    can_extract_containers: bool = True
    can_use_vision_toolkit: bool = False
    can_use_ocr: bool = False

    def summary(self) -> Dict[str, bool]:
        return asdict(self)

    @classmethod
    def everything(cls) -> "CapabilityMatrix":
        return cls(
            can_render_pdf=True,
            can_extract_pdf_images=True,
            can_handle_djvu=True,
            can_extract_djvu_backgrounds=True,
            can_convert_documents=True,
            can_extract_containers=True,
            can_use_vision_toolkit=True,
            can_use_ocr=True,
        )


def tesseract_available() -> bool:
    try:
        pytesseract.get_tesseract_version()
    except (pytesseract.TesseractNotFoundError, OSError) as exc:
        logging.debug("Tesseract probe failed: %s", exc)
        return False
    return True


def vision_toolkit_available() -> bool:
    return importlib.util.find_spec("cv2") is not None


def probe_capabilities(which: Optional[Callable[[str], Optional[str]]] = None,
                       vision_probe: Callable[[], bool] = vision_toolkit_available,
                       ocr_probe: Callable[[], bool] = tesseract_available) -> CapabilityMatrix:
    """Detect which render/extract/convert/OCR tools are installed."""
    lookup = which or shutil.which
    found = 0

    djvu_missing = [name for name in DJVU_BINARIES if lookup(name) is None]
    for name in djvu_missing:
        logging.warning("Command not found: %s", name)
    can_handle_djvu = not djvu_missing
    # ddjvu and djvused count separately towards the base tally.
    found += len(DJVU_BINARIES) - len(djvu_missing)

    can_extract_djvu_backgrounds = lookup("djvuextract") is not None
    if not can_extract_djvu_backgrounds:
        logging.warning("Command not found: djvuextract - DJVU image extraction disabled")

    can_convert_documents = lookup("soffice") is not None
    if can_convert_documents:
        found += 1
    else:
        logging.warning("Command not found: soffice - office documents cannot be converted")

    can_extract_pdf_images = lookup("pdfimages") is not None
    if can_extract_pdf_images:
        found += 1
    else:
        logging.warning("Command not found: pdfimages")

    # Containers are unpacked in-process with zipfile.
    can_extract_containers = True
    found += 1

    can_render_pdf = lookup("pdftoppm") is not None
    if not can_render_pdf:
        logging.warning("pdftoppm not found - cannot render PDF pages for vector figure detection")

    can_use_vision_toolkit = vision_probe()
    if can_use_vision_toolkit:
        logging.info("OpenCV found")
    else:
        logging.warning("OpenCV not found - figure detection disabled")

    can_use_ocr = ocr_probe()
    if can_use_ocr:
        logging.info("Tesseract found - OCR verification available")
    else:
        logging.warning("Tesseract not found - OCR verification disabled")

    logging.info("Base dependencies: %s/%s", found, BASE_DEPENDENCY_COUNT)
    if found < BASE_DEPENDENCY_COUNT:
        logging.warning("Some base dependencies are missing; affected file types will be skipped")

    return CapabilityMatrix(
        can_render_pdf=can_render_pdf,
        can_extract_pdf_images=can_extract_pdf_images,
        can_handle_djvu=can_handle_djvu,
        can_extract_djvu_backgrounds=can_extract_djvu_backgrounds,
        can_convert_documents=can_convert_documents,
        can_extract_containers=can_extract_containers,
        can_use_vision_toolkit=can_use_vision_toolkit,
        can_use_ocr=can_use_ocr,
    )
