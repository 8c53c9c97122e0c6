"""Input document model and content-based type detection."""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List

PDF_MAGIC = b"%PDF"
DJVU_MAGIC = b"AT&TFORM"
ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06")
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

OOXML_MIMES = {
    "word/": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xl/": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt/": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}
OCTET_STREAM = "application/octet-stream"


class DocumentType(str, Enum):
    PDF = "pdf"
    DJVU = "djvu"
    ZIP_CONTAINER = "zip_container"
    LEGACY_DOC = "doc_legacy"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Document:
    path: Path
    doc_type: DocumentType
    output_dir: Path

    @property
    def name(self) -> str:
        return self.path.name


def _zip_mime_type(path: Path) -> str:
    try:
        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
            if "mimetype" in names:
                declared = archive.read("mimetype").decode("ascii", errors="ignore").strip()
                if declared:
                    return declared
            if "[Content_Types].xml" in names:
                for prefix, mime in OOXML_MIMES.items():
                    if any(name.startswith(prefix) for name in names):
                        return mime
                return "application/vnd.openxmlformats-officedocument"
    except zipfile.BadZipFile:
        return OCTET_STREAM
    return "application/zip"


def detect_mime_type(path: Path) -> str:
    """Return the mime type of *path* judged from its content, not its suffix."""
    try:
        with path.open("rb") as fh:
            head = fh.read(16)
    except OSError as exc:
        logging.warning("Cannot read %s for type detection: %s", path, exc)
        return OCTET_STREAM

    if head.startswith(PDF_MAGIC):
        return "application/pdf"
    if head.startswith(DJVU_MAGIC):
        return "image/vnd.djvu"
    if head.startswith(ZIP_MAGICS):
        return _zip_mime_type(path)
    if head.startswith(OLE2_MAGIC):
        return "application/msword"
    return OCTET_STREAM


def document_type_for_mime(mime: str) -> DocumentType:
    if mime == "application/pdf":
        return DocumentType.PDF
    if mime == "image/vnd.djvu" or "djvu" in mime:
        return DocumentType.DJVU
    if ("opendocument" in mime or "openxmlformats" in mime
            or mime in ("application/epub+zip", "application/zip")):
        return DocumentType.ZIP_CONTAINER
    if mime == "application/msword":
        return DocumentType.LEGACY_DOC
    return DocumentType.UNKNOWN


def detect_document_type(path: Path) -> DocumentType:
    return document_type_for_mime(detect_mime_type(path))


def output_dir_for(path: Path, output_root: Path) -> Path:
    return output_root / path.stem


def build_documents(paths: Iterable[Path], output_root: Path) -> List[Document]:
    documents: List[Document] = []
    for raw in paths:
        path = Path(raw)
        doc_type = detect_document_type(path)
        logging.debug("Detected %s as %s", path, doc_type.value)
        documents.append(Document(path=path, doc_type=doc_type,
                                  output_dir=output_dir_for(path, output_root)))
    return documents
