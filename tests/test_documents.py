from __future__ import annotations

import zipfile
from pathlib import Path

from figharvest import documents
from figharvest.documents import DocumentType


def write_zip(path: Path, members) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in members:
            archive.writestr(name, data)
    return path


def test_pdf_and_djvu_are_detected_by_content(tmp_path):
    pdf = tmp_path / "notes.txt"
    pdf.write_bytes(b"%PDF-1.7\n%...")
    djvu = tmp_path / "book.bin"
    djvu.write_bytes(b"AT&TFORM\x00\x00\x10\x00DJVM")
    assert documents.detect_document_type(pdf) is DocumentType.PDF
    assert documents.detect_document_type(djvu) is DocumentType.DJVU


def test_zip_based_containers(tmp_path):
    epub = write_zip(tmp_path / "book.epub", [("mimetype", "application/epub+zip"),
                                              ("OEBPS/images/cover.jpg", b"jpg")])
    odt = write_zip(tmp_path / "report.odt", [("mimetype", "application/vnd.oasis.opendocument.text")])
    docx = write_zip(tmp_path / "paper.docx", [("[Content_Types].xml", "<Types/>"),
                                               ("word/document.xml", "<w:document/>")])
    plain = write_zip(tmp_path / "bundle.zip", [("a.png", b"png")])
    assert documents.detect_mime_type(epub) == "application/epub+zip"
    assert documents.detect_mime_type(docx).endswith("wordprocessingml.document")
    for path in (epub, odt, docx, plain):
        assert documents.detect_document_type(path) is DocumentType.ZIP_CONTAINER


def test_legacy_doc_and_unknown(tmp_path):
    doc = tmp_path / "old.doc"
    doc.write_bytes(documents.OLE2_MAGIC + b"\x00" * 64)
    text = tmp_path / "readme.pdf"
    text.write_text("just text", encoding="utf-8")
    truncated = tmp_path / "broken.zip"
    truncated.write_bytes(b"PK\x03\x04garbage")
    assert documents.detect_document_type(doc) is DocumentType.LEGACY_DOC
    assert documents.detect_document_type(text) is DocumentType.UNKNOWN
    assert documents.detect_document_type(truncated) is DocumentType.UNKNOWN


def test_mime_mapping():
    assert documents.document_type_for_mime("image/x-djvu") is DocumentType.DJVU
    assert documents.document_type_for_mime("application/zip") is DocumentType.ZIP_CONTAINER
    assert documents.document_type_for_mime("text/plain") is DocumentType.UNKNOWN


def test_output_folder_is_named_after_stem(tmp_path):
    source = tmp_path / "report.v2.pdf"
    source.write_bytes(b"%PDF-1.4")
    built = documents.build_documents([source], tmp_path / "out")
    assert built[0].output_dir == tmp_path / "out" / "report.v2"
    assert built[0].doc_type is DocumentType.PDF
    assert built[0].name == "report.v2.pdf"
