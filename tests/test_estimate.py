from __future__ import annotations

from pathlib import Path

from figharvest import estimate
from figharvest.capabilities import CapabilityMatrix
from figharvest.documents import Document, DocumentType


class CountingTools:
    def __init__(self, pdf_pages=4, djvu_pages=7):
        self.pdf_pages = pdf_pages
        self.djvu_pages = djvu_pages

    def pdf_page_count(self, path):
        return self.pdf_pages

    def djvu_page_count(self, path):
        return self.djvu_pages


def make_doc(name, doc_type):
    return Document(path=Path(name), doc_type=doc_type, output_dir=Path("out") / Path(name).stem)


FULL = CapabilityMatrix.everything()


def test_empty_input_still_counts_one_unit():
    assert estimate.estimate_total_work([], True, False, FULL, CountingTools()) == 1


def test_vision_render_costs_two_units_per_page():
    docs = [make_doc("a.pdf", DocumentType.PDF), make_doc("b.djvu", DocumentType.DJVU)]
    assert estimate.estimate_total_work(docs, True, False, FULL, CountingTools()) == 4 * 2 + 7 * 2


def test_vision_conversion_counts_rendered_pages_of_one():
    doc = make_doc("c.docx", DocumentType.ZIP_CONTAINER)
    assert estimate.document_cost(doc, True, FULL, CountingTools()) == 2


def test_vision_extraction_uses_fixed_guess():
    caps = CapabilityMatrix(can_extract_pdf_images=True)
    assert estimate.document_cost(make_doc("c.docx", DocumentType.ZIP_CONTAINER), True, caps,
                                  CountingTools()) == 6
    assert estimate.document_cost(make_doc("a.pdf", DocumentType.PDF), True, caps,
                                  CountingTools()) == 6


def test_extraction_mode_costs():
    tools = CountingTools()
    assert estimate.document_cost(make_doc("b.djvu", DocumentType.DJVU), False, FULL, tools) == 7
    assert estimate.document_cost(make_doc("a.pdf", DocumentType.PDF), False, FULL, tools) == 1
    assert estimate.document_cost(make_doc("d.doc", DocumentType.LEGACY_DOC), False, FULL, tools) == 1


def test_unsupported_costs_one_unit():
    assert estimate.document_cost(make_doc("x.bin", DocumentType.UNKNOWN), True, FULL,
                                  CountingTools()) == 1
    assert estimate.document_cost(make_doc("a.pdf", DocumentType.PDF), True, CapabilityMatrix(),
                                  CountingTools()) == 1


def test_unreadable_page_count_is_treated_as_one_page():
    doc = make_doc("a.pdf", DocumentType.PDF)
    assert estimate.document_cost(doc, True, FULL, CountingTools(pdf_pages=0)) == 2


def test_ocr_adds_no_units():
    docs = [make_doc("a.pdf", DocumentType.PDF)]
    tools = CountingTools()
    assert (estimate.estimate_total_work(docs, True, True, FULL, tools)
            == estimate.estimate_total_work(docs, True, False, FULL, tools))
