"""
Tests for the batch runner: skipping known files, per-file isolation, single write.
"""

import os

import pytest
from openpyxl import Workbook, load_workbook

from doc_reconciler.batch import collect_new_records, list_document_files, run_batch
from doc_reconciler.pipeline import ExtractionResult
from doc_reconciler.templates import load_vendor_templates
from doc_reconciler.diagnostics import PER_FILE_FAILURE, ReportLockedError, ReportStoreError

from conftest import make_record


@pytest.fixture
def csm():
    return load_vendor_templates()["csm"]


@pytest.fixture
def root(tmp_path, csm):
    folder = tmp_path / csm.vendor_folder / csm.document_folder
    folder.mkdir(parents=True)
    for i, name in enumerate(["inv001.pdf", "inv002.pdf"]):
        path = folder / name
        path.write_bytes(b"%PDF-1.4")
        os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))
    (folder / "notes.txt").write_text("not a pdf")
    return tmp_path


@pytest.fixture
def master(tmp_path):
    path = tmp_path / "master.xlsx"
    wb = Workbook()
    ws = wb.active
    ws["B1"] = "Proveedor"
    ws["R1"] = "Archivo"
    ws["B2"] = "CSM CORPORATION"
    ws["R2"] = "INV001.pdf"
    wb.save(path)
    return path


class FakeExtractor:
    """Records which files were extracted; can fail on chosen names."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def __call__(self, pdf_path, template):
        name = os.path.basename(pdf_path)
        self.calls.append(name)
        if name in self.fail_on:
            raise RuntimeError("cannot decode page 1")
        return ExtractionResult(records=[make_record(name)])


class TestListDocuments:

    def test_newest_first_pdfs_only(self, root, csm):
        assert [p.name for p in list_document_files(str(root), csm)] == ["inv002.pdf", "inv001.pdf"]

    def test_missing_folder(self, tmp_path, csm):
        assert list_document_files(str(tmp_path), csm) == []


class TestRunBatch:

    def test_scenario_c_only_new_file_processed(self, root, master, csm):
        extract = FakeExtractor()

        result = run_batch([csm], str(root), str(master), extract=extract)

        assert extract.calls == ["inv002.pdf"]
        assert result.written == 1
        ws = load_workbook(master).worksheets[0]
        assert ws["R3"].value == "inv002.pdf"
        assert ws["R4"].value is None

    def test_second_run_is_a_no_op(self, root, master, csm):
        run_batch([csm], str(root), str(master), extract=FakeExtractor())
        extract = FakeExtractor()

        result = run_batch([csm], str(root), str(master), extract=extract)

        assert extract.calls == []
        assert result.written == 0

    def test_failing_file_does_not_stop_batch(self, root, csm):
        extract = FakeExtractor(fail_on=["inv002.pdf"])

        result = collect_new_records([csm], str(root), set(), extract=extract)

        assert extract.calls == ["inv002.pdf", "inv001.pdf"]
        assert [r.source_file_name for r in result.records] == ["inv001.pdf"]
        assert result.diagnostics[0].code == PER_FILE_FAILURE
        assert result.diagnostics[0].source_file == "inv002.pdf"
        assert result.summaries[0].failed == 1

    def test_locked_master_writes_nothing(self, root, master, csm):
        (master.parent / f"~${master.name}").write_bytes(b"")

        with pytest.raises(ReportLockedError):
            run_batch([csm], str(root), str(master), extract=FakeExtractor())

        assert load_workbook(master).worksheets[0]["B3"].value is None

    def test_missing_master_fails_before_extraction(self, root, tmp_path, csm):
        extract = FakeExtractor()

        with pytest.raises(ReportStoreError):
            run_batch([csm], str(root), str(tmp_path / "missing.xlsx"), extract=extract)

        assert extract.calls == []

    def test_same_file_name_in_two_vendor_folders(self, tmp_path, csm):
        elkhart = load_vendor_templates()["elkhart"]
        for template in (csm, elkhart):
            folder = tmp_path / template.vendor_folder / template.document_folder
            folder.mkdir(parents=True)
            (folder / "PO 100.pdf").write_bytes(b"%PDF-1.4")
        calls = []

        def extract(pdf_path, template):
            calls.append((template.key, os.path.basename(pdf_path)))
            return ExtractionResult(records=[make_record(os.path.basename(pdf_path))])

        result = collect_new_records([csm, elkhart], str(tmp_path), set(), extract=extract)

        assert calls == [("csm", "PO 100.pdf"), ("elkhart", "PO 100.pdf")]
        assert len(result.records) == 2
        assert [s.skipped for s in result.summaries] == [0, 0]
