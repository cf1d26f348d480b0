"""
Tests for packing list detection and the Email Info workbook lookup.
"""

from pathlib import Path

import pandas as pd
import pytest

from doc_reconciler.logistics import (
    extract_customer_items,
    lookup_logistics,
    resolve_logistics,
)
from doc_reconciler.templates import LogisticsRule

from conftest import make_layout

PACKING_PAGE = make_layout([
    ("CUST", 50, 100),
    ("ITEM", 80, 100),
    ("AB", 50, 115),
    ("12345", 65, 115),
    ("Weight", 300, 200),
])


@pytest.fixture
def email_info(tmp_path):
    path = tmp_path / "Email Info.xlsx"
    pd.DataFrame({
        "pdf": ["other.pdf", "PL_0042.PDF"],
        "Reference": ["R-1", "R-42"],
        "Weight": ["10", "125.5"],
        "Guia": ["G-1", "G-42"],
    }).to_excel(path, index=False)
    return path


class TestCustomerItems:

    def test_fragments_below_label_are_joined(self):
        assert extract_customer_items([PACKING_PAGE]) == ["AB12345"]

    def test_short_values_ignored(self):
        page = make_layout([("CUST", 50, 100), ("A1", 50, 115)])
        assert extract_customer_items([page]) == []

    def test_no_label(self):
        assert extract_customer_items([make_layout([("AB12345", 50, 115)])]) == []


class TestLookup:

    def test_case_insensitive_match(self, email_info):
        info = lookup_logistics(str(email_info), "pl_0042.pdf")
        assert info == {"reference": "R-42", "weight": "125.5", "guia": "G-42"}

    def test_unknown_packing_list(self, email_info):
        assert lookup_logistics(str(email_info), "missing.pdf") == {"reference": "", "weight": "", "guia": ""}


class TestResolve:

    def test_full_lookup(self, tmp_path, email_info):
        vendor = tmp_path / "06 - LUCAS"
        invoice = vendor / "02 - Factura" / "inv.pdf"
        packing = vendor / "03 - Packing List" / "PL_0042.pdf"
        for p in (invoice, packing):
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_bytes(b"%PDF-1.4")

        pages = {"inv.pdf": [], "PL_0042.pdf": [PACKING_PAGE]}
        info = resolve_logistics(str(invoice), LogisticsRule(), loader=lambda p: pages[Path(p).name])

        assert info["reference"] == "R-42"
        assert info["guia"] == "G-42"

    def test_missing_packing_folder(self, tmp_path):
        invoice = tmp_path / "06 - LUCAS" / "02 - Factura" / "inv.pdf"

        assert resolve_logistics(str(invoice), LogisticsRule(), loader=lambda p: []) == {
            "reference": "", "weight": "", "guia": "",
        }
