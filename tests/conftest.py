"""
Shared helpers for building synthetic page layouts.
"""

from decimal import Decimal

import pytest

from doc_reconciler.reader import BoundingBox, PageLayout, PositionedFragment
from doc_reconciler.templates import ColumnSpec, TableSpec
from doc_reconciler.extractor import LineItemRaw
from doc_reconciler.records import DocumentContext, build_record

CHAR_WIDTH = 6.0
LINE_HEIGHT = 10.0


def make_fragment(text, left, top, width=None, height=LINE_HEIGHT):
    """Fragment whose width follows the text length unless given."""
    if width is None:
        width = CHAR_WIDTH * max(len(text), 1)
    return PositionedFragment(text=text, bbox=BoundingBox(left, top, left + width, top + height))


def make_layout(words, text=None, number=1, annotations=()):
    """words: iterable of (text, left, top) tuples."""
    fragments = tuple(make_fragment(*w) for w in words)
    if text is None:
        text = " ".join(f.text for f in fragments)
    return PageLayout(number=number, fragments=fragments, text=text, annotations=tuple(annotations))


def make_record(source_file, part="P-100", quantity="5"):
    context = DocumentContext(
        po_number="4500123",
        vendor_name="CSM CORPORATION",
        invoice_number="98765",
        source_file_name=source_file,
    )
    return build_record(context, LineItemRaw(part=part, quantity=Decimal(quantity)))


@pytest.fixture
def line_qty_table():
    """Two-column table keyed on the line number."""
    return TableSpec(
        columns=(
            ColumnSpec(column="LineNumber", label="Line", exact=True, left_margin=20, right_margin=20, shape="integer"),
            ColumnSpec(column="Quantity", label="Qty", left_margin=20, right_margin=None),
        ),
        key_column="LineNumber",
        row_tolerance=10,
    )


@pytest.fixture
def scenario_a_layout():
    """Key fragments "1" and "2" on separate row bands, quantities beside them."""
    return make_layout([
        ("Line", 50, 100),
        ("Qty", 200, 100),
        ("1", 55, 130),
        ("100 PZ", 200, 130),
        ("2", 55, 160),
        ("50 PZ", 200, 160),
    ])
