"""
字段抽取模块

职责：
- 数值标准化（货币符号、千分位、数量+单位拆分、磅→千克）
- 按表头水平带从每行中抽取各逻辑字段
- 单页表格抽取：定位表头 → 行聚类 → 字段抽取
- 只做抽取，解析失败的字段保持默认值，不向上抛异常
"""

import re
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from .reader import PageLayout, PositionedFragment
from .preprocessor import clean_text, is_alpha_token
from .locator import ColumnAnchor, column_band, fits_shape, locate_columns, within_band
from .clusterer import RowCluster, cluster_rows
from .templates import (
    AMOUNT,
    LINE_NUMBER,
    PART,
    QUANTITY,
    UNIT,
    UNIT_PRICE,
    ColumnSpec,
    TableSpec,
)
from .diagnostics import Diagnostic, MISSING_ANCHOR, PARSE_FAILURE, INFO, WARNING

logger = logging.getLogger("doc_reconciler")

ZERO = Decimal("0")
LB_TO_KG = Decimal("0.453592")

CURRENCY_SYMBOLS = ("$", "€", "£")
CURRENCY_CODES = ("USD", "MXN", "EUR")

_PLAIN_NUMBER = re.compile(r"-?(?:\d+(?:\.\d+)?|\.\d+)")
_QTY_WITH_UNIT = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*([A-Za-z]*)")


@dataclass
class LineItemRaw:
    """单行抽取结果，未解析的字段保持默认值"""
    part: str = ""
    quantity: Decimal = ZERO
    unit: str = ""
    unit_price: Decimal = ZERO
    amount: Decimal = ZERO
    line_number: int = 0

    def to_dict(self):
        return {
            "part": self.part,
            "quantity": float(self.quantity),
            "unit": self.unit,
            "unit_price": float(self.unit_price),
            "amount": float(self.amount),
            "line_number": self.line_number,
        }


#
# ========== 数值标准化 ==========
#

def try_parse_decimal(text: str) -> Optional[Decimal]:
    """
    解析定点小数（与区域设置无关：逗号为千分位，点为小数点）。

    Returns:
        Decimal，无法解析返回 None

    Example:
        "1,234.56" → Decimal("1234.56")
        "$45.00" → Decimal("45.00")
        "abc" → None
    """
    cleaned = clean_text(text or "").upper()
    for sym in CURRENCY_SYMBOLS:
        cleaned = cleaned.replace(sym, "")
    for code in CURRENCY_CODES:
        cleaned = cleaned.replace(code, "")
    cleaned = cleaned.replace(",", "").replace(" ", "")

    if not _PLAIN_NUMBER.fullmatch(cleaned):
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_decimal(text: str) -> Decimal:
    """同 try_parse_decimal，失败时返回 0"""
    value = try_parse_decimal(text)
    return value if value is not None else ZERO


def split_quantity_unit(text: str) -> Tuple[Decimal, str]:
    """
    拆分 "<数字><单位后缀>" 形式的数量。

    Example:
        "1,500KG" → (Decimal("1500"), "KG")
        "100 PZ" → (Decimal("100"), "PZ")
        "25" → (Decimal("25"), "")
    """
    match = _QTY_WITH_UNIT.search(clean_text(text or ""))
    if not match:
        return ZERO, ""
    return parse_decimal(match.group(1)), match.group(2).upper()


def is_pound_unit(unit: str) -> bool:
    return "LB" in (unit or "").upper()


def is_weight_unit(unit: str) -> bool:
    """KG / LB 类单位记入千克字段，其余记入件数字段"""
    u = (unit or "").upper()
    return "KG" in u or "LB" in u


def convert_weight(quantity: Decimal, unit: str, lb_to_kg: Decimal = LB_TO_KG) -> Tuple[Decimal, str]:
    """磅换算为千克；其他单位原样返回"""
    if is_pound_unit(unit):
        return quantity * lb_to_kg, "KG"
    return quantity, unit


def normalize_quantity(text: str, lb_to_kg: Decimal = LB_TO_KG) -> Tuple[Decimal, str]:
    """
    数量标准化：拆分单位后把磅换算为千克。

    Example:
        "12KG" → (Decimal("12"), "KG")
        "10LB" → (Decimal("4.53592"), "KG")
    """
    quantity, unit = split_quantity_unit(text)
    return convert_weight(quantity, unit, lb_to_kg)


#
# ========== 行字段抽取 ==========
#

def pick_fragment(row: RowCluster, spec: ColumnSpec, band: Tuple[float, float]) -> Optional[PositionedFragment]:
    """
    在行内选取落在列水平带内、且符合内容形状的片段。

    pick="first": 行内按 x 的第一个
    pick="nearest": 纵向最接近关键片段的
    """
    candidates = [
        f for f in row.fragments
        if f is not row.key and within_band(f, band) and fits_shape(f.text, spec)
    ]
    if not candidates:
        return None
    if spec.pick == "nearest":
        return min(candidates, key=lambda f: abs(f.centroid_y - row.key.centroid_y))
    return candidates[0]


def find_unit_to_right(row: RowCluster, quantity_frag: PositionedFragment, window: float) -> str:
    """数量片段右侧窗口内紧邻的片段；仅当它是纯字母时作为单位"""
    neighbours = [
        f for f in row.fragments
        if f is not quantity_frag and quantity_frag.right < f.left < quantity_frag.right + window
    ]
    if not neighbours:
        return ""
    nearest = min(neighbours, key=lambda f: f.left)
    if is_alpha_token(nearest.text):
        return nearest.text.rstrip(".").upper()
    return ""


def extract_line_item(
    row: RowCluster,
    anchors: Dict[str, Optional[ColumnAnchor]],
    table: TableSpec,
    diagnostics: Optional[List[Diagnostic]] = None,
    source_file: str = "",
    page: int = 0,
    lb_to_kg: Decimal = LB_TO_KG
) -> Optional[LineItemRaw]:
    """
    从一行中抽取 LineItemRaw。

    Args:
        row: 行聚类结果
        anchors: 列锚点
        table: 表格定义
        diagnostics: 诊断事件列表（追加写入）
        source_file: 文件名（诊断用）
        page: 页码（诊断用）
        lb_to_kg: 磅→千克系数

    Returns:
        LineItemRaw；required_fields 中有字段未解析时返回 None（丢弃该行）
    """
    if diagnostics is None:
        diagnostics = []

    item = LineItemRaw()
    resolved = set()
    quantity_frag = None
    unit_from_column = ""

    for spec in table.columns:
        if spec.column == table.key_column:
            frag = row.key
        else:
            band = column_band(spec, anchors)
            if band is None:
                continue
            frag = pick_fragment(row, spec, band)
        if frag is None:
            continue

        text = frag.text.strip()
        if spec.column == PART:
            item.part = text
        elif spec.column == LINE_NUMBER:
            digits = re.search(r"\d+", text)
            if not digits:
                _parse_failure(diagnostics, source_file, page, spec.column, text)
                continue
            item.line_number = int(digits.group(0))
        elif spec.column in (UNIT_PRICE, AMOUNT):
            value = try_parse_decimal(text)
            if value is None:
                _parse_failure(diagnostics, source_file, page, spec.column, text)
                continue
            if spec.column == UNIT_PRICE:
                item.unit_price = value
            else:
                item.amount = value
        elif spec.column == QUANTITY:
            item.quantity, item.unit = split_quantity_unit(text)
            quantity_frag = frag
        elif spec.column == UNIT:
            unit_from_column = text.rstrip(".").upper()
        resolved.add(spec.column)

    if quantity_frag is not None and not item.unit:
        item.unit = unit_from_column or find_unit_to_right(row, quantity_frag, table.unit_window)
    item.quantity, item.unit = convert_weight(item.quantity, item.unit, lb_to_kg)

    missing = [f for f in table.required_fields if f not in resolved]
    if missing:
        logger.debug(f"[FIELDS] Row '{row.key.text}' dropped, missing {missing}")
        return None

    return item


def _parse_failure(diagnostics: List[Diagnostic], source_file: str, page: int, column: str, text: str) -> None:
    diagnostics.append(Diagnostic(
        PARSE_FAILURE,
        f"column '{column}' could not parse '{text}', left at default",
        source_file=source_file,
        page=page,
        severity=INFO,
    ))


#
# ========== 单页表格抽取 ==========
#

def extract_table_lines(
    layout: PageLayout,
    table: TableSpec,
    source_file: str = "",
    lb_to_kg: Decimal = LB_TO_KG
) -> Tuple[List[LineItemRaw], List[Diagnostic]]:
    """
    从单页抽取表格行。

    流程：
        1. 定位所有列表头（缺失的列只记录诊断，对应字段保持默认值）
        2. 关键列表头缺失 → 本页不输出任何行
        3. 行聚类 → 逐行抽取字段

    Returns:
        (lines, diagnostics)
    """
    diagnostics = []
    anchors = locate_columns(layout, table.columns)

    if anchors.get(table.key_column) is None:
        diagnostics.append(Diagnostic(
            MISSING_ANCHOR,
            f"key column '{table.key_column}' header not found, page skipped",
            source_file=source_file,
            page=layout.number,
            severity=INFO,
        ))
        return [], diagnostics

    for column, anchor in anchors.items():
        if anchor is None:
            diagnostics.append(Diagnostic(
                MISSING_ANCHOR,
                f"column '{column}' header not found, field left at default",
                source_file=source_file,
                page=layout.number,
                severity=WARNING,
            ))

    key_spec = table.column_spec(table.key_column)
    rows = cluster_rows(layout, key_spec, anchors, table.row_tolerance, table.footer_keywords)

    lines = []
    for row in rows:
        item = extract_line_item(row, anchors, table, diagnostics, source_file, layout.number, lb_to_kg)
        if item is not None:
            lines.append(item)
            logger.debug(
                f"[FIELDS] Page {layout.number}: {item.line_number} | {item.part} | "
                f"{item.quantity} {item.unit} | {item.unit_price} | {item.amount}"
            )

    logger.info(f"[FIELDS] Page {layout.number}: {len(lines)} line(s) from {len(rows)} row(s)")
    return lines, diagnostics
