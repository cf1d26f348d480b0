"""
主记录（报表）存储模块

主记录是一个 .xlsx 工作簿（第一张工作表，第 1 行为表头，数据从第 2 行开始）：
- 读取：pandas 读取来源文件列（R 列），得到已处理文件名集合
- 写入：openpyxl 在所有映射列中最后一个有内容的行之后追加，
  并复制上一行 A..Q 的单元格样式，不改动已有行

文件被其他进程独占打开时抛 ReportLockedError，其余 I/O 失败抛 ReportStoreError。
"""

import logging
from copy import copy
from pathlib import Path
from typing import Dict, Iterable, Set
from zipfile import BadZipFile

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils import column_index_from_string
from openpyxl.utils.exceptions import InvalidFileException

from .records import ReconciledLineItem
from .diagnostics import ReportLockedError, ReportStoreError

logger = logging.getLogger("doc_reconciler")

# 记录字段 → 工作表列
DEFAULT_COLUMNS: Dict[str, str] = {
    "line_number": "A",
    "vendor_name": "B",
    "part_number": "C",
    "qty_inv_pz": "D",
    "qty_inv_kg": "E",
    "qty_po_pz": "F",
    "invoice_number": "G",
    "qty_po_kg": "H",
    "unit_price": "I",
    "po_number": "J",
    "total_price": "K",
    "incoterm": "L",
    "reference": "M",
    "weight": "N",
    "guia": "O",
    "source_file_name": "R",
}

HISTORY_COLUMN = "R"
STYLE_SPAN = 17  # A..Q
FIRST_DATA_ROW = 2


def is_file_locked(path: str) -> bool:
    """
    判断工作簿是否被其他进程打开

    - Windows 下 Excel 独占打开时以 r+b 打开会 PermissionError
    - 同目录存在 Excel 的所有者文件 "~$<文件名>" 也视为已打开
    """
    p = Path(path)
    if not p.exists():
        return False
    if (p.parent / f"~${p.name}").exists():
        return True
    try:
        with open(p, "r+b"):
            pass
        return False
    except PermissionError:
        return True


def list_known_source_files(master_path: str, column: str = HISTORY_COLUMN) -> Set[str]:
    """
    读取主记录中已处理的来源文件名

    参数:
        master_path: 主记录工作簿路径
        column: 来源文件名所在列（字母）

    返回:
        文件名集合（原样保留大小写，比较时由调用方统一大小写）

    异常:
        ReportStoreError: 文件不存在或无法读取
    """
    if not Path(master_path).is_file():
        raise ReportStoreError(f"Master log not found: {master_path}", path=master_path)

    try:
        df = pd.read_excel(master_path, sheet_name=0, header=None, dtype=str)
    except PermissionError as e:
        raise ReportLockedError(f"Master log is locked: {master_path}", path=master_path) from e
    except (OSError, ValueError, BadZipFile) as e:
        raise ReportStoreError(f"Cannot read master log {master_path}: {e}", path=master_path) from e

    idx = column_index_from_string(column) - 1
    if df.shape[1] <= idx:
        return set()

    values = df.iloc[FIRST_DATA_ROW - 1:, idx].dropna()
    known = {str(v).strip() for v in values if str(v).strip()}
    logger.info(f"[REPORT] {len(known)} known source file(s) in {Path(master_path).name}")
    return known


def _next_free_row(ws, columns: Iterable[str]) -> int:
    """映射列中最后一个非空单元格的下一行（至少为第 2 行）"""
    indexes = sorted({column_index_from_string(c) for c in columns})
    for row in range(ws.max_row, FIRST_DATA_ROW - 1, -1):
        for col in indexes:
            value = ws.cell(row=row, column=col).value
            if value is not None and str(value).strip() != "":
                return row + 1
    return FIRST_DATA_ROW


def _copy_row_style(ws, source_row: int, target_row: int, span: int) -> None:
    for col in range(1, span + 1):
        src = ws.cell(row=source_row, column=col)
        if src.has_style:
            ws.cell(row=target_row, column=col)._style = copy(src._style)


def append_records(
    records: Iterable[ReconciledLineItem],
    master_path: str,
    columns: Dict[str, str] = None,
    style_span: int = STYLE_SPAN
) -> int:
    """
    把记录追加到主记录工作簿

    参数:
        records: 对账记录
        master_path: 主记录工作簿路径
        columns: 字段 → 列字母映射（默认 DEFAULT_COLUMNS）
        style_span: 从上一行复制样式的列数

    返回:
        写入的行数

    异常:
        ReportLockedError: 文件被其他进程打开，本次未写入任何内容
        ReportStoreError: 其他读写失败
    """
    records = list(records)
    if not records:
        return 0
    if columns is None:
        columns = DEFAULT_COLUMNS

    if is_file_locked(master_path):
        raise ReportLockedError(f"Master log is open in another program: {master_path}", path=master_path)

    try:
        wb = load_workbook(master_path)
    except PermissionError as e:
        raise ReportLockedError(f"Master log is locked: {master_path}", path=master_path) from e
    except (OSError, InvalidFileException, BadZipFile, KeyError) as e:
        raise ReportStoreError(f"Cannot open master log {master_path}: {e}", path=master_path) from e

    ws = wb.worksheets[0]
    row = _next_free_row(ws, columns.values())
    first_row = row

    for record in records:
        if row - 1 >= FIRST_DATA_ROW:
            _copy_row_style(ws, row - 1, row, style_span)
        data = record.to_dict()
        for field_name, col in columns.items():
            value = data.get(field_name)
            if value is None:
                continue
            ws[f"{col}{row}"] = value
        row += 1

    try:
        wb.save(master_path)
    except PermissionError as e:
        raise ReportLockedError(f"Master log is locked: {master_path}", path=master_path) from e
    except OSError as e:
        raise ReportStoreError(f"Cannot save master log {master_path}: {e}", path=master_path) from e

    logger.info(f"[REPORT] Appended {len(records)} row(s) at rows {first_row}-{row - 1} of {Path(master_path).name}")
    return len(records)
