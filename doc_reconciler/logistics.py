"""
物流信息补充模块
根据装箱单（Packing List）文件名，从 "Email Info.xlsx" 中读取 Reference / Weight / Guia
"""
import re
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from .reader import PageLayout, read_page_layouts
from .preprocessor import contains_keyword
from .templates import LogisticsRule

logger = logging.getLogger("doc_reconciler")

LOGISTICS_COLUMNS = {
    "REFERENCE": "reference",
    "WEIGHT": "weight",
    "GUIA": "guia",
}


def extract_customer_items(pages: List[PageLayout], label: str = "CUST", depth: float = 40.0) -> List[str]:
    """
    从装箱单中提取客户料号

    参数:
        pages: 装箱单页面
        label: 客户料号标签关键字
        depth: 标签下方的搜索深度

    返回:
        去重后的料号列表（标签下方片段拼接，只保留字母数字，长度 >= 6 且形如字母+数字）
    """
    found = []
    for page in pages:
        for cust in [f for f in page.fragments if contains_keyword(f.text, label)]:
            base_y = cust.centroid_y
            below = [
                f for f in page.fragments
                if base_y + 3 < f.centroid_y < base_y + depth
                and f.left >= cust.left - 5
            ]
            if not below:
                continue

            below.sort(key=lambda f: (f.centroid_y, f.left))
            combined = re.sub(r"[^A-Z0-9]", "", "".join(f.text for f in below).upper())

            if len(combined) >= 6 and re.search(r"[A-Z]+\d+", combined) and combined not in found:
                logger.debug(f"[LOGISTICS] Customer item found on page {page.number}: {combined}")
                found.append(combined)
    return found


def find_packing_list(
    invoice_path: str,
    rule: LogisticsRule,
    loader: Callable[[str], List[PageLayout]] = read_page_layouts
) -> Optional[str]:
    """
    在同级的装箱单文件夹中查找第一个含客户料号的 PDF

    返回:
        装箱单路径，未找到返回 None
    """
    folder = Path(invoice_path).parent.parent / rule.packing_folder
    if not folder.is_dir():
        logger.debug(f"[LOGISTICS] Packing list folder not found: {folder}")
        return None

    for pdf in sorted(folder.glob("*.pdf")):
        try:
            items = extract_customer_items(loader(str(pdf)), rule.customer_label, rule.search_depth)
        except Exception as e:
            logger.warning(f"[LOGISTICS] Cannot read packing list {pdf.name}: {e}")
            continue
        if items:
            logger.info(f"[LOGISTICS] Packing list: {pdf.name} ({', '.join(items)})")
            return str(pdf)
    return None


def lookup_logistics(workbook_path: str, packing_list_name: str) -> Dict[str, str]:
    """
    在 Email Info 工作簿中按 PDF 列查找装箱单文件名

    参数:
        workbook_path: Email Info.xlsx 路径
        packing_list_name: 装箱单文件名（不区分大小写比较）

    返回:
        {"reference": ..., "weight": ..., "guia": ...}，未找到的列为空字符串
    """
    info = {v: "" for v in LOGISTICS_COLUMNS.values()}

    df = pd.read_excel(workbook_path, dtype=str)
    columns = {str(c).strip().upper(): c for c in df.columns}
    if "PDF" not in columns:
        logger.warning(f"[LOGISTICS] Column 'PDF' not found in {workbook_path}. Columns: {df.columns.tolist()}")
        return info

    target = packing_list_name.strip().lower()
    for _, row in df.iterrows():
        cell = row[columns["PDF"]]
        if pd.isna(cell) or str(cell).strip().lower() != target:
            continue
        for header, key in LOGISTICS_COLUMNS.items():
            if header in columns:
                value = row[columns[header]]
                info[key] = "" if pd.isna(value) else str(value).strip()
        break

    return info


def resolve_logistics(
    invoice_path: str,
    rule: LogisticsRule,
    loader: Callable[[str], List[PageLayout]] = read_page_layouts
) -> Dict[str, str]:
    """
    装箱单 → Email Info 物流信息；任何失败都返回空值，不影响主流程
    """
    empty = {v: "" for v in LOGISTICS_COLUMNS.values()}

    packing_list = find_packing_list(invoice_path, rule, loader)
    if not packing_list:
        return empty

    workbook = Path(invoice_path).parent.parent.parent / rule.workbook_name
    if not workbook.is_file():
        logger.debug(f"[LOGISTICS] Workbook not found: {workbook}")
        return empty

    try:
        return lookup_logistics(str(workbook), Path(packing_list).name)
    except Exception as e:
        logger.warning(f"[LOGISTICS] Failed to read {workbook}: {e}")
        return empty
