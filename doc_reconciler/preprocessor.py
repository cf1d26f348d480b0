"""
文本预处理模块

职责：
- 文本清理（全角符号、空白标准化）
- 关键字匹配（不区分大小写的包含判断）
- 片段的阅读顺序排序
- 不包含业务逻辑，只做通用文本处理
"""

import re
from typing import Iterable, List, Sequence

from .reader import PositionedFragment

# 同一行判定时 top 的取整粒度
READING_ORDER_ROW_STEP = 2.0


def clean_text(text: str) -> str:
    """
    清理文本。

    处理：
        1. 全角冒号、井号、括号替换为半角
        2. 不换行空格替换为普通空格
        3. 去掉首尾空白

    Args:
        text: 原始文本

    Returns:
        清理后的文本

    Example:
        "Invoice＃ " → "Invoice#"
    """
    if not text:
        return ""
    text = text.replace("：", ":").replace("＃", "#")
    text = text.replace("（", "(").replace("）", ")")
    text = text.replace("\u00a0", " ")
    return text.strip()


def contains_keyword(text: str, keyword: str) -> bool:
    """不区分大小写的包含判断"""
    if not keyword:
        return False
    return keyword.upper() in clean_text(text).upper()


def equals_label(text: str, label: str) -> bool:
    """
    精确标签比较（不区分大小写，忽略尾部的点号和冒号）。

    Example:
        equals_label("QTY.", "Qty") → True
        equals_label("Quantity", "Qty") → False
    """
    return clean_text(text).rstrip(".:").upper() == label.upper()


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(contains_keyword(text, k) for k in keywords)


def reading_order_key(frag: PositionedFragment):
    """
    阅读顺序：先按行（top 取整）再按 x。

    用于让"第一个满足条件的片段"与输入顺序无关。
    """
    return (round(frag.top / READING_ORDER_ROW_STEP), frag.left, frag.text)


def in_reading_order(fragments: Sequence[PositionedFragment]) -> List[PositionedFragment]:
    return sorted(fragments, key=reading_order_key)


def has_digit(text: str) -> bool:
    return bool(re.search(r"\d", text or ""))


def is_alpha_token(text: str) -> bool:
    """纯字母（允许尾部点号），如 "PZ"、"LBS."、"Kg" """
    return bool(re.fullmatch(r"[A-Za-z]+\.?", (text or "").strip()))
