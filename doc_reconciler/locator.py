"""
表头定位模块

职责：
- 按关键字（+ 同基线的辅助关键字）定位列表头锚点
- 在锚点附近窗口内读取页头字段（订单号、发票号）
- 锚点缺失不是错误：返回 None，由下游按默认值处理

"第一个满足条件的片段"按阅读顺序（行优先，再按 x）确定，与输入片段顺序无关。
"""

import re
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple, Union

from .reader import BoundingBox, PageLayout, PositionedFragment
from .preprocessor import (
    contains_any,
    contains_keyword,
    equals_label,
    has_digit,
    in_reading_order,
    is_alpha_token,
)
from .templates import ColumnSpec, HeaderFieldRule

logger = logging.getLogger("doc_reconciler")


@dataclass(frozen=True)
class ColumnAnchor:
    """已定位的列表头"""
    column: str
    label: Union[str, Tuple[str, ...]]
    text: str
    bbox: BoundingBox

    @property
    def left(self) -> float:
        return self.bbox.left

    @property
    def right(self) -> float:
        return self.bbox.right

    @property
    def top(self) -> float:
        return self.bbox.top

    @property
    def bottom(self) -> float:
        return self.bbox.bottom


def label_matches(text: str, label: Union[str, Sequence[str]], exact: bool = False) -> bool:
    """label 为关键字组时命中任一即可"""
    labels = (label,) if isinstance(label, str) else label
    if exact:
        return any(equals_label(text, l) for l in labels)
    return any(contains_keyword(text, l) for l in labels)


def find_anchor(
    fragments: Sequence[PositionedFragment],
    label: Union[str, Sequence[str]],
    co_anchor: Optional[str] = None,
    max_offset: float = 10.0,
    exact: bool = False
) -> Optional[PositionedFragment]:
    """
    查找表头锚点片段。

    规则：
        - 片段文本包含 label（不区分大小写；exact=True 时要求相等）；label 为关键字组时命中任一即可
        - 若指定 co_anchor：需另有一个片段包含 co_anchor，且两者 bottom 之差 < max_offset
        - 按阅读顺序取第一个满足条件的片段，不做评分

    Args:
        fragments: 页面片段
        label: 表头关键字，如 "Quantity"，或关键字组，如 ("Cant", "Qty")
        co_anchor: 辅助关键字，如 "#"、"Number"
        max_offset: bottom 允许差值
        exact: 是否要求精确匹配

    Returns:
        锚点片段，未找到返回 None
    """
    ordered = in_reading_order(fragments)
    co_candidates = []
    if co_anchor:
        co_candidates = [f for f in ordered if contains_keyword(f.text, co_anchor)]

    for frag in ordered:
        if not label_matches(frag.text, label, exact):
            continue
        if co_anchor:
            paired = any(
                other is not frag and abs(other.bottom - frag.bottom) < max_offset
                for other in co_candidates
            )
            if not paired:
                continue
        return frag
    return None


def locate_columns(layout: PageLayout, columns: Sequence[ColumnSpec]) -> Dict[str, Optional[ColumnAnchor]]:
    """
    定位所有列表头。

    Returns:
        {column: ColumnAnchor 或 None}
    """
    anchors = {}
    for spec in columns:
        frag = find_anchor(layout.fragments, spec.label, spec.co_anchor, spec.max_offset, spec.exact)
        if frag is None:
            anchors[spec.column] = None
            logger.debug(f"[HEADER] Page {layout.number}: column '{spec.column}' (label '{spec.label}') not found")
            continue
        anchors[spec.column] = ColumnAnchor(
            column=spec.column,
            label=spec.label,
            text=frag.text,
            bbox=frag.bbox,
        )
        logger.debug(
            f"[HEADER] Page {layout.number}: column '{spec.column}' -> '{frag.text}' "
            f"x=[{frag.left:.2f}, {frag.right:.2f}] bottom={frag.bottom:.2f}"
        )
    return anchors


def find_value_near_anchor(
    fragments: Sequence[PositionedFragment],
    anchor: PositionedFragment,
    rule: HeaderFieldRule
) -> Optional[str]:
    """
    在锚点下方窗口内查找值片段。

    窗口：
        top ∈ [anchor.bottom + below_min, anchor.bottom + below_max]
        left >= anchor.left - left_margin
        right <= anchor.right + right_margin（right_margin 为 None 时不限制）
    """
    top_min = anchor.bottom + rule.below_min
    top_max = anchor.bottom + rule.below_max
    left_min = anchor.left - rule.left_margin
    right_max = anchor.right + rule.right_margin if rule.right_margin is not None else float("inf")

    candidates = [
        f for f in in_reading_order(fragments)
        if f is not anchor
        and top_min <= f.top <= top_max
        and f.left >= left_min
        and f.right <= right_max
        and re.search(rule.value_pattern, f.text)
    ]
    if not candidates:
        return None

    if rule.join:
        return " ".join(f.text for f in sorted(candidates, key=lambda f: f.left))
    return candidates[0].text


def _search_regexes(text: str, regexes: Sequence[str]) -> Optional[str]:
    for pattern in regexes:
        match = re.search(pattern, text or "", re.IGNORECASE)
        if match:
            value = (match.group(1) if match.groups() else match.group(0)).strip()
            if value:
                return value
    return None


def read_header_field(layout: PageLayout, rule: HeaderFieldRule) -> Optional[str]:
    """
    读取页头字段（订单号/发票号）。

    顺序：锚点窗口 → 页面文本正则 → 页面注释正则

    Returns:
        字段值，未找到返回 None
    """
    if rule.label:
        anchor = find_anchor(layout.fragments, rule.label, rule.co_anchor, rule.max_offset)
        if anchor is not None:
            value = find_value_near_anchor(layout.fragments, anchor, rule)
            if value:
                logger.debug(f"[HEADER] Field via anchor '{anchor.text}': {value}")
                return value

    value = _search_regexes(layout.text, rule.regexes)
    if value:
        logger.debug(f"[HEADER] Field via page text regex: {value}")
        return value

    for note in layout.annotations:
        value = _search_regexes(note, rule.regexes)
        if value:
            logger.debug(f"[HEADER] Field via annotation: {value}")
            return value

    return None


#
# ========== 列水平带 ==========
#

def column_band(spec: ColumnSpec, anchors: Dict[str, Optional[ColumnAnchor]]) -> Optional[Tuple[float, float]]:
    """
    计算列的水平带 [left, right]。

    Returns:
        (left, right)，该列锚点缺失时返回 None
    """
    anchor = anchors.get(spec.column)
    if anchor is None:
        return None

    start = anchor.left if spec.band_start == "left" else anchor.right
    left = start - spec.left_margin
    right = anchor.right + spec.right_margin if spec.right_margin is not None else float("inf")

    if spec.stop_column:
        stop = anchors.get(spec.stop_column)
        if stop is not None:
            right = min(right, stop.left - spec.stop_margin)

    return left, right


def fits_shape(text: str, spec: ColumnSpec) -> bool:
    """
    判断片段文本是否符合列的内容形状。

    shape:
        any     任意文本
        numeric 包含数字
        integer 纯数字
        alpha   纯字母
    另外 pattern（区分大小写的 re.search）、exclude（不区分大小写的包含）、min_length 同时生效。
    """
    text = (text or "").strip()
    if len(text) < spec.min_length:
        return False
    if spec.shape == "numeric" and not has_digit(text):
        return False
    if spec.shape == "integer" and not text.isdigit():
        return False
    if spec.shape == "alpha" and not is_alpha_token(text):
        return False
    if spec.pattern and not re.search(spec.pattern, text):
        return False
    if spec.exclude and contains_any(text, spec.exclude):
        return False
    return True


def within_band(frag: PositionedFragment, band: Tuple[float, float]) -> bool:
    left, right = band
    return frag.left >= left and frag.right <= right
