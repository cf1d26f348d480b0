"""
行聚类模块

职责：
- 确定表格的纵向范围（表头 bottom 以下；若检测到表尾关键字，则在表尾 top 以上）
- 在关键列水平带内选出关键片段（每个关键片段代表一行）
- 以关键片段的 centroid_y 为中心，把纵向容差内的所有片段聚成一行

不做冲突合并：容差过大会把相邻行混在一起，过小会把一行拆开；行与行之间可能重叠。
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .reader import PageLayout, PositionedFragment
from .preprocessor import contains_any, in_reading_order
from .locator import ColumnAnchor, column_band, fits_shape, within_band
from .templates import ColumnSpec

logger = logging.getLogger("doc_reconciler")


@dataclass(frozen=True)
class RowCluster:
    """一行：关键片段 + 容差内的全部片段（含关键片段本身，按 x 排序）"""
    key: PositionedFragment
    fragments: Tuple[PositionedFragment, ...]

    @property
    def centroid_y(self) -> float:
        return self.key.centroid_y


def find_table_extent(
    layout: PageLayout,
    header: ColumnAnchor,
    footer_keywords: Sequence[str] = ()
) -> Tuple[float, float]:
    """
    计算表格纵向范围 (top, bottom)。

    top: 表头锚点的 bottom
    bottom: 表头下方第一个包含表尾关键字的片段的 top；没有则为 +inf

    Args:
        layout: 页面版面
        header: 关键列锚点
        footer_keywords: 表尾关键字，如 ["Total", "Subtotal"]

    Returns:
        (top_y, bottom_y)
    """
    top_y = header.bottom
    bottom_y = float("inf")

    if footer_keywords:
        for frag in in_reading_order(layout.fragments):
            if frag.top > top_y and contains_any(frag.text, footer_keywords):
                bottom_y = frag.top
                logger.debug(f"[ROWS] Page {layout.number}: footer '{frag.text}' at y={frag.top:.2f}")
                break

    return top_y, bottom_y


def select_key_fragments(
    layout: PageLayout,
    key_spec: ColumnSpec,
    anchors: Dict[str, Optional[ColumnAnchor]],
    extent: Tuple[float, float]
) -> List[PositionedFragment]:
    """
    选出关键片段：位于关键列水平带内、表格纵向范围内、且符合关键列内容形状。

    Returns:
        关键片段列表（阅读顺序）
    """
    band = column_band(key_spec, anchors)
    if band is None:
        return []

    top_y, bottom_y = extent
    return [
        frag for frag in in_reading_order(layout.fragments)
        if frag.top > top_y
        and frag.bottom <= bottom_y
        and within_band(frag, band)
        and fits_shape(frag.text, key_spec)
    ]


def cluster_rows(
    layout: PageLayout,
    key_spec: ColumnSpec,
    anchors: Dict[str, Optional[ColumnAnchor]],
    tolerance: float,
    footer_keywords: Sequence[str] = ()
) -> List[RowCluster]:
    """
    把页面片段按关键片段聚成行。

    Args:
        layout: 页面版面
        key_spec: 关键列定义
        anchors: locate_columns 的结果
        tolerance: 纵向容差，|centroid_y(片段) - centroid_y(关键片段)| < tolerance 即归入该行
        footer_keywords: 表尾关键字

    Returns:
        [RowCluster, ...]；关键列锚点缺失时返回空列表
    """
    header = anchors.get(key_spec.column)
    if header is None:
        return []

    extent = find_table_extent(layout, header, footer_keywords)
    keys = select_key_fragments(layout, key_spec, anchors, extent)

    rows = []
    for key in keys:
        members = [
            frag for frag in layout.fragments
            if abs(frag.centroid_y - key.centroid_y) < tolerance
        ]
        members.sort(key=lambda f: (f.left, f.top, f.text))
        rows.append(RowCluster(key=key, fragments=tuple(members)))

    logger.debug(
        f"[ROWS] Page {layout.number}: {len(rows)} row(s) on key column '{key_spec.column}' "
        f"(tolerance={tolerance}, extent=[{extent[0]:.2f}, {extent[1]:.2f}])"
    )
    return rows
