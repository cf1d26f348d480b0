"""
跨单据匹配模块
把发票（目标）行与采购单（参考）行按零件号双向包含进行配对
"""
import logging
from typing import List, Optional, Sequence, Tuple

from .extractor import LineItemRaw

logger = logging.getLogger("doc_reconciler")


class LineMatch:
    """一条目标行及其匹配到的参考行（可能没有）"""
    def __init__(
        self,
        target: LineItemRaw,
        reference: Optional[LineItemRaw] = None,
        reference_index: Optional[int] = None
    ):
        self.target = target
        self.reference = reference
        self.reference_index = reference_index

    @property
    def matched(self) -> bool:
        return self.reference is not None

    def __repr__(self):
        ref = self.reference.part if self.reference else None
        return f"LineMatch(target={self.target.part!r}, reference={ref!r}, index={self.reference_index})"


def parts_match(reference_part: str, target_part: str) -> bool:
    """
    零件号双向包含判断。

    空零件号视为未解析，不与任何行匹配。

    Example:
        parts_match("ABC-123", "ABC-123-X") → True
        parts_match("ABC-123-X", "ABC-123") → True
        parts_match("ABC-123", "XYZ-999") → False
    """
    ref = (reference_part or "").strip()
    tgt = (target_part or "").strip()
    if not ref or not tgt:
        return False
    return ref in tgt or tgt in ref


def find_reference_line(
    target: LineItemRaw,
    references: Sequence[LineItemRaw]
) -> Tuple[Optional[int], Optional[LineItemRaw]]:
    """
    按原顺序扫描参考行，返回第一条匹配的 (索引, 行)。

    贪心首个匹配：不做全局最优分配，同一参考行可以匹配多条目标行。
    """
    for idx, ref in enumerate(references):
        if parts_match(ref.part, target.part):
            return idx, ref
    return None, None


def match_line_items(
    targets: Sequence[LineItemRaw],
    references: Sequence[LineItemRaw]
) -> List[LineMatch]:
    """
    逐条目标行匹配参考行

    参数:
        targets: 目标行（发票）
        references: 参考行（采购单）

    返回:
        与 targets 一一对应的 LineMatch 列表
    """
    results = []
    unmatched = 0
    for target in targets:
        idx, ref = find_reference_line(target, references)
        if ref is None:
            unmatched += 1
            logger.debug(f"[MATCH] Part '{target.part}' has no reference line")
        else:
            logger.debug(f"[MATCH] Part '{target.part}' -> reference #{idx} '{ref.part}'")
        results.append(LineMatch(target, ref, idx))

    logger.info(f"[MATCH] {len(targets) - unmatched}/{len(targets)} line(s) matched against {len(references)} reference line(s)")
    return results
