"""
记录标准化模块

把目标行（及匹配到的参考行）组装为最终的 ReconciledLineItem。
数量按单位分流：KG/LB 记入千克字段，其余记入件数字段；发票侧与采购单侧分别处理。
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Dict, Optional

from .extractor import LineItemRaw, ZERO, is_weight_unit

SIDE_INVOICE = "invoice"
SIDE_PURCHASE_ORDER = "purchase_order"


@dataclass(frozen=True)
class DocumentContext:
    """单个源文件的页头信息，所有行共享"""
    po_number: str
    vendor_name: str
    invoice_number: str
    source_file_name: str
    incoterm: str = "N/A"
    reference: str = ""
    weight: str = ""
    guia: str = ""


@dataclass(frozen=True)
class ReconciledLineItem:
    """最终输出记录；生成后不可变，由报表写入"""
    po_number: str
    vendor_name: str
    invoice_number: str
    part_number: str
    line_number: int
    qty_po_pz: Decimal
    qty_inv_pz: Decimal
    qty_po_kg: Decimal
    qty_inv_kg: Decimal
    unit_price: Decimal
    total_price: Decimal
    source_file_name: str
    incoterm: str = "N/A"
    reference: str = ""
    weight: str = ""
    guia: str = ""
    matched_reference_line: Optional[int] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        for k, v in data.items():
            if isinstance(v, Decimal):
                data[k] = float(v)
        return data


def split_quantity_by_unit(quantity: Decimal, unit: str) -> Dict[str, Decimal]:
    """返回 {"pz": ..., "kg": ...}，只有一个非零"""
    if is_weight_unit(unit):
        return {"pz": ZERO, "kg": quantity}
    return {"pz": quantity, "kg": ZERO}


def build_record(
    context: DocumentContext,
    target: LineItemRaw,
    reference: Optional[LineItemRaw] = None,
    reference_index: Optional[int] = None,
    target_side: str = SIDE_INVOICE,
    mirror_unmatched_quantity: bool = False
) -> ReconciledLineItem:
    """
    组装一条对账记录。

    Args:
        context: 页头信息
        target: 目标行（发票驱动时为发票行，采购单驱动时为采购单行）
        reference: 匹配到的参考行（采购单行），可为 None
        reference_index: 参考行在参考集合中的位置
        target_side: 目标行属于哪一侧
        mirror_unmatched_quantity: 未匹配时采购单侧数量取发票侧数量（估算）

    Returns:
        ReconciledLineItem
    """
    target_qty = split_quantity_by_unit(target.quantity, target.unit)

    if target_side == SIDE_PURCHASE_ORDER:
        po_qty = target_qty
        inv_qty = {"pz": ZERO, "kg": ZERO}
    else:
        inv_qty = target_qty
        if reference is not None:
            po_qty = split_quantity_by_unit(reference.quantity, reference.unit)
        elif mirror_unmatched_quantity:
            po_qty = dict(target_qty)
        else:
            po_qty = {"pz": ZERO, "kg": ZERO}

    line_number = target.line_number
    if not line_number and reference is not None:
        line_number = reference.line_number

    return ReconciledLineItem(
        po_number=context.po_number,
        vendor_name=context.vendor_name,
        invoice_number=context.invoice_number,
        part_number=target.part,
        line_number=line_number,
        qty_po_pz=po_qty["pz"],
        qty_inv_pz=inv_qty["pz"],
        qty_po_kg=po_qty["kg"],
        qty_inv_kg=inv_qty["kg"],
        unit_price=target.unit_price,
        total_price=target.amount,
        source_file_name=context.source_file_name,
        incoterm=context.incoterm,
        reference=context.reference,
        weight=context.weight,
        guia=context.guia,
        matched_reference_line=reference_index if reference is not None else None,
    )
