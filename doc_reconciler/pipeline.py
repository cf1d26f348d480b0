"""
单据抽取流程

数据流（单个源文件）：
    reader → 页头字段（订单号/发票号/供应商名）→ 表格抽取（每页）
           → 对应单据查找（同级文件夹）→ 跨单据匹配 → 记录标准化

两种方向：
    发票驱动：目标 = 发票行，参考 = 对应采购单的行
    采购单驱动：目标 = 采购单行，只从对应发票读取发票号
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .reader import PageLayout, read_page_layouts
from .preprocessor import contains_keyword
from .locator import read_header_field
from .extractor import LineItemRaw, extract_table_lines
from .matcher import match_line_items
from .records import (
    DocumentContext,
    ReconciledLineItem,
    SIDE_PURCHASE_ORDER,
    build_record,
)
from .logistics import resolve_logistics
from .templates import CounterpartRule, TableSpec, VendorNameRule, VendorTemplate
from .diagnostics import (
    Diagnostic,
    CROSS_REFERENCE_NOT_FOUND,
    INFO,
    WARNING,
)

logger = logging.getLogger("doc_reconciler")

UNKNOWN = "UNKNOWN"
PO_MISSING = "PO MISSING"
NO_COUNTERPART_FOLDER = "NO COUNTERPART FOLDER"
NOT_FOUND = "NOT FOUND"

PageLoader = Callable[[str], List[PageLayout]]


@dataclass
class ExtractionResult:
    records: List[ReconciledLineItem] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


def resolve_vendor_name(layout: PageLayout, rule: VendorNameRule) -> str:
    """
    供应商名称：关键字命中页面文本（或片段）→ 标准名称，否则使用 fallback
    """
    text = layout.text or " ".join(f.text for f in layout.fragments)
    for keyword, name in rule.keywords:
        if contains_keyword(text, keyword):
            return name
    return rule.fallback


def extract_document_lines(
    pages: List[PageLayout],
    table: TableSpec,
    source_file: str = "",
    lb_to_kg: Decimal = Decimal("0.453592")
) -> Tuple[List[LineItemRaw], List[Diagnostic]]:
    """逐页抽取表格行并拼接"""
    lines = []
    diagnostics = []
    for layout in pages:
        page_lines, page_diags = extract_table_lines(layout, table, source_file, lb_to_kg)
        lines.extend(page_lines)
        diagnostics.extend(page_diags)
    return lines, diagnostics


#
# ========== 对应单据查找 ==========
#

def counterpart_folder(document_path: str, rule: CounterpartRule) -> Path:
    """<root>/<vendor>/<当前类型文件夹>/x.pdf → <root>/<vendor>/<对应类型文件夹>"""
    return Path(document_path).parent.parent / rule.folder


def find_counterpart_by_filename(document_path: str, rule: CounterpartRule, order_number: str) -> Optional[str]:
    """在对应文件夹中 glob *<订单号>*.pdf，按文件名排序取第一个"""
    folder = counterpart_folder(document_path, rule)
    if not folder.is_dir():
        return None
    files = sorted(folder.glob(f"*{order_number}*.pdf"))
    return str(files[0]) if files else None


def find_counterpart_by_text(
    document_path: str,
    rule: CounterpartRule,
    order_number: str,
    loader: PageLoader = read_page_layouts
) -> Tuple[Optional[str], Optional[PageLayout]]:
    """
    在对应文件夹中查找首页文本包含订单号的 PDF。

    Returns:
        (路径, 首页版面)，未找到返回 (None, None)
    """
    folder = counterpart_folder(document_path, rule)
    if not folder.is_dir():
        return None, None

    for pdf in sorted(folder.glob("*.pdf")):
        try:
            pages = loader(str(pdf))
        except Exception as e:
            logger.warning(f"[COUNTERPART] Cannot read {pdf.name}: {e}")
            continue
        if pages and order_number in pages[0].text:
            return str(pdf), pages[0]
    return None, None


def lookup_invoice_number(
    document_path: str,
    template: VendorTemplate,
    order_number: str,
    loader: PageLoader = read_page_layouts
) -> str:
    """
    采购单驱动：在发票文件夹中找到对应发票并读取发票号。

    Returns:
        发票号，或状态标签 PO MISSING / NO COUNTERPART FOLDER / NOT FOUND / UNKNOWN
    """
    rule = template.counterpart
    if order_number == UNKNOWN:
        return PO_MISSING
    if rule is None:
        return NOT_FOUND
    if not counterpart_folder(document_path, rule).is_dir():
        return NO_COUNTERPART_FOLDER

    if rule.match == "text":
        path, first_page = find_counterpart_by_text(document_path, rule, order_number, loader)
    else:
        path = find_counterpart_by_filename(document_path, rule, order_number)
        first_page = None
        if path:
            try:
                pages = loader(path)
            except Exception as e:
                logger.warning(f"[COUNTERPART] Cannot read {Path(path).name}: {e}")
                pages = []
            first_page = pages[0] if pages else None

    if path is None or first_page is None:
        return NOT_FOUND

    logger.info(f"[COUNTERPART] Invoice for order {order_number}: {Path(path).name}")
    return read_header_field(first_page, template.invoice_number) or UNKNOWN


def load_reference_lines(
    document_path: str,
    template: VendorTemplate,
    order_number: str,
    loader: PageLoader = read_page_layouts
) -> Tuple[List[LineItemRaw], List[Diagnostic]]:
    """
    发票驱动：找到对应采购单并抽取参考行。

    找不到时返回空列表 + CrossReferenceNotFound 诊断，流程继续只用发票数据。
    """
    source_file = Path(document_path).name
    rule = template.counterpart
    if rule is None or rule.table is None:
        return [], []

    if order_number == UNKNOWN:
        return [], [Diagnostic(
            CROSS_REFERENCE_NOT_FOUND, "order number not found, no reference document",
            source_file=source_file, severity=WARNING,
        )]

    if rule.match == "text":
        path, _ = find_counterpart_by_text(document_path, rule, order_number, loader)
    else:
        path = find_counterpart_by_filename(document_path, rule, order_number)

    if path is None:
        return [], [Diagnostic(
            CROSS_REFERENCE_NOT_FOUND,
            f"no document for order {order_number} in '{rule.folder}'",
            source_file=source_file, severity=WARNING,
        )]

    try:
        pages = loader(path)
    except Exception as e:
        return [], [Diagnostic(
            CROSS_REFERENCE_NOT_FOUND, f"cannot read {Path(path).name}: {e}",
            source_file=source_file, severity=WARNING,
        )]

    logger.info(f"[COUNTERPART] Reference document for order {order_number}: {Path(path).name}")
    return extract_document_lines(pages, rule.table, Path(path).name, Decimal(str(template.lb_to_kg)))


#
# ========== 单个源文件 ==========
#

def extract_document(
    pdf_path: str,
    template: VendorTemplate,
    loader: PageLoader = read_page_layouts
) -> ExtractionResult:
    """
    抽取单个源文件并生成对账记录。

    Args:
        pdf_path: 源文件路径（发票或采购单，取决于模板）
        template: 供应商模板
        loader: 定位文本来源（默认 PyMuPDF）

    Returns:
        ExtractionResult(records, diagnostics)

    Raises:
        源文件本身无法读取时的异常原样上抛，由批处理按单文件失败处理
    """
    file_name = Path(pdf_path).name
    result = ExtractionResult()

    pages = loader(pdf_path)
    if not pages:
        result.diagnostics.append(Diagnostic(
            CROSS_REFERENCE_NOT_FOUND, "document has no pages", source_file=file_name, severity=WARNING,
        ))
        return result

    first = pages[0]
    lb_to_kg = Decimal(str(template.lb_to_kg))
    order_number = read_header_field(first, template.order_number) or UNKNOWN
    vendor_name = resolve_vendor_name(first, template.vendor_name)

    lines, diags = extract_document_lines(pages, template.table, file_name, lb_to_kg)
    result.diagnostics.extend(diags)

    if template.is_invoice_driven:
        invoice_number = read_header_field(first, template.invoice_number) or UNKNOWN
        references, ref_diags = load_reference_lines(pdf_path, template, order_number, loader)
        result.diagnostics.extend(ref_diags)

        logistics = {}
        if template.logistics is not None and order_number != UNKNOWN:
            logistics = resolve_logistics(pdf_path, template.logistics, loader)

        context = DocumentContext(
            po_number=order_number,
            vendor_name=vendor_name,
            invoice_number=invoice_number,
            source_file_name=file_name,
            incoterm=template.incoterm,
            reference=logistics.get("reference", ""),
            weight=logistics.get("weight", ""),
            guia=logistics.get("guia", ""),
        )
        for match in match_line_items(lines, references):
            result.records.append(build_record(
                context,
                match.target,
                match.reference,
                match.reference_index,
                mirror_unmatched_quantity=template.mirror_unmatched_quantity,
            ))
    else:
        invoice_number = lookup_invoice_number(pdf_path, template, order_number, loader)
        if invoice_number in (PO_MISSING, NO_COUNTERPART_FOLDER, NOT_FOUND):
            result.diagnostics.append(Diagnostic(
                CROSS_REFERENCE_NOT_FOUND, f"invoice lookup: {invoice_number}",
                source_file=file_name, severity=INFO,
            ))
        context = DocumentContext(
            po_number=order_number,
            vendor_name=vendor_name,
            invoice_number=invoice_number,
            source_file_name=file_name,
            incoterm=template.incoterm,
        )
        for line in lines:
            result.records.append(build_record(context, line, target_side=SIDE_PURCHASE_ORDER))

    logger.info(
        f"[EXTRACT] {file_name}: order={order_number} invoice={invoice_number} "
        f"vendor='{vendor_name}' -> {len(result.records)} record(s)"
    )
    return result
