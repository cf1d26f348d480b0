"""
批处理模块

- 按供应商模板遍历 <root>/<供应商文件夹>/<单据文件夹>/*.pdf（新文件优先）
- 主记录中已有的文件名跳过（不区分大小写）
- 单个文件失败只记录 PerFileFailure，不中断批次
- 全部抽取完成后一次性写入主记录；写入失败时本批次记录整体不落盘
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

from .templates import VendorTemplate
from .records import ReconciledLineItem
from .pipeline import ExtractionResult, extract_document
from .report import append_records, list_known_source_files
from .diagnostics import (
    Diagnostic,
    PER_FILE_FAILURE,
    ERROR,
    ReportLockedError,
)

logger = logging.getLogger("doc_reconciler")

Extractor = Callable[[str, VendorTemplate], ExtractionResult]


@dataclass
class VendorRunSummary:
    vendor: str
    scanned: int = 0
    skipped: int = 0
    extracted: int = 0
    failed: int = 0
    records: int = 0


@dataclass
class BatchResult:
    records: List[ReconciledLineItem] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    summaries: List[VendorRunSummary] = field(default_factory=list)
    written: int = 0


def document_folder(root: str, template: VendorTemplate) -> Path:
    return Path(root) / template.vendor_folder / template.document_folder


def list_document_files(root: str, template: VendorTemplate) -> List[Path]:
    """单据文件夹中的 PDF，按修改时间从新到旧；文件夹不存在返回空列表"""
    folder = document_folder(root, template)
    if not folder.is_dir():
        logger.warning(f"[BATCH] Folder not found for '{template.key}': {folder}")
        return []
    files = [p for p in folder.iterdir() if p.is_file() and p.suffix.lower() == ".pdf"]
    return sorted(files, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)


def collect_new_records(
    templates: Iterable[VendorTemplate],
    root: str,
    known_files: Set[str],
    extract: Extractor = extract_document
) -> BatchResult:
    """
    抽取所有未处理文件的记录（不写入）。

    Args:
        templates: 要运行的供应商模板
        root: 共享文件夹根目录
        known_files: 主记录中已有的来源文件名
        extract: 单文件抽取函数

    Returns:
        BatchResult（written 为 0）
    """
    result = BatchResult()
    known = {name.casefold() for name in known_files}

    for template in templates:
        summary = VendorRunSummary(vendor=template.key)
        result.summaries.append(summary)

        for pdf in list_document_files(root, template):
            summary.scanned += 1
            if pdf.name.casefold() in known:
                summary.skipped += 1
                logger.debug(f"[BATCH] Skip known file: {pdf.name}")
                continue

            logger.info(f"[BATCH] Processing {template.key}: {pdf.name}")
            try:
                extraction = extract(str(pdf), template)
            except Exception as e:
                summary.failed += 1
                logger.error(f"[BATCH] Failed to process {pdf.name}: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
                result.diagnostics.append(Diagnostic(
                    PER_FILE_FAILURE, f"{type(e).__name__}: {e}", source_file=pdf.name, severity=ERROR,
                ))
                continue

            summary.extracted += 1
            summary.records += len(extraction.records)
            result.records.extend(extraction.records)
            result.diagnostics.extend(extraction.diagnostics)

        logger.info(
            f"[BATCH] {template.key}: {summary.scanned} file(s), {summary.skipped} skipped, "
            f"{summary.failed} failed, {summary.records} record(s)"
        )

    return result


def run_batch(
    templates: Iterable[VendorTemplate],
    root: str,
    master_path: str,
    extract: Extractor = extract_document,
    known_files: Optional[Set[str]] = None
) -> BatchResult:
    """
    读取主记录历史 → 抽取新文件 → 一次性追加写入

    Raises:
        ReportStoreError: 主记录不存在或无法读取（批次开始前），或写入失败
        ReportLockedError: 主记录被占用；本批次没有任何记录被写入，需整体重试
    """
    if known_files is None:
        known_files = list_known_source_files(master_path)

    result = collect_new_records(templates, root, known_files, extract)
    if not result.records:
        logger.info("[BATCH] No new records")
        return result

    try:
        result.written = append_records(result.records, master_path)
    except ReportLockedError as e:
        logger.error(f"[BATCH] {e}. {len(result.records)} record(s) not saved, run again after closing it")
        raise

    return result
