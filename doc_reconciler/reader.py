"""
PDF 定位文本读取模块

职责：
- 打开 PDF 文件
- 提取每页的词（带坐标）、整页文本和注释文本
- 返回原始数据，不做任何业务逻辑处理

坐标约定（与 PyMuPDF 一致）：
    原点在页面左上角，y 向下增大。
    top < bottom；"表头下方" 即 y 更大的位置。
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple

import fitz  # PyMuPDF

logger = logging.getLogger("doc_reconciler")


@dataclass(frozen=True)
class BoundingBox:
    """文本片段的外接矩形"""
    left: float
    top: float
    right: float
    bottom: float

    @property
    def centroid_x(self) -> float:
        return (self.left + self.right) / 2

    @property
    def centroid_y(self) -> float:
        return (self.top + self.bottom) / 2

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass(frozen=True)
class PositionedFragment:
    """页面上的一个定位文本片段（通常是一个词）"""
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

    @property
    def centroid_y(self) -> float:
        return self.bbox.centroid_y


@dataclass
class PageLayout:
    """
    单页版面：有序片段序列 + 原始整页文本。

    fragments 使用 tuple 保存，可重复遍历。
    annotations 为页面注释里的自由文本，作为版面启发式失败时的备用来源。
    """
    number: int
    fragments: Tuple[PositionedFragment, ...]
    text: str = ""
    annotations: Tuple[str, ...] = field(default_factory=tuple)
    width: float = 0.0


def ensure_file_exists(pdf_path: str) -> None:
    """
    检查文件是否存在。

    Args:
        pdf_path: PDF 文件路径

    Raises:
        FileNotFoundError: 文件不存在
    """
    if not os.path.isfile(pdf_path):
        logger.error("File not found: %s", pdf_path)
        raise FileNotFoundError(pdf_path)


def extract_fragments_from_page(page) -> List[PositionedFragment]:
    """
    从页面提取词片段。

    Args:
        page: PyMuPDF 页面对象

    Returns:
        [PositionedFragment, ...]，保持 PyMuPDF 的输出顺序
    """
    words = page.get_text("words")
    out = []
    for w in words:
        if len(w) >= 5:
            x0, y0, x1, y1, text = w[:5]
            if text and str(text).strip():
                out.append(PositionedFragment(
                    text=str(text).strip(),
                    bbox=BoundingBox(float(x0), float(y0), float(x1), float(y1)),
                ))
    return out


def extract_annotations_from_page(page) -> List[str]:
    """提取页面注释中的文本内容（没有则为空列表）"""
    out = []
    for annot in page.annots() or []:
        content = (annot.info or {}).get("content", "")
        if content and content.strip():
            out.append(content.strip())
    return out


def _open_document(pdf_path: str):
    ensure_file_exists(pdf_path)
    doc = fitz.open(pdf_path)
    if doc.is_encrypted and not doc.authenticate(""):
        doc.close()
        raise RuntimeError(f"encrypted_pdf_not_supported: {pdf_path}")
    return doc


def read_page_layouts(pdf_path: str, pages: Optional[List[int]] = None) -> List[PageLayout]:
    """
    读取 PDF 的逐页版面。

    Args:
        pdf_path: PDF 文件路径
        pages: 指定页码（1-based），None 表示全部

    Returns:
        [PageLayout, ...]

    Raises:
        FileNotFoundError: 文件不存在
        RuntimeError: 加密文件或 PyMuPDF 无法打开
    """
    doc = _open_document(pdf_path)
    layouts = []
    try:
        for pno in range(doc.page_count):
            page_num = pno + 1
            if pages and page_num not in pages:
                continue

            page = doc.load_page(pno)
            fragments = extract_fragments_from_page(page)
            layouts.append(PageLayout(
                number=page_num,
                fragments=tuple(fragments),
                text=page.get_text("text") or "",
                annotations=tuple(extract_annotations_from_page(page)),
                width=float(page.rect.width),
            ))
            logger.debug(f"Page {page_num}: {len(fragments)} fragments")
    finally:
        doc.close()

    return layouts


def dump_fragments(pdf_path: str) -> List[Dict[str, Any]]:
    """
    把所有页的词片段展开成行（调试用，便于调整模板容差）。

    Returns:
        [{"page", "index", "x0", "y0", "x1", "y1", "cy", "text"}, ...]
    """
    rows = []
    for layout in read_page_layouts(pdf_path):
        for idx, frag in enumerate(layout.fragments, start=1):
            rows.append({
                "page": layout.number,
                "index": idx,
                "x0": round(frag.left, 2),
                "y0": round(frag.top, 2),
                "x1": round(frag.right, 2),
                "y1": round(frag.bottom, 2),
                "cy": round(frag.centroid_y, 2),
                "text": frag.text,
            })
    return rows
