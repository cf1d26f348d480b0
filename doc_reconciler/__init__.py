"""
采购单 / 发票 PDF 版面对账工具

模块架构（按数据流）：
    reader.py       → PDF 定位文本读取（PyMuPDF 词坐标 + 整页文本 + 注释）
    preprocessor.py → 文本清理、关键字匹配、阅读顺序
    locator.py      → 表头锚点定位、页头字段读取
    clusterer.py    → 按关键列聚类成行
    extractor.py    → 按列水平带抽取字段、数值/单位标准化
    templates.py    → 供应商模板（vendor_templates.json）
    matcher.py      → 跨单据零件号匹配
    records.py      → 对账记录标准化
    logistics.py    → 装箱单 / Email Info 物流信息
    pipeline.py     → 单个源文件的完整流程
    report.py       → 主记录工作簿读写（pandas + openpyxl）
    batch.py        → 批处理（跳过已处理文件、单文件失败隔离、一次性写入）
    writer.py       → JSON/CSV 输出
    cli.py          → 命令行接口（主入口）

公共 API：
    read_page_layouts     - 读取逐页定位片段
    load_vendor_templates - 加载供应商模板
    extract_table_lines   - 单页表格抽取
    match_line_items      - 跨单据匹配
    extract_document      - 单个源文件 → 对账记录
    run_batch             - 批处理并写入主记录
"""

__version__ = "1.0.0"

# === Reader 模块 ===
from .reader import (
    BoundingBox,
    PositionedFragment,
    PageLayout,
    read_page_layouts,
    dump_fragments,
)

# === Templates 模块 ===
from .templates import (
    ColumnSpec,
    TableSpec,
    VendorTemplate,
    load_vendor_templates,
    select_templates,
)

# === Extractor 模块 ===
from .extractor import (
    LineItemRaw,
    normalize_quantity,
    try_parse_decimal,
    extract_table_lines,
)

# === Matcher / Records 模块 ===
from .matcher import match_line_items, parts_match
from .records import ReconciledLineItem, build_record

# === Pipeline / Batch 模块 ===
from .pipeline import ExtractionResult, extract_document
from .batch import BatchResult, run_batch

# === Report 模块 ===
from .report import append_records, list_known_source_files

# === Diagnostics ===
from .diagnostics import (
    Diagnostic,
    ReconcileError,
    ReportLockedError,
    ReportStoreError,
    TemplateError,
)

__all__ = [
    # 版本
    "__version__",

    # Reader
    "BoundingBox",
    "PositionedFragment",
    "PageLayout",
    "read_page_layouts",
    "dump_fragments",

    # Templates
    "ColumnSpec",
    "TableSpec",
    "VendorTemplate",
    "load_vendor_templates",
    "select_templates",

    # Extractor
    "LineItemRaw",
    "normalize_quantity",
    "try_parse_decimal",
    "extract_table_lines",

    # Matcher / Records
    "match_line_items",
    "parts_match",
    "ReconciledLineItem",
    "build_record",

    # Pipeline / Batch
    "ExtractionResult",
    "extract_document",
    "BatchResult",
    "run_batch",

    # Report
    "append_records",
    "list_known_source_files",

    # Diagnostics
    "Diagnostic",
    "ReconcileError",
    "ReportLockedError",
    "ReportStoreError",
    "TemplateError",
]
