"""
供应商模板注册表

职责：
- 定义模板配置结构（表头关键字、容差、单位换算、对应文件查找规则、供应商名称识别）
- 从 JSON 配置文件加载模板（默认 vendor_templates.json）
- 模板加载后只读（frozen dataclass），模板之间不共享可变状态
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .diagnostics import TemplateError

logger = logging.getLogger("doc_reconciler")

DEFAULT_TEMPLATE_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "vendor_templates.json")

# 逻辑列
PART = "Part"
QUANTITY = "Quantity"
UNIT_PRICE = "UnitPrice"
AMOUNT = "Amount"
UNIT = "Unit"
LINE_NUMBER = "LineNumber"

DOCUMENT_INVOICE = "invoice"
DOCUMENT_PURCHASE_ORDER = "purchase_order"

SHAPES = ("any", "numeric", "integer", "alpha")


@dataclass(frozen=True)
class ColumnSpec:
    """
    单列定义：表头锚点 + 水平带 + 内容形状。

    label 可以是单个关键字或关键字组；按阅读顺序第一个命中任一关键字的片段为锚点。

    水平带：
        起点 = 锚点 left（band_start="left"）或 right（band_start="right"）减去 left_margin
        终点 = 锚点 right + right_margin；right_margin 为 None 表示向右不设限
        若 stop_column 的锚点存在，终点不超过 stop_column 锚点 left - stop_margin
    """
    column: str
    label: Union[str, Tuple[str, ...]]
    co_anchor: Optional[str] = None
    max_offset: float = 10.0
    exact: bool = False
    left_margin: float = 10.0
    right_margin: Optional[float] = 10.0
    band_start: str = "left"
    stop_column: Optional[str] = None
    stop_margin: float = 0.0
    shape: str = "any"
    pattern: Optional[str] = None
    exclude: Tuple[str, ...] = ()
    min_length: int = 1
    pick: str = "first"


@dataclass(frozen=True)
class TableSpec:
    """
    表格定义。

    key_column: 用于确定行的关键列（缺失时该页不输出任何行）
    row_tolerance: 行聚类的纵向容差
    footer_keywords: 表尾关键字（出现在表头下方时作为表格下边界）
    required_fields: 这些字段未解析出时丢弃该行
    unit_window: 数量右侧查找单位的水平窗口
    """
    columns: Tuple[ColumnSpec, ...]
    key_column: str
    row_tolerance: float = 10.0
    footer_keywords: Tuple[str, ...] = ()
    required_fields: Tuple[str, ...] = ()
    unit_window: float = 80.0

    def column_spec(self, column: str) -> Optional[ColumnSpec]:
        for spec in self.columns:
            if spec.column == column:
                return spec
        return None


@dataclass(frozen=True)
class HeaderFieldRule:
    """
    页头字段（订单号/发票号）提取规则。

    顺序：
        1. 锚点：label（+ co_anchor 同基线）→ 锚点下方窗口内第一个匹配 value_pattern 的片段
        2. 页面文本正则（取第 1 组）
        3. 页面注释正则
    """
    label: Union[str, Tuple[str, ...], None] = None
    co_anchor: Optional[str] = None
    max_offset: float = 10.0
    left_margin: float = 0.0
    right_margin: Optional[float] = None
    below_min: float = 0.0
    below_max: float = 50.0
    value_pattern: str = r"\d"
    join: bool = False
    regexes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VendorNameRule:
    """供应商名称：页面片段关键字命中 → 标准名称；否则使用 fallback（不可为空）"""
    keywords: Tuple[Tuple[str, str], ...] = ()
    fallback: str = "UNKNOWN"


@dataclass(frozen=True)
class CounterpartRule:
    """
    对应文件查找规则（同级文件夹约定）。

    match="filename": 在 folder 中 glob *<订单号>*.pdf
    match="text": 在 folder 中查找首页文本包含订单号的 PDF
    table: 对应文件（参考单据）的表格定义，仅发票驱动的模板需要
    """
    folder: str
    match: str = "filename"
    table: Optional[TableSpec] = None


@dataclass(frozen=True)
class LogisticsRule:
    """装箱单 + Email Info 物流信息补充"""
    packing_folder: str = "03 - Packing List"
    workbook_name: str = "Email Info.xlsx"
    customer_label: str = "CUST"
    search_depth: float = 40.0


@dataclass(frozen=True)
class VendorTemplate:
    key: str
    vendor_folder: str
    document_folder: str
    document_type: str
    table: TableSpec
    vendor_name: VendorNameRule = field(default_factory=VendorNameRule)
    order_number: HeaderFieldRule = field(default_factory=HeaderFieldRule)
    invoice_number: HeaderFieldRule = field(default_factory=HeaderFieldRule)
    counterpart: Optional[CounterpartRule] = None
    logistics: Optional[LogisticsRule] = None
    mirror_unmatched_quantity: bool = False
    incoterm: str = "N/A"
    lb_to_kg: float = 0.453592

    @property
    def is_invoice_driven(self) -> bool:
        return self.document_type == DOCUMENT_INVOICE


#
# ========== JSON → dataclass ==========
#

def _tuple(value) -> Tuple:
    return tuple(value or ())


def _label(value):
    """JSON 中的关键字组（列表）转为 tuple，单个字符串保持不变"""
    if isinstance(value, list):
        return tuple(value)
    return value


def _build_column(data: Dict) -> ColumnSpec:
    data = dict(data)
    if "label" in data:
        data["label"] = _label(data["label"])
    data["exclude"] = _tuple(data.get("exclude"))
    spec = ColumnSpec(**data)
    if spec.shape not in SHAPES:
        raise TemplateError(f"Unknown shape '{spec.shape}' for column '{spec.column}'")
    if spec.band_start not in ("left", "right"):
        raise TemplateError(f"Unknown band_start '{spec.band_start}' for column '{spec.column}'")
    if spec.pick not in ("first", "nearest"):
        raise TemplateError(f"Unknown pick '{spec.pick}' for column '{spec.column}'")
    return spec


def _build_table(data: Dict) -> TableSpec:
    columns = tuple(_build_column(c) for c in data.get("columns", []))
    table = TableSpec(
        columns=columns,
        key_column=data["key_column"],
        row_tolerance=float(data.get("row_tolerance", 10.0)),
        footer_keywords=_tuple(data.get("footer_keywords")),
        required_fields=_tuple(data.get("required_fields")),
        unit_window=float(data.get("unit_window", 80.0)),
    )
    if table.column_spec(table.key_column) is None:
        raise TemplateError(f"Key column '{table.key_column}' is not defined in columns")
    return table


def _build_header_rule(data: Optional[Dict]) -> HeaderFieldRule:
    if not data:
        return HeaderFieldRule()
    data = dict(data)
    if "label" in data:
        data["label"] = _label(data["label"])
    data["regexes"] = _tuple(data.get("regexes"))
    return HeaderFieldRule(**data)


def _build_vendor_name(key: str, data: Optional[Dict]) -> VendorNameRule:
    """未配置 fallback 时使用模板标识的大写形式"""
    data = data or {}
    keywords = tuple((str(k), str(v)) for k, v in data.get("keywords", []))
    fallback = str(data.get("fallback") or "").strip() or key.upper()
    return VendorNameRule(keywords=keywords, fallback=fallback)


def _build_counterpart(data: Optional[Dict]) -> Optional[CounterpartRule]:
    if not data:
        return None
    match = data.get("match", "filename")
    if match not in ("filename", "text"):
        raise TemplateError(f"Unknown counterpart match mode '{match}'")
    table = _build_table(data["table"]) if data.get("table") else None
    return CounterpartRule(folder=data["folder"], match=match, table=table)


def build_template(key: str, data: Dict) -> VendorTemplate:
    """
    从字典构建单个模板。

    Raises:
        TemplateError: 缺少必填项或取值非法
    """
    try:
        document_type = data.get("document_type", DOCUMENT_INVOICE)
        if document_type not in (DOCUMENT_INVOICE, DOCUMENT_PURCHASE_ORDER):
            raise TemplateError(f"Unknown document_type '{document_type}'")

        return VendorTemplate(
            key=key,
            vendor_folder=data["vendor_folder"],
            document_folder=data["document_folder"],
            document_type=document_type,
            table=_build_table(data["table"]),
            vendor_name=_build_vendor_name(key, data.get("vendor_name")),
            order_number=_build_header_rule(data.get("order_number")),
            invoice_number=_build_header_rule(data.get("invoice_number")),
            counterpart=_build_counterpart(data.get("counterpart")),
            logistics=LogisticsRule(**data["logistics"]) if data.get("logistics") else None,
            mirror_unmatched_quantity=bool(data.get("mirror_unmatched_quantity", False)),
            incoterm=data.get("incoterm", "N/A"),
            lb_to_kg=float(data.get("lb_to_kg", 0.453592)),
        )
    except TemplateError as e:
        raise TemplateError(f"Template '{key}': {e}") from e
    except (KeyError, TypeError) as e:
        raise TemplateError(f"Template '{key}' is malformed: {e!r}") from e


def load_vendor_templates(config_path: Optional[str] = None) -> Dict[str, VendorTemplate]:
    """
    加载模板配置文件

    Args:
        config_path: 配置文件路径，默认为包内的 vendor_templates.json

    Returns:
        {vendor_key: VendorTemplate, ...}，保持文件中的顺序

    Raises:
        TemplateError: 文件不存在、JSON 无效或模板非法
    """
    if config_path is None:
        config_path = DEFAULT_TEMPLATE_FILE

    if not os.path.exists(config_path):
        raise TemplateError(f"Template config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise TemplateError(f"Failed to load template config from {config_path}: {e}") from e

    templates = {}
    for key, data in config.items():
        if key.startswith("_"):
            continue
        templates[key] = build_template(key, data)

    logger.info(f"Loaded {len(templates)} vendor template(s) from {config_path}: {list(templates)}")
    return templates


def select_templates(templates: Dict[str, VendorTemplate], keys: List[str]) -> List[VendorTemplate]:
    """
    按调用方给出的供应商标识选择模板（重复的标识只保留第一次）。

    Raises:
        TemplateError: 未知的供应商标识
    """
    selected = []
    for key in keys:
        k = key.strip().lower()
        if k not in templates:
            raise TemplateError(f"Unknown vendor '{key}'. Available: {', '.join(templates)}")
        if templates[k] not in selected:
            selected.append(templates[k])
    return selected
