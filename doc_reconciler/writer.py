"""
输出模块

职责：
- 把对账记录 / 诊断事件 / 原始片段导出为 JSON 或 CSV
- 统一输出接口，不包含业务逻辑
"""

import os
import csv
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List

logger = logging.getLogger("doc_reconciler")

SUPPORTED_FORMATS = (".json", ".csv")


def is_supported_format(file_path: str) -> bool:
    return os.path.splitext(file_path)[1].lower() in SUPPORTED_FORMATS


def _json_default(value):
    if isinstance(value, Decimal):
        return float(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_rows(items: List[Any]) -> List[Dict]:
    """记录 / 诊断对象 → dict 列表（已经是 dict 的原样保留）"""
    return [item.to_dict() if hasattr(item, "to_dict") else item for item in items]


def write_json(data: Any, file_path: str) -> None:
    """
    输出 JSON 文件。

    Args:
        data: 要输出的数据（Decimal 与带 to_dict 的对象会自动转换）
        file_path: 输出文件路径
    """
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2, default=_json_default)
    logger.info(f"Wrote JSON: {file_path}")


def write_csv(rows: List[Dict], file_path: str, fieldnames: List[str] = None) -> None:
    """
    输出 CSV 文件（utf-8-sig，Excel 直接打开不乱码）。

    Args:
        rows: 要输出的行列表
        file_path: 输出文件路径
        fieldnames: 列名列表，不指定则从第一行推断
    """
    if not rows:
        logger.warning(f"No data to write to CSV: {file_path}")
        return

    if fieldnames is None:
        fieldnames = list(rows[0].keys())

    with open(file_path, "w", newline="", encoding="utf-8-sig") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        w.writerows(rows)
    logger.info(f"Wrote CSV: {file_path} ({len(rows)} rows)")


def write_auto(items: List[Any], file_path: str) -> None:
    """
    根据扩展名选择格式输出

    Raises:
        ValueError: 不支持的文件格式
    """
    ext = os.path.splitext(file_path)[1].lower()
    rows = to_rows(items)

    if ext == ".json":
        write_json(rows, file_path)
    elif ext == ".csv":
        write_csv(rows, file_path)
    else:
        raise ValueError(f"Unsupported file format: {ext}")


def print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=_json_default))
