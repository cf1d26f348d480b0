"""
诊断事件与异常

提取过程中的问题以 Diagnostic 形式随结果一起返回，由 CLI 负责展示；
只有写入报表失败、主记录文件不可读才以异常形式上抛。
"""

from typing import Optional

# 事件代码
MISSING_ANCHOR = "MissingAnchor"
PARSE_FAILURE = "ParseFailure"
CROSS_REFERENCE_NOT_FOUND = "CrossReferenceNotFound"
FILE_ACCESS_CONFLICT = "FileAccessConflict"
PER_FILE_FAILURE = "PerFileFailure"

# 级别
INFO = "info"
WARNING = "warning"
ERROR = "error"


class Diagnostic:
    """单条诊断事件"""

    def __init__(
        self,
        code: str,
        message: str,
        source_file: str = "",
        page: int = 0,
        severity: str = WARNING
    ):
        self.code = code
        self.message = message
        self.source_file = source_file
        self.page = page
        self.severity = severity

    def __str__(self):
        where = self.source_file or "-"
        if self.page:
            where = f"{where} p.{self.page}"
        return f"[{self.code}] {where}: {self.message}"

    def __repr__(self):
        return f"Diagnostic({self.code!r}, {self.message!r}, source_file={self.source_file!r}, page={self.page})"

    def to_dict(self):
        return {
            "code": self.code,
            "severity": self.severity,
            "source_file": self.source_file,
            "page": self.page or "",
            "message": self.message,
        }


class ReconcileError(Exception):
    """本包所有异常的基类"""


class TemplateError(ReconcileError):
    """模板配置缺失或非法"""


class ReportStoreError(ReconcileError):
    """主记录文件读写失败（文件被占用的情况除外）"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ReportLockedError(ReportStoreError):
    """主记录文件被其他进程打开（独占），本批次记录需整体重试"""
