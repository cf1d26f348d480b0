"""
命令行入口

子命令：
    run   按供应商模板处理共享文件夹中的新单据并追加到主记录
    menu  交互式菜单，循环选择供应商直到选择退出
    dump  导出单个 PDF 的定位片段（调试模板容差用）

退出码：0 成功；1 配置或主记录读写失败；2 主记录被其他程序打开（本批次未写入）
"""

import os
import sys
import logging
import argparse
from collections import Counter
from datetime import datetime
from typing import Callable, List, Optional

from .templates import load_vendor_templates, select_templates
from .batch import BatchResult, run_batch
from .reader import dump_fragments
from .writer import SUPPORTED_FORMATS, is_supported_format, print_json, write_auto, write_csv
from .diagnostics import (
    Diagnostic,
    FILE_ACCESS_CONFLICT,
    ERROR,
    ReportLockedError,
    ReportStoreError,
    TemplateError,
)

logger = logging.getLogger("doc_reconciler")

DEFAULT_MASTER_NAME = "Relación de Importación 2026.xlsx"
LOG_FORMAT = '%(asctime)s - %(levelname)s: %(message)s'

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_LOCKED = 2


def setup_logging(output_dir: str, debug: bool = False) -> None:
    """控制台（stderr，UTF-8）+ 输出目录下的 reconcile.log"""
    log_level = logging.DEBUG if debug else logging.INFO

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    log_format = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(log_format)
    try:
        console_handler.stream.reconfigure(encoding='utf-8')
    except AttributeError:
        pass
    logging.root.addHandler(console_handler)

    file_handler = logging.FileHandler(os.path.join(output_dir, "reconcile.log"), encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(log_format)
    logging.root.addHandler(file_handler)

    logging.root.setLevel(log_level)


def make_output_dir(base: str = "output") -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = os.path.join(base, f"{timestamp}_reconcile")
    os.makedirs(output_dir, exist_ok=True)
    return output_dir


def setup_parser() -> argparse.ArgumentParser:
    """设置命令行参数解析器"""
    parser = argparse.ArgumentParser(
        description="Purchase order / invoice reconciliation from PDF layouts",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    def add_common_args(p):
        p.add_argument(
            "--root",
            default=".",
            help="Shared folder root containing one folder per vendor (default: current directory)"
        )
        p.add_argument(
            "--master",
            default="",
            help=f"Master log workbook (default: <root>/{DEFAULT_MASTER_NAME})"
        )
        p.add_argument(
            "--templates",
            default=None,
            help="Vendor template JSON file (default: bundled vendor_templates.json)"
        )
        p.add_argument(
            "--log-dir",
            default="output",
            help="Base directory for the timestamped run folder (default: output)"
        )
        p.add_argument("--debug", action="store_true", help="Verbose logging")

    run_parser = subparsers.add_parser("run", help="Process new documents for the given vendors")
    add_common_args(run_parser)
    run_parser.add_argument(
        "--vendor",
        action="append",
        default=[],
        help="Vendor template key, repeatable (default: all vendors)"
    )
    run_parser.add_argument(
        "--out",
        default="",
        help="Also export the new records to this .json or .csv file"
    )

    menu_parser = subparsers.add_parser("menu", help="Interactive vendor menu")
    add_common_args(menu_parser)

    dump_parser = subparsers.add_parser("dump", help="Dump positioned text fragments of a PDF")
    dump_parser.add_argument("pdf", help="PDF file path")
    dump_parser.add_argument("--out", default="", help="CSV output path, stdout (JSON) if not specified")

    return parser


def master_path_for(args) -> str:
    return args.master or os.path.join(args.root, DEFAULT_MASTER_NAME)


def report_batch(result: BatchResult, output_dir: str) -> None:
    """控制台摘要 + 诊断事件落盘"""
    print(f"\n{'='*70}")
    print("Reconciliation Summary:")
    for s in result.summaries:
        print(f"  {s.vendor:<10} files: {s.scanned}  skipped: {s.skipped}  "
              f"failed: {s.failed}  records: {s.records}")
    print(f"  Records written: {result.written}")

    counts = Counter(d.code for d in result.diagnostics)
    if counts:
        print("  Diagnostics: " + ", ".join(f"{code}={n}" for code, n in sorted(counts.items())))
    print(f"{'='*70}")

    for d in result.diagnostics:
        if d.severity == ERROR:
            print(f"  {d}")
        logger.debug(str(d))

    if result.diagnostics:
        write_csv([d.to_dict() for d in result.diagnostics], os.path.join(output_dir, "diagnostics.csv"))


def execute_run(templates, root: str, master_path: str, output_dir: str, out: str = "") -> int:
    """运行一个批次并把异常映射为退出码"""
    try:
        result = run_batch(templates, root, master_path)
    except ReportLockedError as e:
        conflict = Diagnostic(FILE_ACCESS_CONFLICT, str(e), source_file=os.path.basename(master_path), severity=ERROR)
        print(f"\n{conflict}")
        print("Close the workbook and run again; nothing from this batch was saved.")
        return EXIT_LOCKED
    except ReportStoreError as e:
        logger.error(f"Master log error: {e}")
        return EXIT_FAILURE

    report_batch(result, output_dir)
    if out and result.records:
        write_auto(result.records, out)
    return EXIT_OK


def run_menu(
    templates: dict,
    root: str,
    master_path: str,
    output_dir: str,
    input_func: Callable[[str], str] = input
) -> int:
    """
    交互式菜单：列出供应商，输入编号（可用逗号分隔多个）、A 全部、0 退出
    """
    keys = list(templates)
    last_code = EXIT_OK

    while True:
        print("\nVendors:")
        for i, key in enumerate(keys, start=1):
            print(f"  {i}. {templates[key].vendor_folder}")
        print("  A. All vendors")
        print("  0. Exit")

        try:
            choice = input_func("Select: ").strip()
        except EOFError:
            return last_code

        if choice == "0":
            return last_code
        if choice.upper() == "A":
            selected = [templates[k] for k in keys]
        else:
            try:
                indexes = [int(c) for c in choice.replace(" ", "").split(",") if c]
                chosen = [keys[i - 1] for i in indexes if 1 <= i <= len(keys)]
                selected = select_templates(templates, chosen)
            except ValueError:
                selected = []
            if not selected:
                print(f"Invalid choice: {choice!r}")
                continue

        last_code = execute_run(selected, root, master_path, output_dir)


def run_dump(args) -> int:
    rows = dump_fragments(args.pdf)
    if args.out:
        write_csv(rows, args.out)
        print(f"Dumped {len(rows)} fragment(s) -> {args.out}")
    else:
        print_json(rows)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """CLI 主入口"""
    parser = setup_parser()
    args = parser.parse_args(argv)

    if args.command == "dump":
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        return run_dump(args)
    if args.command not in ("run", "menu"):
        parser.print_help()
        return EXIT_FAILURE
    if args.command == "run" and args.out and not is_supported_format(args.out):
        print(f"Unsupported --out format: {args.out} (expected one of {', '.join(SUPPORTED_FORMATS)})")
        return EXIT_FAILURE

    output_dir = make_output_dir(args.log_dir)
    setup_logging(output_dir, args.debug)
    logger.info(f"Output directory: {output_dir}")

    try:
        templates = load_vendor_templates(args.templates)
        master_path = master_path_for(args)

        if args.command == "menu":
            return run_menu(templates, args.root, master_path, output_dir)

        selected = select_templates(templates, args.vendor) if args.vendor else list(templates.values())
        return execute_run(selected, args.root, master_path, output_dir, args.out)
    except TemplateError as e:
        logger.error(f"Template error: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
