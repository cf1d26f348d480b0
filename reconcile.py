"""
对账工具入口

用法：
    python reconcile.py run --root "D:/Importaciones" --vendor csm --vendor lucas
    python reconcile.py menu --root "D:/Importaciones"
    python reconcile.py dump factura.pdf --out words.csv
"""
import sys

from doc_reconciler.cli import main

if __name__ == "__main__":
    sys.exit(main())
