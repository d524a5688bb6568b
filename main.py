"""Ejecuta la CLI desde un checkout, sin `pip install -e .`.

    python main.py cerrar p-123 --lat -34.6037 --lng -58.3816
    python main.py sincronizar

Instalado, el mismo punto de entrada es el script `incluir`.
"""

from __future__ import annotations

import sys
from pathlib import Path


def main() -> None:
    src = Path(__file__).resolve().parent / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))

    # Las tildes de los paneles rompen consolas cp1252 en Windows.
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")

    from cli.main import run  # noqa: PLC0415

    run()


if __name__ == "__main__":
    main()
