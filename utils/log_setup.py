# utils/log_setup.py

from __future__ import annotations
import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging(log_path: Path | None, *, debug: bool = False) -> None:
    """
    Log a stderr y, si se indica, también al fichero (modo append).
    Con debug se ve además el diálogo IMAP que imapclient registra en DEBUG.
    Lanza OSError si el fichero de log no se puede abrir.
    """
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_path is not None:
        handlers.append(logging.FileHandler(log_path, mode="a", encoding="utf-8"))

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        h.setLevel(level)
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(level)

    # imapclient vuelca comandos y respuestas en DEBUG; solo si se pide
    logging.getLogger("imapclient").setLevel(logging.DEBUG if debug else logging.WARNING)
