# main.py
# Punto de entrada: loop de polling IMAP -> extrae PDFs -> marca leídos
from __future__ import annotations
import argparse
import logging
import re
import signal
import sys
from pathlib import Path

from config.settings import Settings
from domain.errors import ConfigError
from interface_adapters.controllers.polling_controller import PollingController
from utils.log_setup import configure_logging

logger = logging.getLogger(__name__)

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600}


def parse_interval(value: str) -> float:
    """'10s', '5m', '1h' (sin sufijo = segundos) -> segundos."""
    m = _DURATION.match(value or "")
    if not m:
        raise argparse.ArgumentTypeError(f"intervalo no válido: {value!r} (ej.: 10s, 5m, 1h)")
    seconds = float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
    if seconds <= 0:
        raise argparse.ArgumentTypeError("el intervalo debe ser positivo")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    cwd = Path.cwd()
    parser = argparse.ArgumentParser(
        prog="goatee",
        description="Descarga los PDF adjuntos de los correos no leídos de un buzón IMAP",
    )
    parser.add_argument("--conf", type=Path, default=cwd / "goatee.cfg", help="Path to config file.")
    parser.add_argument("--log", type=Path, default=cwd / "goatee.log", help="Path to log file.")
    parser.add_argument(
        "--interval",
        type=parse_interval,
        default=parse_interval("5m"),
        help="Time between each check. Examples: 10s, 5m, 1h",
    )
    parser.add_argument("--debug", action="store_true", help="Log all IMAP commands and responses.")
    parser.add_argument("--once", action="store_true", help="Only execute the fetch once and exit.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        configure_logging(args.log, debug=args.debug)
    except OSError as exc:
        print(f"Error opening logfile: {exc}", file=sys.stderr)
        return 1

    try:
        settings = Settings.from_file(args.conf)
    except ConfigError as exc:
        logger.critical("%s", exc)
        return 1

    try:
        controller = PollingController(settings=settings)
    except OSError as exc:
        logger.critical("No se pudo preparar el destino %s: %s", settings.DESTINATION, exc)
        return 1

    def _on_signal(signum, frame) -> None:
        logger.info("Señal %s recibida, parando…", signum)
        controller.stop()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    logger.info("=== goatee ===")
    logger.info("IMAP host=%s inbox=%s destino=%s", settings.SERVER, settings.IMAP_FOLDER_INBOX,
                settings.destination_path())
    return controller.run_forever(args.interval, once=args.once)


if __name__ == "__main__":
    sys.exit(main())
