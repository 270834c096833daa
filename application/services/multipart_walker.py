# application/services/multipart_walker.py
from __future__ import annotations
import logging
from email.message import Message
from pathlib import Path
from typing import Callable

from pyzmail.parse import decode_mail_header

from application.services.attachment_classifier import is_pdf_attachment
from domain.models import ExtractedFile, MimePart, ParsedMessage, WalkReport

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 16

Saver = Callable[[str, bytes], Path]


def to_mime_part(part: Message) -> MimePart:
    filename = part.get_filename() or ""
    if "=?" in filename:
        filename = decode_mail_header(filename)
    return MimePart(
        content_type=part.get_content_type(),
        transfer_encoding=(part.get("Content-Transfer-Encoding") or "7bit").strip().lower(),
        filename=filename,
        source=part,
    )


class MultipartWalker:
    """
    Recorre el árbol MIME de un mensaje y guarda los PDF adjuntos.
    Solo se desciende en multipart/mixed (reenvíos, sobres firmados...) y como
    mucho `max_depth` niveles anidados; lo que quede por debajo se descarta.
    """

    def __init__(self, saver: Saver, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.saver = saver
        self.max_depth = max_depth

    def walk(self, message: ParsedMessage) -> WalkReport:
        report = WalkReport()
        if not message.content_type.startswith("multipart/"):
            return report
        logger.info("Extrayendo adjuntos de %s", message.content_type)
        self._walk_parts(message.uid, message.message, 0, report)
        return report

    def _walk_parts(self, uid: int, container: Message, depth: int, report: WalkReport) -> None:
        payload = container.get_payload()
        if not isinstance(payload, list):
            # multipart sin boundary o cuerpo truncado: no hay partes que recorrer
            logger.warning("UID=%s: %s sin partes legibles", uid, container.get_content_type())
            return

        for part in payload:
            ctype = part.get_content_type()
            if ctype == "multipart/mixed":
                if depth + 1 > self.max_depth:
                    logger.warning("UID=%s: anidamiento MIME > %d, se omite la rama", uid, self.max_depth)
                    report.skipped_too_deep += 1
                    continue
                logger.info("Extrayendo adjuntos de %s (nivel %d)", ctype, depth + 1)
                self._walk_parts(uid, part, depth + 1, report)
                continue

            report.leaves_visited += 1
            mime_part = to_mime_part(part)
            if is_pdf_attachment(mime_part):
                self._extract(uid, mime_part, report)

    def _extract(self, uid: int, part: MimePart, report: WalkReport) -> None:
        # get_payload(decode=True) resuelve base64, quoted-printable, 7bit/8bit y binary
        data = part.source.get_payload(decode=True) or b""
        try:
            path = self.saver(part.filename, data)
        except OSError as exc:
            logger.error("UID=%s: no se pudo guardar '%s': %s", uid, part.filename, exc)
            report.failed.append(part.filename)
            return
        logger.info("|   guardado %s", path.name)
        report.extracted.append(ExtractedFile(uid=uid, source_filename=part.filename, path=path))
