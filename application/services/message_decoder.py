# application/services/message_decoder.py
from __future__ import annotations
import logging
from email.utils import collapse_rfc2231_value

import pyzmail
from pyzmail.parse import decode_mail_header

from domain.models import ParsedMessage

logger = logging.getLogger(__name__)


def decode_subject_header(value) -> str:
    """Decodifica encoded-words (=?utf-8?q?...?=); si falla devuelve el texto tal cual."""
    if not value:
        return ""
    try:
        return decode_mail_header(value)
    except Exception:
        logger.debug("No se pudo decodificar la cabecera %r", value)
        return str(value)


def decode(uid: int, raw: bytes | None) -> ParsedMessage | None:
    """
    Parsea un RFC 822 en bruto. Un mensaje ilegible se salta (log) en vez de
    abortar el ciclo: casi siempre el problema es de ese único mensaje.
    """
    if not raw:
        logger.warning("UID=%s: cuerpo vacío, se omite", uid)
        return None
    try:
        msg = pyzmail.PyzMessage.factory(raw)
        if not msg.keys():
            logger.warning("UID=%s: mensaje sin cabeceras, se omite", uid)
            return None
        content_type = msg.get_content_type()
        params = {k.lower(): collapse_rfc2231_value(v) for k, v in (msg.get_params() or [])[1:]}
    except Exception:
        logger.exception("UID=%s: no se pudo parsear el mensaje", uid)
        return None

    return ParsedMessage(
        uid=uid,
        subject=decode_subject_header(msg.get("Subject")),
        content_type=content_type,
        params=params,
        message=msg,
    )
