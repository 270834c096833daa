# application/services/attachment_classifier.py
from __future__ import annotations

from domain.models import MimePart

PDF_TYPE = "application/pdf"
OCTET_STREAM_TYPE = "application/octet-stream"


def is_pdf_attachment(part: MimePart) -> bool:
    """
    application/pdf siempre; application/octet-stream solo si el nombre acaba en
    .pdf (muchos clientes etiquetan mal los PDF). Es una heurística, no un control
    de seguridad.
    """
    ctype = (part.content_type or "").lower()
    if ctype == PDF_TYPE:
        return True
    return ctype == OCTET_STREAM_TYPE and (part.filename or "").lower().endswith(".pdf")
