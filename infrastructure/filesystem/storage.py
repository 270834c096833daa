# infrastructure/filesystem/storage.py
from __future__ import annotations
import logging
import os
import re
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w.]", re.ASCII)
FALLBACK_NAME = "attachment.pdf"


def sanitize_filename(name: str) -> str:
    """Todo lo que no sea [A-Za-z0-9_.] pasa a '_'. Idempotente."""
    return _UNSAFE_CHARS.sub("_", name or "")


class AttachmentStorage:
    def __init__(self, base: Path) -> None:
        self.base = base.resolve()
        self.base.mkdir(parents=True, exist_ok=True)

    def path_for(self, name_hint: str) -> Path:
        fname = sanitize_filename(name_hint)
        if not fname.strip("."):
            # "", "." o ".." no son nombres de fichero utilizables
            fname = FALLBACK_NAME
        return self.base / fname

    def save_bytes(self, name_hint: str, data: bytes) -> Path:
        """
        Escribe en un temporal del mismo directorio y renombra al final: nunca queda
        un PDF a medias. Si ya existe un fichero con ese nombre se sobreescribe.
        """
        fp = self.path_for(name_hint)
        fd, tmp_name = tempfile.mkstemp(dir=self.base, prefix=".", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, fp)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        logger.debug("Guardado %s (%d bytes)", fp, len(data))
        return fp
