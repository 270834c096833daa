# config/settings.py
from __future__ import annotations
from dataclasses import dataclass, fields
from pathlib import Path
import os
from dotenv import dotenv_values

from domain.errors import ConfigError

ENV_PREFIX = "GOATEE_"
REQUIRED_KEYS = ("SERVER", "USER", "PASSWORD", "DESTINATION")
DEFAULT_IMAP_PORT = 993


@dataclass(frozen=True)
class Settings:
    # Buzón (obligatorios)
    SERVER: str
    USER: str
    PASSWORD: str
    DESTINATION: str

    IMAP_FOLDER_INBOX: str = "INBOX"

    # FETCH: timeout por recepción y nº de timeouts seguidos antes de abortar
    FETCH_TIMEOUT: float = 10.0
    FETCH_MAX_TIMEOUTS: int = 3
    FETCH_BATCH_SIZE: int = 50
    LOGOUT_TIMEOUT: float = 1.0

    # MIME
    MAX_MIME_DEPTH: int = 16

    @classmethod
    def from_file(cls, path: str | Path) -> "Settings":
        """
        Lee un fichero plano `clave = valor` (goatee.cfg). Las claves no distinguen
        mayúsculas; cada una puede sobreescribirse con GOATEE_<CLAVE> en el entorno.
        """
        fp = Path(path)
        if not fp.is_file():
            raise ConfigError(f"No existe el fichero de configuración: {fp}")
        try:
            raw = dotenv_values(fp, interpolate=False, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigError(f"No se pudo leer {fp}: {exc}") from exc

        values = {k.strip().upper(): v for k, v in raw.items() if v is not None}
        for key in _field_names():
            env_val = os.getenv(ENV_PREFIX + key)
            if env_val is not None:
                values[key] = env_val
        return cls.from_mapping(values)

    @classmethod
    def from_mapping(cls, values: dict[str, str]) -> "Settings":
        missing = [k for k in REQUIRED_KEYS if not (values.get(k) or "").strip()]
        if missing:
            raise ConfigError("Faltan claves obligatorias: " + ", ".join(k.lower() for k in missing))

        kwargs: dict[str, object] = {}
        for f in fields(cls):
            if f.name not in values:
                continue
            val = values[f.name].strip()
            try:
                if f.type == "float":
                    kwargs[f.name] = float(val)
                elif f.type == "int":
                    kwargs[f.name] = int(val)
                else:
                    kwargs[f.name] = val
            except ValueError as exc:
                raise ConfigError(f"Valor no válido para {f.name.lower()}: {val!r}") from exc
        settings = cls(**kwargs)  # type: ignore[arg-type]
        settings.imap_port()  # valida el puerto al arrancar
        return settings

    # ───────── helpers ─────────
    def imap_host(self) -> str:
        host, _ = self._split_server()
        return host

    def imap_port(self) -> int:
        _, port = self._split_server()
        if port is None:
            return DEFAULT_IMAP_PORT
        try:
            return int(port)
        except ValueError as exc:
            raise ConfigError(f"Puerto no válido en server: {self.SERVER!r}") from exc

    def destination_path(self, base: Path | None = None) -> Path:
        # relativo al directorio de trabajo salvo que sea absoluto
        return ((base or Path.cwd()) / self.DESTINATION).resolve()

    def _split_server(self) -> tuple[str, str | None]:
        # "host:993", "host", "[::1]:993"
        server = self.SERVER.strip()
        if server.startswith("["):
            host, _, rest = server[1:].partition("]")
            return host, rest[1:] if rest.startswith(":") else None
        head, sep, tail = server.rpartition(":")
        if not sep or ":" in head:
            return server, None
        return head, tail


def _field_names() -> list[str]:
    return [f.name for f in fields(Settings)]
