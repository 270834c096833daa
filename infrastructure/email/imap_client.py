# infrastructure/email/imap_client.py
from __future__ import annotations
import logging
import socket
from typing import Iterable

from imapclient import IMAPClient
from imapclient.exceptions import LoginError

from domain.errors import AuthenticationError, MailConnectionError, ProtocolError
from domain.models import FetchedMessage, SessionState

logger = logging.getLogger(__name__)

SEEN = b"\\Seen"
FETCH_ITEMS = ["UID", "FLAGS", "BODY.PEEK[]"]
BODY_KEY = b"BODY[]"

# Fallos de red/TLS (OSError cubre socket.timeout y ssl.SSLError) y del protocolo
_IMAP_ERRORS = (OSError, IMAPClient.Error)


class IMAPInbox:
    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        *,
        folder: str = "INBOX",
        fetch_timeout: float = 10.0,
        max_timeouts: int = 3,
        batch_size: int = 50,
        logout_timeout: float = 1.0,
        ssl: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.folder = folder
        self.fetch_timeout = fetch_timeout
        self.max_timeouts = max_timeouts
        self.batch_size = max(1, batch_size)
        self.logout_timeout = logout_timeout
        self.ssl = ssl
        self.client: IMAPClient | None = None
        self.state = SessionState.DISCONNECTED

    def __enter__(self) -> "IMAPInbox":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect(self.logout_timeout)

    # ───────────────────────── sesión ─────────────────────────
    def connect(self) -> None:
        """TLS -> LOGIN (salvo PREAUTH) -> SELECT en modo lectura/escritura."""
        self.state = SessionState.CONNECTING
        logger.info("Conectando a %s:%s…", self.host, self.port)
        try:
            self.client = IMAPClient(self.host, port=self.port, ssl=self.ssl, timeout=self.fetch_timeout)
        except _IMAP_ERRORS as exc:
            self.state = SessionState.DISCONNECTED
            raise MailConnectionError(f"Conexión con {self.host}:{self.port} fallida: {exc}") from exc

        try:
            if self._needs_login():
                logger.info("Iniciando sesión como %s…", self.user)
                self.client.login(self.user, self.password)
            self.state = SessionState.LOGGED_IN

            logger.info("Abriendo %s…", self.folder)
            self.client.select_folder(self.folder, readonly=False)
            self.state = SessionState.MAILBOX_SELECTED
        except LoginError as exc:
            self._drop()
            raise AuthenticationError(f"Login rechazado para {self.user}: {exc}") from exc
        except _IMAP_ERRORS as exc:
            self._drop()
            raise MailConnectionError(f"No se pudo abrir {self.folder}: {exc}") from exc

    def disconnect(self, timeout: float = 1.0) -> None:
        """LOGOUT con espera acotada. Best-effort: nunca lanza."""
        if self.client is None:
            self.state = SessionState.DISCONNECTED
            return
        try:
            self.client.socket().settimeout(timeout)
            self.client.logout()
        except _IMAP_ERRORS as exc:
            logger.warning("Error cerrando IMAP: %s", exc)
            self._drop()
        except Exception:
            logger.exception("Error cerrando IMAP")
            self._drop()
        finally:
            self.client = None
            self.state = SessionState.DISCONNECTED

    # ───────────────────────── operaciones ─────────────────────────
    def search_unseen(self) -> tuple[int, ...]:
        client = self._selected_client()
        logger.info("Buscando UIDs no leídos…")
        try:
            uids = client.search(["UNSEEN"])
        except _IMAP_ERRORS as exc:
            raise ProtocolError(f"UID SEARCH fallido: {exc}") from exc
        return tuple(sorted(set(uids)))  # procesar en orden

    def fetch_bodies(self, uids: Iterable[int]) -> list[FetchedMessage]:
        """
        Pide UID, FLAGS y BODY.PEEK[] por lotes. Un lote que expira se reintenta
        sobre una conexión nueva (reconexión + SELECT); `max_timeouts` expiraciones
        seguidas abortan con ProtocolError (nunca se devuelve un resultado parcial).
        """
        self._selected_client()
        wanted = list(uids)
        logger.info("Descargando %d mensajes…", len(wanted))
        messages: list[FetchedMessage] = []
        for start in range(0, len(wanted), self.batch_size):
            batch = wanted[start:start + self.batch_size]
            response = self._fetch_batch(batch)
            for uid in batch:
                data = response.get(uid)
                if data is None:
                    logger.warning("UID=%s no devuelto por el servidor", uid)
                    continue
                messages.append(
                    FetchedMessage(
                        uid=uid,
                        raw=data.get(BODY_KEY) or b"",
                        flags=tuple(data.get(b"FLAGS") or ()),
                    )
                )
        return messages

    def mark_seen(self, uids: Iterable[int]) -> None:
        client = self._selected_client()
        uid_list = list(uids)
        if not uid_list:
            return
        logger.info("Marcando %d mensajes como leídos…", len(uid_list))
        try:
            client.add_flags(uid_list, [SEEN], silent=True)
        except _IMAP_ERRORS as exc:
            raise ProtocolError(f"UID STORE fallido: {exc}") from exc

    # ───────────────────────── internos ─────────────────────────
    def _fetch_batch(self, batch: list[int]) -> dict:
        timeouts = 0
        while True:
            client = self._selected_client()
            try:
                return client.fetch(batch, FETCH_ITEMS)
            except socket.timeout as exc:
                timeouts += 1
                logger.warning(
                    "FETCH sin respuesta en %ss (%d/%d)", self.fetch_timeout, timeouts, self.max_timeouts
                )
                # tras un timeout el socket ya no admite lecturas: se descarta
                self._drop()
                if timeouts >= self.max_timeouts:
                    raise ProtocolError(
                        f"FETCH no completado tras {timeouts} timeouts consecutivos"
                    ) from exc
                logger.info("Reconectando para reintentar el lote…")
                self.connect()
            except _IMAP_ERRORS as exc:
                raise ProtocolError(f"UID FETCH fallido: {exc}") from exc

    def _needs_login(self) -> bool:
        welcome = self.client.welcome if self.client else b""
        return not (welcome or b"").upper().startswith(b"* PREAUTH")

    def _selected_client(self) -> IMAPClient:
        if self.client is None or self.state is not SessionState.MAILBOX_SELECTED:
            raise ProtocolError(f"Sesión IMAP no preparada (estado={self.state.value})")
        return self.client

    def _drop(self) -> None:
        # cierre sin LOGOUT tras un fallo a mitad de conexión
        if self.client is not None:
            try:
                self.client.shutdown()
            except Exception:
                logger.debug("shutdown IMAP fallido", exc_info=True)
        self.client = None
        self.state = SessionState.DISCONNECTED
