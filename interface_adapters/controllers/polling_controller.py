# interface_adapters/controllers/polling_controller.py
from __future__ import annotations
import logging
import threading
from typing import Callable

from config.settings import Settings
from application.services.multipart_walker import MultipartWalker
from application.use_cases.fetch_cycle import FetchCycleUseCase
from domain.errors import AuthenticationError, CycleCancelled, MailPollerError
from domain.models import CycleResult
from infrastructure.email.imap_client import IMAPInbox
from infrastructure.filesystem.storage import AttachmentStorage

logger = logging.getLogger(__name__)

InboxFactory = Callable[[Settings], IMAPInbox]


def build_inbox(settings: Settings) -> IMAPInbox:
    return IMAPInbox(
        settings.imap_host(),
        settings.imap_port(),
        settings.USER,
        settings.PASSWORD,
        folder=settings.IMAP_FOLDER_INBOX,
        fetch_timeout=settings.FETCH_TIMEOUT,
        max_timeouts=settings.FETCH_MAX_TIMEOUTS,
        batch_size=settings.FETCH_BATCH_SIZE,
        logout_timeout=settings.LOGOUT_TIMEOUT,
    )


class PollingController:
    def __init__(
        self,
        settings: Settings,
        *,
        inbox_factory: InboxFactory = build_inbox,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.settings = settings
        self.inbox_factory = inbox_factory
        self.stop_event = stop_event or threading.Event()
        self.storage = AttachmentStorage(base=settings.destination_path())
        self.uc = FetchCycleUseCase(
            walker=MultipartWalker(self.storage.save_bytes, max_depth=settings.MAX_MIME_DEPTH),
            should_stop=self.stop_event.is_set,
        )

    def stop(self) -> None:
        self.stop_event.set()

    # ───────────────────────── ejecución ─────────────────────────
    def run_once(self) -> CycleResult:
        """Connect -> ciclo -> Disconnect. El LOGOUT se hace también si el ciclo falla."""
        with self.inbox_factory(self.settings) as inbox:
            return self.uc.run_once(inbox)

    def run_forever(self, interval: float, *, once: bool = False) -> int:
        """
        Devuelve el código de salida. Un ciclo fallido (conexión o protocolo) se
        registra y se reintenta en el siguiente intervalo; credenciales rechazadas
        terminan el proceso. Con `once` se hace un solo ciclo.
        """
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except AuthenticationError as exc:
                logger.critical("Login: %s", exc)
                return 1
            except CycleCancelled as exc:
                logger.warning("Ciclo interrumpido: %s", exc)
                return 0
            except MailPollerError as exc:
                logger.error("Ciclo fallido (%s): %s", type(exc).__name__, exc)
                if once:
                    return 1
            except Exception:
                logger.exception("Error en ciclo de polling")
                if once:
                    return 1

            if once:
                return 0
            logger.info("Durmiendo %ss", interval)
            if self.stop_event.wait(interval):
                break
        logger.info("Parada solicitada, saliendo.")
        return 0
