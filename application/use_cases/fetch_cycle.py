# application/use_cases/fetch_cycle.py
from __future__ import annotations
import logging
from typing import Callable, Protocol, Sequence

from application.services import message_decoder
from application.services.multipart_walker import MultipartWalker
from domain.errors import CycleCancelled
from domain.models import CycleResult, FetchedMessage

logger = logging.getLogger(__name__)


class MailSession(Protocol):
    def search_unseen(self) -> Sequence[int]: ...
    def fetch_bodies(self, uids: Sequence[int]) -> list[FetchedMessage]: ...
    def mark_seen(self, uids: Sequence[int]) -> None: ...


class FetchCycleUseCase:
    def __init__(self, *, walker: MultipartWalker, should_stop: Callable[[], bool] | None = None) -> None:
        self.walker = walker
        self.should_stop = should_stop or (lambda: False)

    def run_once(self, session: MailSession) -> CycleResult:
        """
        SEARCH -> FETCH -> (decode + walk por mensaje) -> un único STORE \\Seen.
        Cualquier fallo de SEARCH/FETCH/STORE se propaga y no se marca nada; un
        mensaje ilegible o un adjunto que no se pudo guardar solo se registran.
        """
        uids = tuple(session.search_unseen())
        result = CycleResult(uids=uids)
        if not uids:
            logger.info("Sin correos nuevos.")
            return result

        logger.info("Encontrados %d correos no leídos", len(uids))
        fetched = session.fetch_bodies(uids)

        done: list[int] = []
        for item in fetched:
            if self.should_stop():
                raise CycleCancelled(
                    f"Parada solicitada tras {len(done)}/{len(fetched)} mensajes; no se marca nada"
                )
            done.append(item.uid)

            parsed = message_decoder.decode(item.uid, item.raw)
            if parsed is None:
                result.skipped += 1
                continue

            logger.info("|-- %s", parsed.subject)
            report = self.walker.walk(parsed)
            result.processed += 1
            result.extracted.extend(report.extracted)
            result.failed.extend(report.failed)

        if done:
            session.mark_seen(done)
            result.marked_seen = True
            logger.info(
                "Ciclo OK: %d procesados, %d omitidos, %d PDF guardados, %d fallidos",
                result.processed, result.skipped, len(result.extracted), len(result.failed),
            )
        return result
