import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from comms.models import CommunicationLog
from comms.models.base import utcnow
from comms.repositories.communication_log_repository import (
    CommunicationLogRepository,
)

from .channels import DeliveryError
from .notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class ScheduledSendSweeper:
    """Promotes due ``scheduled`` log rows to delivery attempts.

    Each row is claimed by stamping ``claimed_at`` on an unclaimed
    ``scheduled`` row, committed before anything is sent. A row is therefore
    attempted at most once, and a concurrent cancel either wins outright or
    affects nothing. The row stays ``scheduled`` while delivery is in flight
    and only then moves to ``sent`` (with ``sent_at``) or ``failed``; failed
    rows are never retried.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        interval: float = 60.0,
        batch_size: int = 100,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.interval = interval
        self.batch_size = batch_size

    async def run_once(self, now: datetime | None = None) -> SweepResult:
        now = now or utcnow()
        async with self.session_factory() as session:
            due = await CommunicationLogRepository(session).list_due(
                now, self.batch_size
            )

        result = SweepResult()
        if not due:
            return result

        logger.info(f"Sweeper found {len(due)} due scheduled message(s)")
        outcomes = await asyncio.gather(
            *(self._process(entry, now) for entry in due), return_exceptions=True
        )
        for entry, outcome in zip(due, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    f"Scheduled entry {entry.id} could not be processed: {outcome}",
                    exc_info=(type(outcome), outcome, outcome.__traceback__),
                )
                result.failed += 1
            elif outcome is None:
                result.skipped += 1
            elif outcome:
                result.sent += 1
            else:
                result.failed += 1
        logger.info(
            f"Sweep finished: sent={result.sent} failed={result.failed} "
            f"skipped={result.skipped}"
        )
        return result

    async def _process(self, entry: CommunicationLog, now: datetime) -> bool | None:
        """Returns True when delivered, False when it failed, None when the row
        was no longer ``scheduled`` by the time it was claimed."""
        async with self.session_factory() as session:
            claimed = await CommunicationLogRepository(session).claim_scheduled(
                entry.id, now
            )
            await session.commit()
        if not claimed:
            logger.info(f"Scheduled entry {entry.id} was cancelled or already taken")
            return None

        reason = None
        if not entry.recipient_contact:
            reason = "Recipient has no contact address"
        else:
            try:
                await self.dispatcher.deliver(
                    entry.channel, entry.recipient_contact, entry.subject, entry.body
                )
            except DeliveryError as e:
                reason = str(e)
            except Exception as e:
                logger.error(
                    f"Unexpected error delivering scheduled entry {entry.id}: {e}",
                    exc_info=True,
                )
                reason = f"Unexpected delivery error: {e}"

        async with self.session_factory() as session:
            log_repo = CommunicationLogRepository(session)
            if reason is None:
                await log_repo.mark_claimed_sent(entry.id, utcnow())
            else:
                await log_repo.mark_claimed_failed(entry.id, reason)
            await session.commit()

        if reason is None:
            logger.info(f"Scheduled entry {entry.id} sent via {entry.channel.value}")
            return True
        logger.warning(f"Scheduled entry {entry.id} failed: {reason}")
        return False

    async def run(self) -> None:
        logger.info(f"Scheduled-send sweeper started (interval={self.interval}s)")
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Scheduled-send sweep failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)
