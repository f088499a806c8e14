from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from comms.models import CommunicationLog, User
from comms.schemas.communication import Channel, DeliveryStatus
from comms.schemas.participant import ParticipantType

from .base import BaseRepository


class CommunicationLogRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def create_entry(
        self,
        recipient_id: UUID,
        recipient_type: ParticipantType,
        channel: Channel,
        body: str,
        status: DeliveryStatus,
        recipient_name: str | None = None,
        recipient_contact: str | None = None,
        subject: str | None = None,
        template_id: UUID | None = None,
        scheduled_for: datetime | None = None,
        sent_at: datetime | None = None,
        sent_by: UUID | None = None,
        error_message: str | None = None,
    ) -> CommunicationLog:
        entry = CommunicationLog(
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            recipient_name=recipient_name,
            recipient_contact=recipient_contact,
            channel=channel,
            direction="outbound",
            subject=subject,
            body=body,
            template_id=template_id,
            status=status,
            scheduled_for=scheduled_for,
            sent_at=sent_at,
            sent_by=sent_by,
            error_message=error_message,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_entry(
        self, entry_id: UUID
    ) -> tuple[CommunicationLog, User | None] | None:
        stmt = (
            select(CommunicationLog, User)
            .outerjoin(User, User.id == CommunicationLog.sent_by)
            .filter(CommunicationLog.id == entry_id)
        )
        result = await self.session.execute(stmt)
        row = result.first()
        return tuple(row) if row is not None else None

    async def list_entries(
        self,
        limit: int,
        offset: int,
        channel: Channel | None = None,
        status: DeliveryStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        search: str | None = None,
    ) -> tuple[list[tuple[CommunicationLog, User | None]], int]:
        """Activity log page, newest first, with the sending user joined in."""
        filters = []
        if channel is not None:
            filters.append(CommunicationLog.channel == channel)
        if status is not None:
            filters.append(CommunicationLog.status == status)
        if start is not None:
            filters.append(CommunicationLog.created_at >= start)
        if end is not None:
            filters.append(CommunicationLog.created_at < end)
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(
                or_(
                    func.lower(CommunicationLog.recipient_name).like(pattern),
                    func.lower(CommunicationLog.recipient_contact).like(pattern),
                )
            )

        stmt = (
            select(CommunicationLog, User)
            .outerjoin(User, User.id == CommunicationLog.sent_by)
            .filter(*filters)
            .order_by(CommunicationLog.created_at.desc(), CommunicationLog.id)
            .limit(limit)
            .offset(offset)
        )
        count_stmt = select(func.count(CommunicationLog.id)).filter(*filters)

        result = await self.session.execute(stmt)
        rows = [(entry, user) for entry, user in result.all()]
        total = (await self.session.execute(count_stmt)).scalar_one()
        return rows, total

    async def list_scheduled(self) -> Sequence[CommunicationLog]:
        """Scheduled rows that can still be cancelled."""
        stmt = (
            select(CommunicationLog)
            .filter(
                CommunicationLog.status == DeliveryStatus.SCHEDULED,
                CommunicationLog.claimed_at.is_(None),
            )
            .order_by(CommunicationLog.scheduled_for.asc(), CommunicationLog.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_due(self, now: datetime, limit: int) -> Sequence[CommunicationLog]:
        stmt = (
            select(CommunicationLog)
            .filter(
                CommunicationLog.status == DeliveryStatus.SCHEDULED,
                CommunicationLog.claimed_at.is_(None),
                CommunicationLog.scheduled_for <= now,
            )
            .order_by(CommunicationLog.scheduled_for.asc(), CommunicationLog.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def _update_scheduled(self, entry_id: UUID, claimed: bool, **values) -> bool:
        """Conditional update of a ``scheduled`` row, unclaimed or claimed.

        Returns False when the row has moved on (cancelled, taken by another
        sweep or finished) or does not exist.
        """
        claim_filter = (
            CommunicationLog.claimed_at.is_not(None)
            if claimed
            else CommunicationLog.claimed_at.is_(None)
        )
        stmt = (
            update(CommunicationLog)
            .where(
                CommunicationLog.id == entry_id,
                CommunicationLog.status == DeliveryStatus.SCHEDULED,
                claim_filter,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def cancel_scheduled(self, entry_id: UUID) -> bool:
        return await self._update_scheduled(
            entry_id, claimed=False, status=DeliveryStatus.CANCELLED
        )

    async def claim_scheduled(self, entry_id: UUID, now: datetime) -> bool:
        return await self._update_scheduled(entry_id, claimed=False, claimed_at=now)

    async def mark_claimed_sent(self, entry_id: UUID, sent_at: datetime) -> bool:
        return await self._update_scheduled(
            entry_id, claimed=True, status=DeliveryStatus.SENT, sent_at=sent_at
        )

    async def mark_claimed_failed(self, entry_id: UUID, reason: str) -> bool:
        return await self._update_scheduled(
            entry_id, claimed=True, status=DeliveryStatus.FAILED, error_message=reason
        )
