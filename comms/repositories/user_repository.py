from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from comms.models import DriverProfile, User, UserRole
from comms.schemas.participant import ParticipantType

from .base import BaseRepository

FALLBACK_NAMES = {
    ParticipantType.USER: "Customer",
    ParticipantType.DRIVER: "Driver",
    ParticipantType.ADMIN: "Admin",
}


def display_name(
    participant_type: ParticipantType,
    user: User | None,
    profile: DriverProfile | None = None,
    fallback: bool = True,
) -> str | None:
    """Resolve the name shown for an identity acting under a given role.

    Drivers are known by their driver-profile name; customers and admins by
    their account's first and last name.
    """
    name = None
    if participant_type == ParticipantType.DRIVER and profile is not None:
        name = profile.name
    if not name and user is not None:
        name = user.full_name
    if not name and fallback:
        name = FALLBACK_NAMES[participant_type]
    return name or None


class UserRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def get_role_grants(self, user_id: UUID) -> set[str]:
        stmt = select(UserRole.role).filter(UserRole.user_id == user_id)
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def get_driver_profile(self, user_id: UUID) -> DriverProfile | None:
        stmt = select(DriverProfile).filter(DriverProfile.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_support_admin(self) -> User | None:
        """Returns the admin who receives new customer and driver conversations."""
        admin_ids = select(UserRole.user_id).filter(UserRole.role == "admin")
        stmt = (
            select(User)
            .filter(
                User.is_active.is_(True),
                or_(User.id.in_(admin_ids), User.is_superuser.is_(True)),
            )
            .order_by(User.created_at.asc(), User.id.asc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_display_name(
        self, user_id: UUID, participant_type: ParticipantType
    ) -> str | None:
        user = await self.get_user_by_id(user_id)
        profile = None
        if participant_type == ParticipantType.DRIVER:
            profile = await self.get_driver_profile(user_id)
        return display_name(participant_type, user, profile)
