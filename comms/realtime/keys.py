from dataclasses import dataclass
from typing import Iterable, NamedTuple
from uuid import UUID

from comms.schemas.participant import ParticipantType

# Priority used to pick the primary role reported to a client.
ROLE_PRIORITY = (ParticipantType.ADMIN, ParticipantType.DRIVER, ParticipantType.USER)


class ParticipantKey(NamedTuple):
    """Routing key for one of a person's identities."""

    role: ParticipantType
    id: UUID

    def __str__(self) -> str:
        return f"{self.role.value}:{self.id}"


@dataclass(frozen=True)
class RoleSet:
    roles: tuple[ParticipantType, ...]

    @classmethod
    def from_grants(cls, grants: Iterable[str], is_superuser: bool = False) -> "RoleSet":
        """Union of every role the grants entitle the identity to act under.

        ``customer`` grants and identities holding no grant at all act as ``user``.
        """
        grants = set(grants)
        resolved = []
        if "admin" in grants or is_superuser:
            resolved.append(ParticipantType.ADMIN)
        if "driver" in grants:
            resolved.append(ParticipantType.DRIVER)
        if "customer" in grants or not grants:
            resolved.append(ParticipantType.USER)
        return cls(tuple(resolved))

    @property
    def primary(self) -> ParticipantType:
        for role in ROLE_PRIORITY:
            if role in self.roles:
                return role
        return ParticipantType.USER

    def __contains__(self, role: object) -> bool:
        return role in self.roles

    def keys_for(self, identity_id: UUID) -> list[ParticipantKey]:
        return [ParticipantKey(role, identity_id) for role in self.roles]
