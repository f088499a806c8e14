import uuid

import sqlalchemy
from fastapi_users.db import SQLAlchemyBaseUserTable
from sqlalchemy import Boolean, Column, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from .base import BaseModel


# email, hashed_password, is_active, is_superuser, is_verified come from
# SQLAlchemyBaseUserTable; id and timestamps from BaseModel.
class User(SQLAlchemyBaseUserTable[uuid.UUID], BaseModel):
    __tablename__ = "users"

    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    phone = Column(String(32), nullable=True)
    message_email_notifications = Column(
        Boolean, nullable=False, default=True, server_default=sqlalchemy.true()
    )

    roles = relationship(
        "UserRole", back_populates="user", cascade="all, delete-orphan"
    )
    driver_profile = relationship(
        "DriverProfile", back_populates="user", uselist=False
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class UserRole(BaseModel):
    """A role grant held by a user (``admin``, ``driver`` or ``customer``)."""

    __tablename__ = "user_roles"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    role = Column(String(32), nullable=False)

    user = relationship("User", back_populates="roles")

    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)


class DriverProfile(BaseModel):
    __tablename__ = "driver_profiles"

    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, unique=True
    )
    name = Column(Text, nullable=False)
    phone = Column(String(32), nullable=True)
    message_email_notifications = Column(
        Boolean, nullable=False, default=True, server_default=sqlalchemy.true()
    )

    user = relationship("User", back_populates="driver_profile")
