from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from comms.db import get_db_session

from .communication_log_repository import CommunicationLogRepository
from .conversation_repository import ConversationRepository
from .message_repository import MessageRepository
from .template_repository import TemplateRepository
from .user_repository import UserRepository


def get_conversation_repository(
    session: AsyncSession = Depends(get_db_session),
) -> ConversationRepository:
    return ConversationRepository(session)


def get_message_repository(
    session: AsyncSession = Depends(get_db_session),
) -> MessageRepository:
    return MessageRepository(session)


def get_user_repository(
    session: AsyncSession = Depends(get_db_session),
) -> UserRepository:
    """Dependency provider for UserRepository."""
    return UserRepository(session)


def get_template_repository(
    session: AsyncSession = Depends(get_db_session),
) -> TemplateRepository:
    """Dependency provider for TemplateRepository."""
    return TemplateRepository(session)


def get_communication_log_repository(
    session: AsyncSession = Depends(get_db_session),
) -> CommunicationLogRepository:
    """Dependency provider for CommunicationLogRepository."""
    return CommunicationLogRepository(session)
