from fastapi import Depends, FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from comms.core.config import settings
from comms.core.tasks import BackgroundTaskRunner
from comms.realtime.broadcaster import Broadcaster
from comms.realtime.heartbeat import Heartbeat
from comms.realtime.registry import ConnectionRegistry
from comms.repositories.communication_log_repository import (
    CommunicationLogRepository,
)
from comms.repositories.conversation_repository import ConversationRepository
from comms.repositories.dependencies import (
    get_communication_log_repository,
    get_conversation_repository,
    get_message_repository,
    get_template_repository,
    get_user_repository,
)
from comms.repositories.message_repository import MessageRepository
from comms.repositories.template_repository import TemplateRepository
from comms.repositories.user_repository import UserRepository

from .channels import EmailSender, ResendEmailSender, SmsSender, TwilioSmsSender
from .communication_service import CommunicationService
from .conversation_service import ConversationService
from .notification_service import NotificationDispatcher
from .scheduled_sender import ScheduledSendSweeper
from .template_service import TemplateService


def install_components(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    email_sender: EmailSender | None = None,
    sms_sender: SmsSender | None = None,
) -> None:
    """Builds the application-scoped components and attaches them to ``app.state``."""
    registry = ConnectionRegistry()
    dispatcher = NotificationDispatcher(
        session_factory,
        email_sender=email_sender or ResendEmailSender(),
        sms_sender=sms_sender or TwilioSmsSender(),
        concurrency=settings.DISPATCH_CONCURRENCY,
    )
    app.state.session_factory = session_factory
    app.state.registry = registry
    app.state.broadcaster = Broadcaster(registry)
    app.state.heartbeat = Heartbeat(registry, settings.HEARTBEAT_INTERVAL_SECONDS)
    app.state.dispatcher = dispatcher
    app.state.sweeper = ScheduledSendSweeper(
        session_factory,
        dispatcher,
        interval=settings.SWEEPER_INTERVAL_SECONDS,
        batch_size=settings.SWEEPER_BATCH_SIZE,
    )
    app.state.tasks = BackgroundTaskRunner()


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_task_runner(request: Request) -> BackgroundTaskRunner:
    return request.app.state.tasks


def get_conversation_service(
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
    msg_repo: MessageRepository = Depends(get_message_repository),
    user_repo: UserRepository = Depends(get_user_repository),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    tasks: BackgroundTaskRunner = Depends(get_task_runner),
) -> ConversationService:
    """Provides an instance of the ConversationService with its dependencies."""
    return ConversationService(
        conversation_repository=conv_repo,
        message_repository=msg_repo,
        user_repository=user_repo,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
        tasks=tasks,
    )


def get_template_service(
    template_repo: TemplateRepository = Depends(get_template_repository),
) -> TemplateService:
    return TemplateService(template_repository=template_repo)


def get_communication_service(
    log_repo: CommunicationLogRepository = Depends(get_communication_log_repository),
    template_repo: TemplateRepository = Depends(get_template_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> CommunicationService:
    return CommunicationService(
        log_repository=log_repo,
        template_repository=template_repo,
        dispatcher=dispatcher,
    )
