"""
Scheduling Service

Wires configuration into the scheduling components and exposes them to route
handlers through FastAPI dependency injection.

Design Considerations:
- Components constructed once per process and shared across requests
- Routes depend on the service, never on concrete clients
- Read-only session inspection goes through the same repository
"""

import logging
from typing import Any, List, Optional

from api.config import SchedulerSettings, get_settings
from src.config.scheduler_config import SCHEDULER_CONFIG
from src.integrations.groq.client import EnhancedGroqClient
from src.integrations.postmark.client import PostmarkClient
from src.scheduling.analyzers.decision_engine import GroqDecisionEngine
from src.scheduling.base import DecisionEngine, MessageSender, SessionRepository
from src.scheduling.gateway import EmailGateway
from src.scheduling.models import MessageRecord, NudgeSummary, ProcessingOutcome, SessionRecord
from src.scheduling.nudger import NudgeScheduler, NudgeThresholds
from src.scheduling.processor import SchedulingProcessor
from src.storage.database import create_db_engine, create_session_factory, init_db
from src.storage.session_repository import SqlSessionRepository

logger = logging.getLogger(__name__)


class SchedulingService:
    """
    Facade over the inbound processor, the nudge scheduler and the store.

    Accepts pre-built components so tests can substitute fakes for the
    transport, the decision engine or the repository.
    """

    def __init__(
        self,
        settings: SchedulerSettings,
        repository: SessionRepository,
        sender: MessageSender,
        decision_engine: DecisionEngine,
    ):
        self.settings = settings
        self.repository = repository
        self.gateway = EmailGateway(sender, settings.SENDER_ADDRESS)
        self.processor = SchedulingProcessor(
            repository=repository,
            gateway=self.gateway,
            decision_engine=decision_engine,
            assistant_address=settings.SENDER_ADDRESS,
        )
        self.nudger = NudgeScheduler(
            repository,
            self.gateway,
            NudgeThresholds.from_minutes(
                settings.NUDGE_FIRST_AFTER_MINUTES,
                settings.NUDGE_SECOND_AFTER_MINUTES,
                settings.ESCALATE_AFTER_MINUTES,
            ),
        )

    @classmethod
    def from_settings(cls, settings: SchedulerSettings) -> "SchedulingService":
        """Build the production component graph from settings."""
        engine = create_db_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
        init_db(engine)
        repository = SqlSessionRepository(create_session_factory(engine))

        sender = PostmarkClient(
            server_token=settings.POSTMARK_SERVER_TOKEN.get_secret_value(),
            api_url=settings.POSTMARK_API_URL,
            message_stream=SCHEDULER_CONFIG["outbound"]["message_stream"],
        )
        groq_key = settings.GROQ_API_KEY.get_secret_value() or None
        decision_engine = GroqDecisionEngine(
            EnhancedGroqClient(api_key=groq_key),
            timeout=settings.DECISION_TIMEOUT_SECONDS,
        )
        logger.info(f"Scheduling service initialized for {settings.ENVIRONMENT.value}")
        return cls(settings, repository, sender, decision_engine)

    async def handle_inbound(self, payload: Any) -> ProcessingOutcome:
        return await self.processor.process_inbound(payload)

    async def run_nudge_sweep(self) -> NudgeSummary:
        return await self.nudger.run_sweep()

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        return await self.repository.get_session(session_id)

    async def get_messages(self, session_id: str) -> List[MessageRecord]:
        return await self.repository.list_messages(session_id)


_service: Optional[SchedulingService] = None


def get_scheduling_service() -> SchedulingService:
    """Provide the shared scheduling service for dependency injection."""
    global _service
    if _service is None:
        _service = SchedulingService.from_settings(get_settings())
    return _service
