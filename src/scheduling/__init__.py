"""
Scheduling package initialization.
"""

from .models import (
    SessionStatus,
    ParticipantStatus,
    MessageRole,
    Intent,
    NextStep,
    CanonicalMessage,
    SessionRecord,
    ProcessingOutcome,
    NudgeSummary,
)
from .exceptions import (
    SchedulingError,
    IgnorableInputError,
    SessionUnavailableError,
    DuplicateMessageError,
    DecisionEngineError,
)
from .base import MessageSender, SessionRepository, DecisionEngine, EventSink
from .gateway import EmailGateway
from .processor import SchedulingProcessor
from .nudger import NudgeScheduler, NudgeThresholds

__all__ = [
    'SessionStatus',
    'ParticipantStatus',
    'MessageRole',
    'Intent',
    'NextStep',
    'CanonicalMessage',
    'SessionRecord',
    'ProcessingOutcome',
    'NudgeSummary',
    'SchedulingError',
    'IgnorableInputError',
    'SessionUnavailableError',
    'DuplicateMessageError',
    'DecisionEngineError',
    'MessageSender',
    'SessionRepository',
    'DecisionEngine',
    'EventSink',
    'EmailGateway',
    'SchedulingProcessor',
    'NudgeScheduler',
    'NudgeThresholds',
]
