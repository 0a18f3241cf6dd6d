"""
Groq Decision Engine

Two-stage decision engine over the Groq chat completions API. The router
classifies the latest email's intent; the executor picks the next workflow
step and writes the outbound email body.

Design Considerations:
- Every call bounded by asyncio.wait_for
- JSON object response format validated with pydantic models
- Any failure degrades to unknown intent or no action, never raises
- Session context serialized only at this boundary
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.config.scheduler_config import SCHEDULER_CONFIG
from src.integrations.groq.client import EnhancedGroqClient
from src.scheduling.base import DecisionEngine
from src.scheduling.exceptions import DecisionEngineError
from src.scheduling.models import (
    ActionDecision,
    Intent,
    IntentResult,
    MessageRecord,
    MessageRole,
    NextStep,
    SessionContext,
)
from src.scheduling.prompts import EXECUTOR_SYSTEM_PROMPT, ROUTER_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class RouterOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    intent: Intent
    cancelling_participant_email: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("cancelling_participant_email", "cancellingParticipantEmail"),
    )


class ExecutorOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    next_step: NextStep = Field(validation_alias=AliasChoices("next_step", "nextStep"))
    recipients: List[str] = Field(default_factory=list)
    email_body: str = Field(default="", validation_alias=AliasChoices("email_body", "emailBody"))
    confirmed_datetime: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("confirmed_datetime", "confirmedDatetime"),
    )

    @field_validator("recipients", mode="before")
    @classmethod
    def coerce_recipients(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("email_body", mode="before")
    @classmethod
    def coerce_body(cls, value: Any) -> str:
        return value or ""


def _role_for(message: MessageRecord) -> Optional[str]:
    if message.role in (MessageRole.HUMAN_ORGANIZER, MessageRole.HUMAN_PARTICIPANT):
        return "user"
    if message.role == MessageRole.AI_AGENT:
        return "assistant"
    return None


class GroqDecisionEngine(DecisionEngine):
    """
    DecisionEngine implementation backed by EnhancedGroqClient.

    The conversation history is replayed as chat turns (human mail as user,
    assistant mail as assistant); the final user turn carries the structured
    session context and the latest email.
    """

    def __init__(
        self,
        client: EnhancedGroqClient,
        timeout: Optional[float] = None,
        config: Optional[Dict] = None,
    ):
        self.client = client
        self.config = config or SCHEDULER_CONFIG
        engine_config = self.config["decision_engine"]
        self.timeout = timeout if timeout is not None else engine_config["timeout"]
        self.max_history = engine_config["max_history_messages"]

    def _build_messages(
        self,
        system_prompt: str,
        history: List[MessageRecord],
        latest: MessageRecord,
        context: SessionContext,
        extra: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        prior = [m for m in history if m.id != latest.id][-self.max_history:]
        for record in prior:
            role = _role_for(record)
            if role and record.body_text:
                messages.append({"role": role, "content": record.body_text})

        payload: Dict[str, Any] = {
            "session_context": context.to_dict(),
            "latest_email": {
                "from": latest.sender_email,
                "role": latest.role.value,
                "to": latest.recipients,
                "subject": latest.subject,
                "body": latest.body_text or "",
            },
            "current_time": datetime.now().astimezone().isoformat(),
        }
        if extra:
            payload.update(extra)
        messages.append({"role": "user", "content": json.dumps(payload, default=str)})
        return messages

    async def _complete(self, stage: str, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        model_config = self.config[stage]["model"]
        response = await asyncio.wait_for(
            self.client.process_with_retry(
                messages=messages,
                model=model_config["name"],
                max_retries=model_config["retry_count"],
                temperature=model_config["temperature"],
                max_completion_tokens=model_config["max_tokens"],
                response_format={"type": "json_object"},
            ),
            timeout=self.timeout,
        )
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise DecisionEngineError(f"{stage} response has no content") from e
        if not content:
            raise DecisionEngineError(f"{stage} response is empty")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise DecisionEngineError(f"{stage} response is not valid JSON") from e
        if not isinstance(data, dict):
            raise DecisionEngineError(f"{stage} response is not a JSON object")
        return data

    async def classify_intent(
        self,
        history: List[MessageRecord],
        latest: MessageRecord,
        context: SessionContext,
    ) -> IntentResult:
        """
        Classify the latest message.

        Returns:
            IntentResult; Intent.UNKNOWN on timeout, API error or invalid output
        """
        messages = self._build_messages(ROUTER_SYSTEM_PROMPT, history, latest, context)
        try:
            data = await self._complete("router", messages)
            output = RouterOutput.model_validate(data)
        except asyncio.TimeoutError:
            logger.error(f"Router timed out after {self.timeout}s for session {context.session_id}")
            return IntentResult(intent=Intent.UNKNOWN)
        except (DecisionEngineError, ValidationError) as e:
            logger.error(f"Router returned invalid output for session {context.session_id}: {str(e)}")
            return IntentResult(intent=Intent.UNKNOWN)
        except Exception as e:
            logger.error(f"Router call failed for session {context.session_id}: {str(e)}", exc_info=True)
            return IntentResult(intent=Intent.UNKNOWN)

        logger.info(f"Router intent for session {context.session_id}: {output.intent.value}")
        return IntentResult(
            intent=output.intent,
            cancelling_participant_email=output.cancelling_participant_email,
        )

    async def decide_action(
        self,
        history: List[MessageRecord],
        latest: MessageRecord,
        context: SessionContext,
        intent: IntentResult,
    ) -> ActionDecision:
        """
        Decide the next workflow step for a classified message.

        Returns:
            ActionDecision; no_action_needed on timeout, API error or invalid
            output
        """
        extra = {
            "detected_intent": intent.intent.value,
            "cancelling_participant_email": intent.cancelling_participant_email,
        }
        messages = self._build_messages(EXECUTOR_SYSTEM_PROMPT, history, latest, context, extra)
        try:
            data = await self._complete("executor", messages)
            output = ExecutorOutput.model_validate(data)
        except asyncio.TimeoutError:
            logger.error(f"Executor timed out after {self.timeout}s for session {context.session_id}")
            return ActionDecision.no_action(reason="decision_timeout")
        except (DecisionEngineError, ValidationError) as e:
            logger.error(f"Executor returned invalid output for session {context.session_id}: {str(e)}")
            return ActionDecision.no_action(reason="decision_invalid")
        except Exception as e:
            logger.error(f"Executor call failed for session {context.session_id}: {str(e)}", exc_info=True)
            return ActionDecision.no_action(reason="decision_failed")

        logger.info(f"Executor next step for session {context.session_id}: {output.next_step.value}")
        return ActionDecision(
            next_step=output.next_step,
            recipients=output.recipients,
            email_body=output.email_body,
            confirmed_datetime=output.confirmed_datetime,
        )
