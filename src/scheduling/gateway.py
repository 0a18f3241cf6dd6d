"""
Email Gateway Adapter

Normalizes Postmark inbound webhook events into CanonicalMessage records and
sends threaded outbound mail through an injected MessageSender.

Design Considerations:
- Provider field names never leave this module
- Malformed input raises IgnorableInputError so the caller can acknowledge it
- Outbound sends report success or failure explicitly instead of raising
- Individual sends run concurrently and are all awaited
"""

import asyncio
import logging
from typing import Dict, List, Optional, Any

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.config.scheduler_config import SCHEDULER_CONFIG
from src.scheduling.addressing import (
    build_references,
    build_reply_to_address,
    clean_message_id,
    extract_routing_token,
    format_message_id,
    is_assistant_address,
    mask_email,
    normalize_email,
    parse_references,
)
from src.scheduling.base import MessageSender
from src.scheduling.exceptions import IgnorableInputError
from src.scheduling.models import CanonicalMessage, EmailAddress, SendResult, ThreadingContext

logger = logging.getLogger(__name__)


class PostmarkAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: Optional[str] = Field(default=None, alias="Email")
    name: Optional[str] = Field(default=None, alias="Name")
    mailbox_hash: Optional[str] = Field(default=None, alias="MailboxHash")


class PostmarkHeader(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, alias="Name")
    value: Optional[str] = Field(default=None, alias="Value")


class InboundEmailPayload(BaseModel):
    """Postmark inbound webhook body (fields the assistant reads)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_address: Optional[str] = Field(default=None, alias="From")
    from_name: Optional[str] = Field(default=None, alias="FromName")
    from_full: Optional[PostmarkAddress] = Field(default=None, alias="FromFull")
    to: Optional[str] = Field(default="", alias="To")
    to_full: List[PostmarkAddress] = Field(default_factory=list, alias="ToFull")
    cc: Optional[str] = Field(default="", alias="Cc")
    cc_full: List[PostmarkAddress] = Field(default_factory=list, alias="CcFull")
    original_recipient: Optional[str] = Field(default=None, alias="OriginalRecipient")
    subject: Optional[str] = Field(default=None, alias="Subject")
    message_id: Optional[str] = Field(default=None, alias="MessageID")
    mailbox_hash: Optional[str] = Field(default=None, alias="MailboxHash")
    date: Optional[str] = Field(default=None, alias="Date")
    text_body: Optional[str] = Field(default=None, alias="TextBody")
    html_body: Optional[str] = Field(default=None, alias="HtmlBody")
    headers: List[PostmarkHeader] = Field(default_factory=list, alias="Headers")

    @field_validator("to_full", "cc_full", "headers", mode="before")
    @classmethod
    def null_list_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("headers", mode="before")
    @classmethod
    def drop_malformed_headers(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [
            item for item in value
            if isinstance(item, dict)
            and isinstance(item.get("Name"), str)
            and isinstance(item.get("Value"), (str, type(None)))
        ]

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for item in self.headers:
            if item.name and item.name.lower() == wanted:
                return item.value or None
        return None


def html_to_text(html: Optional[str]) -> str:
    """Extract readable text from an HTML body, one line per block."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = (line.strip() for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def reply_subject(subject: Optional[str]) -> str:
    subject = (subject or "").strip() or "Meeting scheduling"
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


def _addresses(full: List[PostmarkAddress]) -> List[EmailAddress]:
    result = []
    for item in full:
        email = normalize_email(item.email)
        if email:
            result.append(EmailAddress(email=email, name=(item.name or None)))
    return result


def _addresses_from_raw(raw: Optional[str]) -> List[EmailAddress]:
    result = []
    for part in (raw or "").split(","):
        email = normalize_email(part)
        if "@" in email:
            result.append(EmailAddress(email=email))
    return result


class EmailGateway:
    """
    Boundary between the email provider and the scheduling pipeline.

    Inbound: validates and normalizes webhook events. Outbound: applies the
    recipient grouping policy and threading headers, then delegates each
    message to the MessageSender.
    """

    def __init__(self, sender: MessageSender, assistant_address: str):
        self.sender = sender
        self.assistant_address = normalize_email(assistant_address)
        outbound = SCHEDULER_CONFIG["outbound"]
        self.individual_tag = outbound["individual_recipient_tag"]
        self.reply_directly_note = outbound["reply_directly_note"]

    def receive_inbound(self, raw_event: Any) -> CanonicalMessage:
        """
        Normalize a raw inbound webhook event.

        Args:
            raw_event: Decoded JSON body of the webhook request

        Returns:
            CanonicalMessage for the pipeline

        Raises:
            IgnorableInputError: Payload is not an object, fails validation,
                lacks a sender or carries no message id
        """
        if not isinstance(raw_event, dict):
            raise IgnorableInputError("Inbound payload is not a JSON object")

        try:
            payload = InboundEmailPayload.model_validate(raw_event)
        except ValidationError as e:
            raise IgnorableInputError(f"Inbound payload failed validation: {e.error_count()} errors") from e

        sender_email = normalize_email(
            payload.from_full.email if payload.from_full and payload.from_full.email
            else payload.from_address
        )
        if not sender_email or "@" not in sender_email:
            raise IgnorableInputError("Inbound payload has no sender", reason="ignored_missing_sender")
        sender_name = (payload.from_full.name if payload.from_full else None) or payload.from_name or None

        header_message_id = clean_message_id(payload.header("Message-ID"))
        provider_message_id = clean_message_id(payload.message_id) or header_message_id
        if not provider_message_id:
            raise IgnorableInputError("Inbound payload has no message id")
        message_id_header = header_message_id or provider_message_id

        to = _addresses(payload.to_full) or _addresses_from_raw(payload.to)
        cc = _addresses(payload.cc_full) or _addresses_from_raw(payload.cc)

        body_text = payload.text_body or ""
        if not body_text.strip() and payload.html_body:
            body_text = html_to_text(payload.html_body)

        message = CanonicalMessage(
            sender=EmailAddress(email=sender_email, name=sender_name),
            to=to,
            cc=cc,
            subject=(payload.subject or "").strip() or "(no subject)",
            body_text=body_text,
            body_html=payload.html_body,
            provider_message_id=provider_message_id,
            message_id_header=message_id_header,
            in_reply_to=clean_message_id(payload.header("In-Reply-To")),
            references=parse_references(payload.header("References")),
            routing_token=self._routing_token(payload),
            original_recipient=normalize_email(payload.original_recipient) or None,
            date_header=payload.date or payload.header("Date"),
            raw_to=payload.to or "",
            raw_cc=payload.cc or "",
            raw_payload=raw_event,
        )
        logger.info(
            f"Inbound message {provider_message_id} from {mask_email(sender_email)} "
            f"token={'yes' if message.routing_token else 'no'}"
        )
        return message

    def _routing_token(self, payload: InboundEmailPayload) -> Optional[str]:
        if payload.mailbox_hash and payload.mailbox_hash.strip():
            return payload.mailbox_hash.strip()
        candidates = [a.email for a in payload.to_full + payload.cc_full]
        candidates += [payload.original_recipient]
        candidates += [a.email for a in _addresses_from_raw(payload.to)]
        for address in candidates:
            token = extract_routing_token(address, self.assistant_address)
            if token:
                return token
        return None

    def reply_to_for(self, routing_token: str) -> str:
        return build_reply_to_address(self.assistant_address, routing_token)

    async def send_threaded(
        self,
        subject: str,
        body: str,
        recipients: List[str],
        threading: ThreadingContext,
        routing_token: str,
        send_as_group: bool = False,
    ) -> SendResult:
        """
        Send a threaded email to one or more recipients.

        Args:
            subject: Subject line
            body: Plain-text body
            recipients: Recipient addresses; the assistant's own address is
                always removed
            threading: In-Reply-To target and inherited references
            routing_token: Session id embedded in the Reply-To address
            send_as_group: One email to all recipients instead of one each

        Returns:
            SendResult with the first delivered provider id and the delivered
            and failed recipient lists
        """
        targets: List[str] = []
        for address in recipients:
            email = normalize_email(address)
            if not email or "@" not in email or email in targets:
                continue
            if is_assistant_address(email, self.assistant_address):
                logger.warning("Dropped assistant address from outbound recipients")
                continue
            targets.append(email)

        if not targets:
            logger.info("send_threaded called with no deliverable recipients")
            return SendResult(status="no_recipients")

        headers: Dict[str, str] = {}
        trigger = clean_message_id(threading.in_reply_to)
        if trigger:
            headers["In-Reply-To"] = format_message_id(trigger)
        references = build_references(threading.references, trigger)
        if references:
            headers["References"] = " ".join(format_message_id(r) for r in references)

        reply_to = self.reply_to_for(routing_token)
        if not send_as_group:
            headers["X-PM-Tag"] = self.individual_tag

        if send_as_group or len(targets) == 1:
            message_id = await self._send_one(", ".join(targets), subject, body, reply_to, headers)
            if message_id:
                return SendResult(
                    status="sent",
                    message_id=message_id,
                    delivered=list(targets),
                    message_ids={target: message_id for target in targets},
                )
            return SendResult(status="failed", failed=list(targets))

        individual_body = body.rstrip()
        if self.reply_directly_note not in individual_body:
            individual_body = f"{individual_body}\n\n{self.reply_directly_note}"

        results = await asyncio.gather(
            *(
                self._send_one(target, subject, individual_body, reply_to, headers)
                for target in targets
            ),
            return_exceptions=True,
        )

        delivered, failed, first_id = [], [], None
        message_ids: Dict[str, str] = {}
        for target, result in zip(targets, results):
            if isinstance(result, Exception) or not result:
                failed.append(target)
                continue
            delivered.append(target)
            message_ids[target] = result
            first_id = first_id or result

        if failed:
            logger.warning(f"Individual send failed for {len(failed)} of {len(targets)} recipients")
        status = "sent" if not failed else ("partial" if delivered else "failed")
        return SendResult(
            status=status,
            message_id=first_id,
            delivered=delivered,
            failed=failed,
            message_ids=message_ids,
        )

    async def _send_one(
        self, to: str, subject: str, body: str, reply_to: str, headers: Dict[str, str]
    ) -> Optional[str]:
        try:
            return await self.sender.send_email(
                sender=self.assistant_address,
                to=to,
                subject=subject,
                text_body=body,
                reply_to=reply_to,
                headers=dict(headers),
            )
        except Exception as e:
            logger.error(f"Transport error sending to {mask_email(to)}: {str(e)}", exc_info=True)
            return None
