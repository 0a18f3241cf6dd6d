"""
Meeting Details Enrichment

Best-effort extraction of timezone, duration and location hints from inbound
mail. Detections are advisory: each carries a confidence, and a stored value
is replaced only by a detection with strictly higher confidence.

Design Considerations:
- Ordered regex patterns, most specific first
- Date header offset used when the body names no timezone
- Unknown values are None, never a sentinel string
- Confirmation bodies parsed for "Date:" and "Time:" lines
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Any, Tuple

from src.config.scheduler_config import SCHEDULER_CONFIG
from src.scheduling.models import CanonicalMessage, SessionRecord
from src.utils.date_utils import parse_email_date, parse_iso_datetime

logger = logging.getLogger(__name__)


@dataclass
class Detection:
    value: Any
    confidence: float


@dataclass
class MeetingDetails:
    timezone: Optional[Detection] = None
    duration: Optional[Detection] = None
    location: Optional[Detection] = None
    is_virtual: Optional[Detection] = None


_TIMEZONE_PATTERNS = [
    (re.compile(r"my\s+time\s*zone\s*(?:is|:)?\s*([^.,\n]+)", re.I), 0.9, 1),
    (re.compile(r"time\s*zone\s*(?:is|:)\s*([A-Za-z0-9/_+\-]+(?:\s+[A-Za-z]+)?)", re.I), 0.85, 1),
    (re.compile(r"\b((?:GMT|UTC)\s?[+-]\d{1,2}(?::\d{2})?)", re.I), 0.8, 1),
    (re.compile(r"\b((?:Eastern|Pacific|Central|Mountain|Atlantic)\s+(?:Standard\s+|Daylight\s+)?Time)\b", re.I), 0.8, 1),
    (re.compile(r"\b(EST|EDT|PST|PDT|CST|CDT|MST|MDT|AKST|AKDT|HST|AEST|IST|BST|CET|CEST|EET|JST)\b"), 0.7, 1),
    (re.compile(r"\b(?:in|from)\s+(?:the\s+)?([A-Z]{3,5})\s+time\s*zone", re.I), 0.7, 1),
]

_DURATION_PATTERNS = [
    (re.compile(r"\b(\d+\s*(?:-|to)\s*\d+\s*(?:mins?|minutes|hours?|hrs?))\b", re.I), 0.8),
    (re.compile(r"\b(\d+(?:\.\d+)?\s*(?:hours?|hrs?|minutes|mins?))\b", re.I), 0.8),
    (re.compile(r"\b(\d+[-\s](?:hour|hr|minute|min))\s+(?:meeting|call)\b", re.I), 0.8),
]

_DURATION_KEYWORD = re.compile(r"\b(quick|brief|short|standard|regular|typical|long)\s+(?:meeting|call|chat|sync)\b", re.I)

_VIRTUAL_PATTERNS = [
    re.compile(r"\b(zoom|teams|google meet|meet\.google|webex|skype|hangouts|virtual|online|video call|conference call)\b", re.I),
    re.compile(r"\b(?:call|conference|meeting) link\b", re.I),
    re.compile(r"\b(?:join|connect)(?:\s+the)?\s+(?:meeting|call)\b", re.I),
]

_IN_PERSON_PATTERNS = [
    re.compile(r"\b(?:in[-\s]person|on[-\s]site|face[-\s]to[-\s]face|in[-\s]office|at\s+(?:the\s+)?office)\b", re.I),
    re.compile(r"\b(?:meeting\s+room|conference\s+room|office\s+space|location\s*:)", re.I),
    re.compile(r"\b(?:address\s*:|building|floor|suite|room\s+\d+|rm\s+\d+)", re.I),
    re.compile(r"\b(?:grab|have|get)\s+(?:a\s+)?(?:coffee|lunch|drinks?)\b", re.I),
]

_LOCATION_EXTRACT_PATTERNS = [
    re.compile(r"(?:location|address)\s*:\s*([^\n]+)", re.I),
    re.compile(r"(?:at|in)\s+(\d+\s+[A-Za-z0-9\s.,]+?\b(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way)\b)", re.I),
    re.compile(r"(?:in|at)\s+(?:the\s+)?((?:conference|meeting)\s+room(?:\s+[A-Za-z0-9-]+)?|(?:building|room|office)\s+[A-Za-z0-9-]+)", re.I),
    re.compile(r"(?:at|in)\s+(?:the\s+)?([A-Za-z0-9 ]+?\b(?:office|headquarters|hq|campus|center))\b", re.I),
]

_CONFIRMATION_FORMATS = [
    "%A, %B %d, %Y %I:%M %p",
    "%A, %B %d, %Y %I %p",
    "%B %d, %Y %I:%M %p",
    "%B %d, %Y %I %p",
    "%A, %b %d, %Y %I:%M %p",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %I:%M %p",
]


class MeetingDetailsDetector:
    """
    Regex-based detector for meeting metadata.

    Pure apart from logging; the caller decides whether a detection is
    strong enough to overwrite what the session already holds.
    """

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or SCHEDULER_CONFIG["enrichment"]
        self.duration_keywords = self.config["duration_keywords"]

    def detect(self, message: CanonicalMessage) -> MeetingDetails:
        body = message.body_text or ""
        details = MeetingDetails(
            timezone=self.detect_timezone(body, message.date_header),
            duration=self.detect_duration(body),
        )
        location, is_virtual = self.detect_location(body)
        details.location = location
        details.is_virtual = is_virtual
        return details

    def detect_timezone(self, body: str, date_header: Optional[str] = None) -> Optional[Detection]:
        for pattern, confidence, group in _TIMEZONE_PATTERNS:
            match = pattern.search(body)
            if match:
                value = match.group(group).strip()
                if value:
                    return Detection(value=value, confidence=confidence)

        if date_header:
            abbrev = re.search(r"\(([A-Z]{3,5})\)\s*$", date_header.strip())
            if abbrev:
                return Detection(value=abbrev.group(1), confidence=0.4)
            _, offset = parse_email_date(date_header)
            if offset:
                return Detection(value=f"GMT{offset}", confidence=0.4)
        return None

    def detect_duration(self, body: str) -> Optional[Detection]:
        for pattern, confidence in _DURATION_PATTERNS:
            match = pattern.search(body)
            if match:
                value = match.group(1).strip()
                return Detection(value=value, confidence=confidence)

        keyword = _DURATION_KEYWORD.search(body)
        if keyword:
            word = keyword.group(1).lower()
            if word in ("regular", "typical"):
                word = "standard"
            value = self.duration_keywords.get(word)
            if value:
                return Detection(value=value, confidence=0.5)
        return None

    def detect_location(self, body: str) -> Tuple[Optional[Detection], Optional[Detection]]:
        for pattern in _VIRTUAL_PATTERNS:
            match = pattern.search(body)
            if match:
                return (
                    Detection(value=self.config["default_location"], confidence=0.7),
                    Detection(value=True, confidence=0.7),
                )

        if any(pattern.search(body) for pattern in _IN_PERSON_PATTERNS):
            for pattern in _LOCATION_EXTRACT_PATTERNS:
                match = pattern.search(body)
                if match and match.group(1).strip():
                    return (
                        Detection(value=match.group(1).strip().rstrip("."), confidence=0.7),
                        Detection(value=False, confidence=0.7),
                    )
            return (
                Detection(value="In-person (location not specified)", confidence=0.5),
                Detection(value=False, confidence=0.6),
            )

        return None, None


def merge_details(
    session: Optional[SessionRecord],
    details: MeetingDetails,
    sender_email: str,
) -> Dict[str, Any]:
    """
    Compute the session fields a detection is allowed to change.

    Args:
        session: Current session, or None for a session being created
        details: Fresh detections from the latest message
        sender_email: Author of the message, keyed in the timezones map

    Returns:
        Partial update containing only changed fields, plus the updated
        enrichment_confidence map when anything changed
    """
    confidence = dict(session.enrichment_confidence) if session else {}
    timezones = dict(session.timezones) if session else {}
    update: Dict[str, Any] = {}

    def take(field_name: str, detection: Optional[Detection], current: Any) -> None:
        if detection is None or detection.value is None:
            return
        if detection.confidence <= confidence.get(field_name, 0.0) and current is not None:
            return
        if detection.value != current:
            update[field_name] = detection.value
        confidence[field_name] = detection.confidence

    take("meeting_duration", details.duration, session.meeting_duration if session else None)
    take("meeting_location", details.location, session.meeting_location if session else None)
    take("is_virtual", details.is_virtual, session.is_virtual if session else None)

    if details.timezone is not None and details.timezone.value:
        tz_key = f"timezone:{sender_email}"
        current_tz = timezones.get(sender_email)
        if current_tz is None or details.timezone.confidence > confidence.get(tz_key, 0.0):
            if current_tz != details.timezone.value:
                timezones[sender_email] = details.timezone.value
                update["timezones"] = timezones
            confidence[tz_key] = details.timezone.confidence

    previous = session.enrichment_confidence if session else {}
    if update or confidence != previous:
        update["enrichment_confidence"] = confidence
    return update


def extract_confirmed_datetime(
    body: Optional[str], decision_value: Optional[str] = None
) -> Optional[datetime]:
    """
    Resolve the confirmed meeting time.

    Prefers the decision engine's ISO value, then "Date:" and "Time:" lines
    in the confirmation body. Times without a zone are taken as UTC.
    """
    parsed = parse_iso_datetime(decision_value)
    if parsed:
        return parsed
    if not body:
        return None

    date_match = re.search(r"Date:\s*([^\n]+)", body)
    time_match = re.search(r"Time:\s*([^\n]+)", body)
    if not date_match or not time_match:
        return None

    date_str = date_match.group(1).strip()
    time_str = re.split(r"\s*-\s*|\s+to\s+", time_match.group(1).strip())[0]
    time_str = time_str.strip()
    zone = re.search(r"\s+([A-Z]{2,5})$", time_str)
    if zone and zone.group(1) not in ("AM", "PM"):
        time_str = time_str[:zone.start()]
    combined = f"{date_str} {time_str.upper()}"
    for fmt in _CONFIRMATION_FORMATS:
        try:
            return datetime.strptime(combined, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    logger.info(f"Could not parse confirmed date/time: {combined!r}")
    return None
