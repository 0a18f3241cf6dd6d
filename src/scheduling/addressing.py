"""
Address and Threading Helpers

Pure functions for the assistant's plus-addressed routing scheme and for RFC
5322 threading headers.

Design Considerations:
- Assistant address may appear bare or as local+token@domain
- Message ids are stored without angle brackets
- References lists stay ordered and free of duplicates
"""

import re
import uuid
from typing import Iterable, List, Optional

_ADDRESS_PATTERN = re.compile(r"^\s*([^@\s]+)@([^@\s]+)\s*$")


def normalize_email(address: Optional[str]) -> str:
    """Lower-case and strip an address; empty string for None."""
    if not address:
        return ""
    address = address.strip()
    match = re.search(r"<([^<>]+)>", address)
    if match:
        address = match.group(1)
    return address.strip().lower()


def _split(address: str):
    match = _ADDRESS_PATTERN.match(normalize_email(address))
    if not match:
        return None, None
    return match.group(1), match.group(2)


def build_reply_to_address(assistant_address: str, routing_token: str) -> str:
    """
    Build the plus-addressed Reply-To for a session.

    Args:
        assistant_address: The assistant's bare address
        routing_token: Session id to embed

    Returns:
        local+token@domain
    """
    local, domain = _split(assistant_address)
    if not local:
        raise ValueError(f"Invalid assistant address: {assistant_address}")
    local = local.split("+", 1)[0]
    return f"{local}+{routing_token}@{domain}"


def extract_routing_token(address: Optional[str], assistant_address: str) -> Optional[str]:
    """Return the +tag of an address that targets the assistant mailbox."""
    if not address:
        return None
    local, domain = _split(address)
    assistant_local, assistant_domain = _split(assistant_address)
    if not local or not assistant_local or domain != assistant_domain:
        return None
    base, sep, tag = local.partition("+")
    if not sep or base != assistant_local.split("+", 1)[0] or not tag:
        return None
    return tag


def is_assistant_address(address: Optional[str], assistant_address: str) -> bool:
    """True for the assistant address in bare or routing form."""
    local, domain = _split(address or "")
    assistant_local, assistant_domain = _split(assistant_address)
    if not local or not assistant_local:
        return False
    return (
        domain == assistant_domain
        and local.split("+", 1)[0] == assistant_local.split("+", 1)[0]
    )


def is_valid_session_token(token: Optional[str]) -> bool:
    """Session tokens are UUID strings."""
    if not token:
        return False
    try:
        uuid.UUID(token.strip())
    except (ValueError, AttributeError):
        return False
    return True


def clean_message_id(message_id: Optional[str]) -> Optional[str]:
    """Strip angle brackets and whitespace from a message id."""
    if not message_id:
        return None
    cleaned = message_id.strip().strip("<>").strip()
    return cleaned or None


def thread_key(message_id: Optional[str]) -> Optional[str]:
    """Cleaned id with any @domain suffix removed."""
    cleaned = clean_message_id(message_id)
    if not cleaned:
        return None
    return cleaned.split("@", 1)[0] or None


def format_message_id(message_id: str) -> str:
    return f"<{clean_message_id(message_id)}>"


def parse_references(header: Optional[str]) -> List[str]:
    """Split a References header into cleaned ids."""
    if not header:
        return []
    ids = re.findall(r"<([^<>]+)>", header)
    if not ids:
        ids = header.split()
    return [i for i in (clean_message_id(x) for x in ids) if i]


def build_references(inherited: Iterable[str], trigger_id: Optional[str]) -> List[str]:
    """
    Append the trigger id to the inherited references.

    Order is preserved and duplicates are removed; the trigger id is always
    present when given.
    """
    result: List[str] = []
    seen = set()
    for ref in list(inherited) + ([trigger_id] if trigger_id else []):
        cleaned = clean_message_id(ref)
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def mask_email(address: Optional[str]) -> str:
    """Mask the local part of an address for info-level logs."""
    local, domain = _split(address or "")
    if not local:
        return "<unknown>"
    return f"{local[:2]}***@{domain}"
