"""
Postmark Outbound Client

Sends single emails through the Postmark HTTP API.

Design Considerations:
- Transport failures reported as None, never raised
- Shared AsyncClient injectable for connection reuse and tests
- Custom headers passed through as Postmark Name/Value pairs
"""

import logging
from typing import Dict, Optional

import httpx

from src.scheduling.base import MessageSender

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.postmarkapp.com"


class PostmarkClient(MessageSender):
    """
    MessageSender backed by Postmark's /email endpoint.

    Each call posts one message and returns the MessageID Postmark assigns,
    which later appears as the thread key in replies.
    """

    def __init__(
        self,
        server_token: str,
        api_url: str = DEFAULT_API_URL,
        message_stream: str = "outbound",
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.server_token = server_token
        self.api_url = api_url.rstrip("/")
        self.message_stream = message_stream
        self.timeout = timeout
        self._http_client = http_client

    def _build_payload(
        self,
        sender: str,
        to: str,
        subject: str,
        text_body: str,
        reply_to: Optional[str],
        headers: Optional[Dict[str, str]],
        html_body: Optional[str],
    ) -> Dict:
        payload = {
            "From": sender,
            "To": to,
            "Subject": subject,
            "TextBody": text_body,
            "MessageStream": self.message_stream,
        }
        if html_body:
            payload["HtmlBody"] = html_body
        if reply_to:
            payload["ReplyTo"] = reply_to
        if headers:
            payload["Headers"] = [{"Name": k, "Value": v} for k, v in headers.items()]
        return payload

    async def send_email(
        self,
        sender: str,
        to: str,
        subject: str,
        text_body: str,
        reply_to: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        html_body: Optional[str] = None,
    ) -> Optional[str]:
        """
        Send one email via Postmark.

        Returns:
            Postmark MessageID, or None when the request fails
        """
        payload = self._build_payload(sender, to, subject, text_body, reply_to, headers, html_body)
        request_headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self.server_token,
        }
        url = f"{self.api_url}/email"

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=payload, headers=request_headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=request_headers)
        except httpx.HTTPError as e:
            logger.error(f"Postmark request failed: {str(e)}")
            return None

        if response.status_code != 200:
            logger.error(f"Postmark send error {response.status_code}: {response.text}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error("Postmark returned a non-JSON response")
            return None

        if data.get("ErrorCode", 0) != 0:
            logger.error(f"Postmark rejected message: {data.get('Message')}")
            return None

        message_id = data.get("MessageID")
        logger.info(f"Postmark accepted message {message_id}")
        return message_id
