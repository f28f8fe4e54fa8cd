"""Read-only Gmail REST client for finding rate confirmation attachments.

Talks to the Gmail v1 API with the user's OAuth access token. Only the three
calls the scan needs are wrapped: message search, message fetch and
attachment download.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import date

import httpx

from load_insights.domain.enums import TimeRange

logger = logging.getLogger(__name__)

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"

# Search patterns. Results across queries are de-duplicated by message id.
_QUERY_FILTERS = [
    # Filename patterns
    "(filename:rate OR filename:confirmation OR filename:load OR filename:tender)",
    "(filename:RC OR filename:BOL OR filename:carrier)",
    # Subject patterns
    '(subject:"rate confirmation" OR subject:"load confirmation" OR subject:"carrier confirmation")',
    "(subject:rate OR subject:load OR subject:tender OR subject:dispatch)",
    # Common broker domains
    "(from:tql.com OR from:chrobinson.com OR from:coyote.com OR from:xpo.com OR from:jbhunt.com)",
    "(from:landstar.com OR from:schneider.com OR from:werner.com OR from:estes-express.com)",
    # Generic freight keywords
    "(freight OR trucking OR dispatch OR shipment)",
]


class GmailAuthError(Exception):
    """The access token is missing, expired or lacks the Gmail scope."""


class GmailAPIError(Exception):
    """Any other non-success response from the Gmail API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class PdfAttachment:
    message_id: str
    attachment_id: str
    filename: str


def build_search_queries(time_range: TimeRange, today: date | None = None) -> list[str]:
    """Gmail search expressions restricted to PDFs received inside the range."""
    after = time_range.start_date(today or date.today())
    after_str = after.strftime("%Y/%m/%d")
    return [
        f"has:attachment filename:pdf {query_filter} after:{after_str}"
        for query_filter in _QUERY_FILTERS
    ]


def find_pdf_attachments(message: dict) -> list[PdfAttachment]:
    """Walk a ``format=full`` message payload and collect PDF parts.

    Parts nest arbitrarily deep (multipart/mixed inside multipart/alternative,
    forwarded messages, ...), so the whole tree is searched.
    """
    found: list[PdfAttachment] = []
    message_id = message.get("id", "")

    def _walk(part: dict) -> None:
        filename = part.get("filename") or ""
        attachment_id = (part.get("body") or {}).get("attachmentId")
        if filename.lower().endswith(".pdf") and attachment_id:
            found.append(PdfAttachment(message_id, attachment_id, filename))
        for child in part.get("parts") or []:
            _walk(child)

    payload = message.get("payload")
    if payload:
        _walk(payload)
    return found


def decode_attachment_data(data: str) -> bytes:
    """Decode Gmail's base64url attachment body (padding optional)."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded)


class GmailClient:
    """Minimal async Gmail client bound to one access token."""

    def __init__(self, access_token: str, timeout: float = 30.0):
        if not access_token:
            raise GmailAuthError("Gmail access token is required")
        self._access_token = access_token
        self._timeout = timeout

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{GMAIL_API_BASE}{path}", headers=headers, params=params
                )
        except httpx.RequestError as exc:
            raise GmailAPIError(f"Gmail request failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise GmailAuthError("Gmail rejected the access token. Please reconnect.")
        if response.status_code >= 400:
            logger.error("Gmail API error %d: %s", response.status_code, response.text[:500])
            raise GmailAPIError(
                f"Gmail API error: {response.status_code}", status_code=response.status_code
            )
        return response.json()

    async def search_message_ids(self, queries: list[str]) -> list[str]:
        """Run every query to exhaustion, returning unique ids in first-seen order."""
        seen: dict[str, None] = {}
        for query in queries:
            page_token = None
            while True:
                params = {"q": query, "maxResults": 500}
                if page_token:
                    params["pageToken"] = page_token
                data = await self._get_json("/messages", params=params)
                for msg in data.get("messages") or []:
                    seen.setdefault(msg["id"], None)
                page_token = data.get("nextPageToken")
                if not page_token:
                    break
        logger.info("Gmail search matched %d message(s) across %d queries", len(seen), len(queries))
        return list(seen)

    async def get_message(self, message_id: str) -> dict:
        return await self._get_json(f"/messages/{message_id}", params={"format": "full"})

    async def download_attachment(self, attachment: PdfAttachment) -> bytes:
        data = await self._get_json(
            f"/messages/{attachment.message_id}/attachments/{attachment.attachment_id}"
        )
        encoded = data.get("data")
        if not encoded:
            return b""
        try:
            return decode_attachment_data(encoded)
        except (binascii.Error, ValueError) as exc:
            raise GmailAPIError(f"Malformed attachment data for {attachment.filename}: {exc}") from exc
