"""HTTP ingest transport."""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any

import httpx

from catchpoint.models.event import Event, Session
from catchpoint.transports.base import BaseTransport
from catchpoint.utils import normalize

logger = logging.getLogger(__name__)


class HttpTransport(BaseTransport):
    """Posts events and sessions as JSON to an ingest endpoint."""

    def __init__(
        self,
        ingest_url: str,
        secret: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._ingest_url = ingest_url
        self._secret = secret or ""
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "http"

    @property
    def enabled(self) -> bool:
        return bool(self._ingest_url)

    @property
    def supports_sessions(self) -> bool:
        return True

    def _generate_signature(self, timestamp: str, body: bytes) -> str:
        string_to_sign = f"{timestamp}\n".encode("utf-8") + body
        hmac_code = hmac.new(
            self._secret.encode("utf-8"),
            string_to_sign,
            digestmod=hashlib.sha256,
        ).digest()
        return base64.b64encode(hmac_code).decode("utf-8")

    def _build_request(self, kind: str, payload: dict[str, Any]) -> tuple[bytes, dict[str, str]]:
        body = json.dumps({"type": kind, "payload": payload}).encode("utf-8")
        headers = {"Content-Type": "application/json"}

        if self._secret:
            timestamp = str(int(time.time()))
            headers["X-Catchpoint-Timestamp"] = timestamp
            headers["X-Catchpoint-Signature"] = self._generate_signature(timestamp, body)

        return body, headers

    async def _post(self, kind: str, payload: dict[str, Any]) -> bool:
        body, headers = self._build_request(kind, payload)

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._ingest_url, content=body, headers=headers)
            response.raise_for_status()

        logger.info(f"{kind.capitalize()} delivered to {self._ingest_url}")
        return True

    async def send_event(self, event: Event) -> bool:
        payload = event.model_dump(mode="json", exclude_none=True, exclude={"extra"})
        payload["extra"] = normalize(event.extra)
        return await self._post("event", payload)

    async def send_session(self, session: Session) -> bool:
        return await self._post("session", session.model_dump(mode="json", exclude_none=True))
