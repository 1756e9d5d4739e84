from __future__ import annotations

from typing import Callable, Protocol

import httpx
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketon.core.config import settings
from ticketon.models.user import User


class NotificationError(Exception):
    pass


class Notifier(Protocol):
    async def send(self, user_id: int, subject: str, body: str) -> None: ...


class EmailNotifier:
    """
    Delivers notifications as HTML email through a Resend-compatible HTTP API.

    Without an API key configured it only logs, so local setups run without
    an email provider.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        *,
        api_url: str | None = None,
        api_key: str | None = None,
        sender: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session_factory = session_factory
        self.api_url = api_url or settings.EMAIL_API_URL
        self.api_key = settings.EMAIL_API_KEY if api_key is None else api_key
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS
        self.transport = transport

    async def _get_email(self, user_id: int) -> str | None:
        async with self.session_factory() as db:
            res = await db.execute(select(User.email).where(User.id == user_id))
            return res.scalar_one_or_none()

    async def send(self, user_id: int, subject: str, body: str) -> None:
        to_email = await self._get_email(user_id)
        if not to_email:
            logger.warning("User {} has no email; skipping notification {!r}", user_id, subject)
            return

        if not self.api_key:
            logger.info("[email disabled] to={} subject={!r}", to_email, subject)
            return

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            r = await client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [to_email],
                    "subject": subject,
                    "html": body,
                },
            )

        if r.status_code >= 400:
            raise NotificationError(f"Email send failed: {r.status_code} {r.text}")

        logger.info("Email sent to user {} ({!r})", user_id, subject)
