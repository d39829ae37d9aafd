"""
푸시 알림 서비스

정기 거래 배치 실행 후 사용자별로 묶어서 Expo 푸시 알림을 보냅니다.
알림 실패는 로그와 집계에만 남고 거래 생성에는 영향을 주지 않습니다.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional

import httpx
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings

logger = logging.getLogger(__name__)

_EXPO_TOKEN_RE = re.compile(r"^Expo(nent)?PushToken\[.+\]$")
_UUID_TOKEN_RE = re.compile(r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$", re.IGNORECASE)

PushMessage = dict[str, Any]
PushTicket = dict[str, Any]


class PushClientError(Exception):
    """Push provider rejected the request as a whole."""


def is_push_token(value: str | None) -> bool:
    if not value:
        return False
    return bool(_EXPO_TOKEN_RE.match(value) or _UUID_TOKEN_RE.match(value))


def _timestamp() -> str:
    return models.now_local_naive().isoformat()


class ExpoPushClient:
    """Thin httpx wrapper around the Expo push HTTP API."""

    def __init__(
        self,
        url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        chunk_size: int | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url or settings.EXPO_PUSH_URL
        self.access_token = access_token if access_token is not None else settings.EXPO_ACCESS_TOKEN
        self.timeout = timeout or settings.PUSH_TIMEOUT_SECONDS
        self.chunk_size = chunk_size or settings.PUSH_CHUNK_SIZE
        self._client = client

    def chunk_messages(self, messages: list[PushMessage]) -> Iterator[list[PushMessage]]:
        for start in range(0, len(messages), self.chunk_size):
            yield messages[start:start + self.chunk_size]

    def send_messages(self, messages: list[PushMessage]) -> list[PushTicket]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        if self._client is not None:
            response = self._client.post(self.url, json=messages, headers=headers, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=messages, headers=headers)
        response.raise_for_status()

        body = response.json()
        if not isinstance(body, dict):
            raise PushClientError(f"Unexpected push response: {body!r}")
        if body.get("errors"):
            raise PushClientError(str(body["errors"]))
        tickets = body.get("data") or []
        if not isinstance(tickets, list) or not all(isinstance(t, dict) for t in tickets):
            raise PushClientError(f"Unexpected push tickets: {tickets!r}")
        return tickets


def batch_notification_message(count: int, language: str | None) -> tuple[str, str]:
    """(title, body) 반환, 지원하지 않는 언어는 영어"""
    messages = {
        "en": (
            "New Recurring Transactions",
            "You have 1 new recurring transaction" if count == 1 else f"You have {count} new recurring transactions",
        ),
        "it": (
            "Nuove Transazioni Ricorrenti",
            "Hai 1 nuova transazione ricorrente" if count == 1 else f"Hai {count} nuove transazioni ricorrenti",
        ),
    }
    lang = (language or "en").split("-")[0].lower()
    return messages.get(lang, messages["en"])


@dataclass
class NotificationTally:
    sent: int = 0
    failed: int = 0


class PushNotificationService:
    def __init__(self, client: Optional[ExpoPushClient] = None) -> None:
        self.client = client or ExpoPushClient()

    def send(self, push_token: str, count: int, language: str | None = "en") -> bool:
        if not is_push_token(push_token):
            logger.error("Invalid push token: %s", push_token)
            return False

        title, body = batch_notification_message(count, language)
        message: PushMessage = {
            "to": push_token,
            "sound": "default",
            "title": title,
            "body": body,
            "badge": count,
            "data": {"type": "recurring_transactions", "count": count, "timestamp": _timestamp()},
        }
        if not self._deliver([message]):
            return False
        logger.info("Sent notification to %s for %d transactions", push_token, count)
        return True

    def clear_badge(self, push_token: str) -> bool:
        if not is_push_token(push_token):
            logger.error("Invalid push token: %s", push_token)
            return False
        message: PushMessage = {
            "to": push_token,
            "badge": 0,
            "data": {"type": "badge_clear", "timestamp": _timestamp()},
        }
        if not self._deliver([message]):
            return False
        logger.info("Cleared badge for %s", push_token)
        return True

    def dispatch(self, db: Session, pending: dict[int, int]) -> NotificationTally:
        """Send one batched notification per user with a positive pending count."""
        tally = NotificationTally()
        for user_id, count in pending.items():
            if count <= 0:
                continue
            try:
                profile = (
                    db.query(models.UserProfile)
                    .filter(models.UserProfile.user_id == user_id)
                    .first()
                )
                if profile is None or not profile.can_receive_push:
                    continue
                delivered = self.send(profile.notification_token, count, profile.locale)
            except Exception:
                db.rollback()
                logger.exception("Error notifying user %s", user_id)
                delivered = False
            if delivered:
                tally.sent += 1
            else:
                tally.failed += 1
        return tally

    def _deliver(self, messages: list[PushMessage]) -> bool:
        try:
            for chunk in self.client.chunk_messages(messages):
                tickets: Iterable[PushTicket] = self.client.send_messages(chunk)
                for ticket in tickets:
                    if ticket.get("status") == "error":
                        logger.error("Push notification error: %s", ticket.get("message"))
                        return False
        except Exception as exc:  # 알림 실패는 집계만
            logger.error("Error sending push notification: %s", exc)
            return False
        return True
