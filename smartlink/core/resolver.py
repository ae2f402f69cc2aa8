"""
Redirect resolution: /l/{token} → target URL.

Flow:
  1. Decode the masked token (falls back to the raw token)
  2. Look up Link → Subgroup → Group by short code   (miss → NOT_FOUND)
  3. Gate: group published + not past end of expiry day   (fail → FORBIDDEN)
  4. Classify the User-Agent (human / automated)
  5. Record: human → atomic clicks + 1 and CLICK_REAL;
             automated → no counter change and CRAWLER_PREVIEW
  6. Hand back the target for a 302

Store failures during lookup propagate as StoreUnavailable (the caller turns
them into a 500). Failures while recording are logged and swallowed: the
redirect always wins.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from smartlink.config import Settings, get_settings
from smartlink.core.audit import AuditAction, AuditSink
from smartlink.core.bot_detection import TrafficClass, analyze
from smartlink.core.clock import utcnow
from smartlink.core.errors import StoreUnavailable
from smartlink.core.gate import check_gate
from smartlink.core.token_codec import decode_token

import structlog

logger = structlog.get_logger()


class Outcome(str, Enum):
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Resolution:
    outcome: Outcome
    short_code: str
    target_url: str | None = None
    reason: str | None = None
    traffic: TrafficClass | None = None


class RedirectResolver:
    def __init__(
        self,
        store,
        audit: AuditSink,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._audit = audit
        self._settings = settings or get_settings()
        self._clock = clock

    async def resolve(self, token: str, user_agent: str | None) -> Resolution:
        settings = self._settings

        # --- 1. Decode ---
        short_code = decode_token(token, settings.short_code_prefix)

        # --- 2. Lookup ---
        target = await self._store.find_link_target(short_code)
        if target is None:
            logger.info("link_not_found", token=token[:64], short_code=short_code[:64])
            self._audit.record("link", short_code[:64], AuditAction.REDIRECT_NOT_FOUND,
                               details=f"token={token[:200]}")
            return Resolution(outcome=Outcome.NOT_FOUND, short_code=short_code)

        # --- 3. Gate ---
        failure = check_gate(target.group_status, target.expires_at, self._clock(), settings.tz)
        if failure is not None:
            logger.info("link_forbidden", short_code=short_code, reason=failure.value)
            self._audit.record("link", target.link_id, AuditAction.REDIRECT_FORBIDDEN,
                               details=f"code={short_code} reason={failure.value}")
            return Resolution(outcome=Outcome.FORBIDDEN, short_code=short_code, reason=failure.value)

        # --- 4. Classify ---
        verdict = analyze(user_agent)

        # --- 5. Record ---
        if verdict.is_human:
            try:
                await self._store.increment_click(target.link_id)
            except StoreUnavailable as exc:
                logger.warning("click_increment_failed", link_id=target.link_id, error=str(exc))
            action = AuditAction.CLICK_REAL
            details = f"code={short_code} client={verdict.client}"
        else:
            action = AuditAction.CRAWLER_PREVIEW
            details = f"code={short_code} signature={verdict.signature} client={verdict.client}"
        self._audit.record("link", target.link_id, action, details=details)

        logger.info("link_resolved", short_code=short_code, traffic=verdict.traffic_class.value)

        # --- 6. Redirect ---
        return Resolution(
            outcome=Outcome.REDIRECT,
            short_code=short_code,
            target_url=target.target_url,
            traffic=verdict.traffic_class,
        )
