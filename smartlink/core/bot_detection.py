"""
Traffic classification: human vs automated.

A request is automated when its User-Agent contains (case-insensitive) one of
the known crawler / link-preview signatures below. Everything else, including
an empty or missing User-Agent, counts as human.

Only human traffic moves the click counter. Automated traffic still gets
redirected (preview cards need the target) and still gets audited.
"""

import re
from dataclasses import dataclass
from enum import Enum

from user_agents import parse as parse_ua


class TrafficClass(str, Enum):
    HUMAN = "human"
    AUTOMATED = "automated"


# Messaging-app unfurlers, social previewers, search crawlers, then generic tokens.
CRAWLER_SIGNATURES: tuple[str, ...] = (
    # messaging / link previews
    "WhatsApp",
    "TelegramBot",
    "Slackbot",
    "Slack-ImgProxy",
    "Discordbot",
    "SkypeUriPreview",
    "facebookexternalhit",
    "Facebot",
    "Twitterbot",
    "LinkedInBot",
    "Pinterestbot",
    "redditbot",
    "Embedly",
    "vkShare",
    "Iframely",
    # search engines
    "Googlebot",
    "Google-InspectionTool",
    "bingbot",
    "Slurp",
    "DuckDuckBot",
    "Baiduspider",
    "YandexBot",
    "Applebot",
    # generic
    "bot",
    "crawler",
    "spider",
)

_SIGNATURE_RE = re.compile(
    "|".join(re.escape(s) for s in CRAWLER_SIGNATURES),
    re.IGNORECASE,
)


@dataclass(frozen=True)
class TrafficVerdict:
    traffic_class: TrafficClass
    signature: str | None = None  # the matched signature, as written in the UA
    client: str = "unknown"       # "iPhone / iOS 17.1 / Mobile Safari 17.1"

    @property
    def is_human(self) -> bool:
        return self.traffic_class is TrafficClass.HUMAN


def analyze(user_agent: str | None) -> TrafficVerdict:
    """Classify a User-Agent and describe the client for the audit trail."""
    ua_str = user_agent or ""
    if not ua_str.strip():
        return TrafficVerdict(traffic_class=TrafficClass.HUMAN)

    client = str(parse_ua(ua_str))
    match = _SIGNATURE_RE.search(ua_str)
    if match:
        return TrafficVerdict(
            traffic_class=TrafficClass.AUTOMATED,
            signature=match.group(0),
            client=client,
        )
    return TrafficVerdict(traffic_class=TrafficClass.HUMAN, client=client)


def classify(user_agent: str | None) -> TrafficClass:
    return analyze(user_agent).traffic_class
