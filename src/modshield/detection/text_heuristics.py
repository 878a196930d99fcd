"""Pattern heuristics for phishing links and adult-server invites in message text."""

from __future__ import annotations

import re

from modshield.datatypes.content_datatypes import SpamReason
from modshield.util.logger import get_logger

logger = get_logger("text_heuristics")

# Any .gift TLD; the second group must be exactly "discord" for a genuine gift link
DISCORD_GIFT_REGEX = re.compile(r"(https|http)://*(\S*)\.gift")
# Deliberately naive: the second group is everything up to the last dot of the URL token
ANY_URL_REGEX = re.compile(r"(http|https)://(\S*)\.\S*")
SUSPICIOUS_TERMS = re.compile(r"free|nitro", re.IGNORECASE)
MARKDOWN_URL = re.compile(
    r"\[[^\]]*?://(?P<link_domain>[^/:]+)\]\([^)]*?://(?P<url_domain>[^/:]+)\)"
)

INVITE_MARKER = "discord.gg"
SEXUAL_INVITE_TERMS = ("onlyfans", "only", "porn", "leak", "nsfw", "nude", "xxx", "girl", "sex")
IMPERSONATED_DOMAIN = "discord"
MAX_MISSPELLING_DISTANCE = 3


def levenshtein(a: str, b: str) -> int:
    """Return the edit distance between ``a`` and ``b``."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b),
            ))
        previous = current
    return previous[-1]


def check_is_phishing_link(msg: str) -> SpamReason | None:
    """Classify message text, returning the first matching spam reason.

    Checks run in a fixed order: adult terms next to a server invite, fake
    ``.gift`` domains, URLs a few edits away from ``discord`` (or any URL
    alongside "free"/"nitro"), and finally markdown links whose visible
    domain differs from the target domain.
    """
    if INVITE_MARKER in msg:
        lower_case = msg.lower()
        for term in SEXUAL_INVITE_TERMS:
            if term in lower_case:
                return SpamReason.SEXUAL_TERMS

    gift = DISCORD_GIFT_REGEX.search(msg)
    if gift and gift.group(2) != IMPERSONATED_DOMAIN:
        logger.debug("[TEXT] Gift link with foreign domain %r", gift.group(2))
        return SpamReason.PHISHING

    url = ANY_URL_REGEX.search(msg)
    if url:
        distance = levenshtein(url.group(2), IMPERSONATED_DOMAIN)
        if 0 < distance <= MAX_MISSPELLING_DISTANCE:
            return SpamReason.MISLEADING_URL
        terms = SUSPICIOUS_TERMS.search(msg)
        if terms:
            logger.debug("[TEXT] Suspicious term %r next to a URL", terms.group(0))
            return SpamReason.PHISHING

    markdown = MARKDOWN_URL.search(msg)
    if markdown and markdown.group("link_domain") != markdown.group("url_domain"):
        logger.debug(
            "[TEXT] Markdown link text %r points at %r",
            markdown.group("link_domain"),
            markdown.group("url_domain"),
        )
        return SpamReason.PHISHING

    return None
