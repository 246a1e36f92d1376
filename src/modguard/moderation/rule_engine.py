"""
Ordered, pluggable rule evaluation.

Each rule kind is a pure function ``(spec, content, meta) -> reason | None``.
:meth:`RuleEngine.evaluate` walks the configured rules in order and stops at
the first one that returns a reason.

Built-in kinds
- ``blocked_words``: whole-word, case-insensitive match of ``blocked`` entries
- ``discord_invites``: invite links, gated by ``block``
- ``blocked_domains``: any of ``domains`` as a literal, case-insensitive
- ``mentions``: user + role mentions (+1 for everyone) above ``max``
- ``emoji``: custom and Unicode emoji above ``max``
- ``caps``: uppercase share above ``max_percent`` for messages of at least ``min_length``
"""

from __future__ import annotations

import math
import re
from typing import Callable, Dict, Iterable

from modguard.datatypes.rule_datatypes import MessageMeta, RuleSpec, Violation
from modguard.util.logger import get_logger
from modguard.util.sanitize import sanitize

logger = get_logger("rule_engine")

RuleHandler = Callable[[RuleSpec, str, MessageMeta], "str | None"]

INVITE_PATTERN = re.compile(
    r"(?:discord(?:app)?\.com/invite/|discord\.(?:gg|io|me|li)/)",
    re.IGNORECASE,
)

CUSTOM_EMOJI_PATTERN = re.compile(r"<a?:\w+:\d+>")

_EMOJI_BASE = (
    "\U0001F000-\U0001FAFF"  # pictographs, emoticons, transport, symbols and extensions
    "\u2600-\u27BF"          # miscellaneous symbols and dingbats
    "\u2B00-\u2BFF"          # arrows and stars
    "\u2300-\u23FF"          # technical (watch, hourglass, media controls)
    "\u2190-\u21FF"          # arrows
    "\u3030\u303D\u3297\u3299\u00A9\u00AE\u203C\u2049\u2122\u2139\u24C2\u25AA-\u25FE"
)
# Variation selector 16, keycap, skin tones, tag characters
_EMOJI_MODIFIERS = "\uFE0F\u20E3\U0001F3FB-\U0001F3FF\U000E0020-\U000E007F"
UNICODE_EMOJI_PATTERN = re.compile(
    "[\U0001F1E6-\U0001F1FF]{2}"
    f"|[{_EMOJI_BASE}][{_EMOJI_MODIFIERS}]*(?:\u200D[{_EMOJI_BASE}][{_EMOJI_MODIFIERS}]*)*"
)
ASCII_LETTER_PATTERN = re.compile(r"[A-Za-z]")


def count_emoji(content: str) -> int:
    """
    Count custom emoji tokens plus Unicode emoji graphemes.

    A ``<a:name:123>`` token is one unit. Skin-tone and presentation
    modifiers, ZWJ sequences and regional-indicator flag pairs each count as a
    single emoji. Custom tokens are removed before the Unicode scan so their
    names cannot be miscounted.
    """
    custom = CUSTOM_EMOJI_PATTERN.findall(content)
    remainder = CUSTOM_EMOJI_PATTERN.sub(" ", content)
    return len(custom) + len(UNICODE_EMOJI_PATTERN.findall(remainder))


def caps_percent(content: str) -> int:
    """
    Percentage of uppercase letters among ASCII letters, rounded half up.

    Non-letters are ignored entirely; text without letters scores 0.
    """
    letters = ASCII_LETTER_PATTERN.findall(content)
    if not letters:
        return 0
    upper = sum(1 for letter in letters if letter.isupper())
    return math.floor(upper * 100 / len(letters) + 0.5)


def _as_list(value) -> list[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, Iterable):
        return []
    return [str(item) for item in value if str(item).strip()]


def _as_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


# --------------------------
# Rule handlers
# --------------------------
def check_blocked_words(spec: RuleSpec, content: str, meta: MessageMeta) -> str | None:
    for word in _as_list(spec.get("blocked")):
        if re.search(rf"\b{re.escape(word)}\b", content, re.IGNORECASE):
            return f"Blocked word detected: {word}"
    return None


def check_discord_invites(spec: RuleSpec, content: str, meta: MessageMeta) -> str | None:
    if not spec.get("block"):
        return None
    return "Discord invite links are not allowed." if INVITE_PATTERN.search(content) else None


def check_blocked_domains(spec: RuleSpec, content: str, meta: MessageMeta) -> str | None:
    domains = _as_list(spec.get("domains"))
    if not domains:
        return None
    pattern = re.compile("|".join(re.escape(domain) for domain in domains), re.IGNORECASE)
    return "Links to blocked domains are not allowed." if pattern.search(content) else None


def check_mentions(spec: RuleSpec, content: str, meta: MessageMeta) -> str | None:
    limit = _as_int(spec.get("max"))
    if not limit or meta is None:
        return None
    count = meta.mention_count
    return f"Too many mentions ({count}/{limit})." if count > limit else None


def check_emoji(spec: RuleSpec, content: str, meta: MessageMeta) -> str | None:
    limit = _as_int(spec.get("max"))
    if not limit:
        return None
    count = count_emoji(content)
    return f"Too many emoji ({count}/{limit})." if count > limit else None


def check_caps(spec: RuleSpec, content: str, meta: MessageMeta) -> str | None:
    max_percent = _as_int(spec.get("max_percent"))
    if not max_percent:
        return None
    if len(content) < _as_int(spec.get("min_length")):
        return None
    percent = caps_percent(content)
    return f"Excessive caps ({percent}% > {max_percent}%)." if percent > max_percent else None


DEFAULT_HANDLERS: Dict[str, RuleHandler] = {
    "blocked_words": check_blocked_words,
    "discord_invites": check_discord_invites,
    "blocked_domains": check_blocked_domains,
    "mentions": check_mentions,
    "emoji": check_emoji,
    "caps": check_caps,
}


class RuleEngine:
    """Registry of rule handlers plus first-match evaluation."""

    def __init__(self, handlers: Dict[str, RuleHandler] | None = None) -> None:
        self.handlers: Dict[str, RuleHandler] = dict(DEFAULT_HANDLERS if handlers is None else handlers)

    def register(self, kind: str, handler: RuleHandler) -> None:
        self.handlers[kind] = handler

    def evaluate(self, content: str, meta: MessageMeta, rules: Iterable[RuleSpec]) -> Violation | None:
        """
        Return the violation of the first matching rule, or None.

        Rules of unknown kinds are skipped. A handler that raises is logged
        and treated as not matching so one broken rule cannot stop the pass.
        """
        content = content or ""
        meta = meta or MessageMeta()
        for rule in rules:
            handler = self.handlers.get(rule.kind)
            if handler is None:
                continue
            try:
                reason = handler(rule, content, meta)
            except Exception as exc:
                logger.error("[RULE ENGINE] Rule %s failed: %s", rule.name, exc)
                continue
            if reason:
                return Violation(rule_name=rule.name, severity=rule.severity, reason=sanitize(reason), rule=rule)
        return None
