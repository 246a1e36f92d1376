"""Sanitizing of user-controlled text before it reaches replies, DMs or logs."""

import re

# Three dot-separated base64url segments, the shape of a Discord bot token.
TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_\-]{23,}\.[A-Za-z0-9_\-]{6,}\.[A-Za-z0-9_\-]{27,}")
WHITESPACE_PATTERN = re.compile(r"\s+")

REDACTED = "[redacted]"
NO_CONTENT = "[no content]"

REASON_LIMIT = 800
REPLY_LIMIT = 1800


def redact_tokens(text: str) -> str:
    """Replace credential-shaped substrings with ``[redacted]``."""
    return TOKEN_PATTERN.sub(REDACTED, text)


def sanitize(text: str | None, limit: int = REASON_LIMIT) -> str:
    """
    Prepare free text for external use.

    Tokens are redacted first, then whitespace runs are collapsed, the result
    is trimmed and cut to ``limit`` characters. Empty input becomes
    ``[no content]``.
    """
    if not text:
        return NO_CONTENT
    collapsed = WHITESPACE_PATTERN.sub(" ", redact_tokens(text)).strip()
    return collapsed[:limit]
