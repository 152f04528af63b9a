"""Detection of pages that need a human: failed login, MFA, CAPTCHA,
expired sessions, rate limits and denied access.

Patterns are matched against the visible text of the page (not the
markup), in priority order, and the first match at or above the
confidence threshold wins.
"""

import logging
import re
from dataclasses import dataclass

from screen_tasks.dom.normalizer import extract_text_content
from screen_tasks.models.task import BlockerContext

logger = logging.getLogger(__name__)

# Enough visible text to cover forms and error banners.
MAX_SCAN_CHARS = 20_000
LOGIN_CONTEXT_CHARS = 5_000


@dataclass(frozen=True)
class BlockerPattern:
    pattern: re.Pattern
    confidence: float


def _patterns(*pairs: tuple[str, float]) -> tuple[BlockerPattern, ...]:
    return tuple(BlockerPattern(re.compile(p, re.I), c) for p, c in pairs)


LOGIN_FAILURE_PATTERNS = _patterns(
    (r"invalid\s+(credentials?|username|password|login)", 0.95),
    (r"login\s+failed", 0.95),
    (r"authentication\s+failed", 0.95),
    (r"incorrect\s+(password|username|credentials?)", 0.95),
    (r"wrong\s+(password|username|credentials?)", 0.95),
    (r"password\s+(is\s+)?incorrect", 0.95),
    (r"account\s+(not\s+found|locked|disabled|suspended)", 0.9),
    (r"user\s+not\s+found", 0.9),
    (r"no\s+account\s+(found|exists)", 0.9),
    (r"email\s+(not\s+registered|not\s+found)", 0.9),
)

MFA_PATTERNS = _patterns(
    (r"enter\s+(the\s+)?(verification|security)\s+code", 0.95),
    (r"two.?factor\s+authentication", 0.95),
    (r"\b(2fa|mfa)\b", 0.8),
    (r"sent\s+(a\s+)?code\s+to\s+(your\s+)?(phone|email|device)", 0.9),
    (r"authenticator\s+app", 0.9),
    (r"verify\s+(your|it'?s)\s+you", 0.85),
    (r"security\s+check", 0.7),
)

CAPTCHA_PATTERNS = _patterns(
    (r"captcha", 0.95),
    (r"recaptcha", 0.95),
    (r"hcaptcha", 0.95),
    (r"i'?m\s+not\s+a\s+robot", 0.95),
    (r"verify\s+(you'?re|you\s+are)\s+(human|not\s+a\s+bot)", 0.9),
    (r"select\s+all\s+(images|squares)", 0.85),
    (r"click\s+on\s+all\s+(images|pictures)", 0.85),
)

SESSION_EXPIRED_PATTERNS = _patterns(
    (r"session\s+(has\s+)?expired", 0.95),
    (r"please\s+(log\s*in|sign\s*in)\s+again", 0.9),
    (r"your\s+session\s+has\s+timed?\s*out", 0.95),
    (r"you('ve|\s+have)\s+been\s+logged?\s*out", 0.9),
    (r"login\s+(session\s+)?timeout", 0.9),
)

RATE_LIMIT_PATTERNS = _patterns(
    (r"too\s+many\s+(attempts|tries|requests)", 0.95),
    (r"rate\s+limit(ed)?", 0.95),
    (r"temporarily\s+(locked|blocked|unavailable)", 0.9),
    (r"try\s+again\s+(in|after)\s+\d+", 0.9),
    (r"slow\s+down", 0.8),
    (r"please\s+wait", 0.6),
)

ACCESS_DENIED_PATTERNS = _patterns(
    (r"access\s+denied", 0.95),
    (r"permission\s+denied", 0.95),
    (r"unauthorized", 0.9),
    (r"forbidden", 0.85),
    (r"you\s+don'?t\s+have\s+(access|permission)", 0.9),
    (r"not\s+authorized", 0.9),
)

LOGIN_CONTEXT_PATTERNS = tuple(
    re.compile(p, re.I) for p in (r"login", r"sign\s*in", r"log\s*in", r"authenticate")
)

_RETRY_AFTER_RE = re.compile(r"try\s+again\s+(?:in|after)\s+(\d+)\s*(seconds?|minutes?|hours?)?", re.I)
_UNIT_SECONDS = {"minute": 60, "hour": 3600}

MESSAGES = {
    "captcha": (
        "There's a CAPTCHA that I cannot solve. Please complete it on the website, "
        "then let me know when you're done."
    ),
    "mfa_required": (
        "The site requires a verification code. Please check your phone/email and "
        "either enter it on the website or provide it here."
    ),
    "login_failure": (
        'I tried to log in, but the site says "{matched}". '
        "Could you provide the correct credentials?"
    ),
    "session_expired": (
        "Your session has expired. Please log in again on the website "
        "or provide your credentials here."
    ),
    "rate_limit": "The site has rate-limited us. Please wait a moment before trying again.",
    "access_denied": (
        'Access was denied: "{matched}". You may need to log in with an account '
        "that has the right permissions."
    ),
}

RATE_LIMIT_WAIT_MESSAGE = (
    "The site says we're making too many requests. "
    "Please wait {seconds} seconds before continuing."
)


def _match(text: str, patterns: tuple[BlockerPattern, ...]) -> tuple[str, float] | None:
    for entry in patterns:
        match = entry.pattern.search(text)
        if match:
            return match.group(0), entry.confidence
    return None


def _in_login_context(text: str, url: str | None) -> bool:
    head = text[:LOGIN_CONTEXT_CHARS]
    return any(p.search(url or "") or p.search(head) for p in LOGIN_CONTEXT_PATTERNS)


def retry_after_seconds(text: str) -> int | None:
    """Parse "try again in N minutes" style waits into seconds."""
    match = _RETRY_AFTER_RE.search(text)
    if not match:
        return None
    value = int(match.group(1))
    unit = (match.group(2) or "seconds").lower()
    for prefix, factor in _UNIT_SECONDS.items():
        if unit.startswith(prefix):
            return value * factor
    return value


def detect_blocker(
    dom: str,
    url: str | None = None,
    min_confidence: float = 0.85,
) -> BlockerContext | None:
    """Return a blocker for the page, or None.

    Checked in order: CAPTCHA, MFA, login failure (only when the URL or
    the start of the page looks like a login flow), expired session, rate
    limit, then denied access.

    Args:
        dom: Raw page DOM.
        url: Page URL, used for the login-context check.
        min_confidence: Matches below this confidence are ignored.
    """
    if not dom:
        return None
    text = extract_text_content(dom, max_length=MAX_SCAN_CHARS)
    if not text:
        return None

    checks: list[tuple[str, tuple[BlockerPattern, ...]]] = [
        ("captcha", CAPTCHA_PATTERNS),
        ("mfa_required", MFA_PATTERNS),
    ]
    if _in_login_context(text, url):
        checks.append(("login_failure", LOGIN_FAILURE_PATTERNS))
    checks.extend([
        ("session_expired", SESSION_EXPIRED_PATTERNS),
        ("rate_limit", RATE_LIMIT_PATTERNS),
        ("access_denied", ACCESS_DENIED_PATTERNS),
    ])

    for blocker_type, patterns in checks:
        found = _match(text, patterns)
        if found is None:
            continue
        matched, confidence = found
        if confidence < min_confidence:
            continue
        logger.info("Blocker detected: %s (%r, %.2f)", blocker_type, matched, confidence)

        message = MESSAGES[blocker_type].format(matched=matched)
        wait = None
        if blocker_type == "rate_limit":
            wait = retry_after_seconds(text)
            if wait:
                message = RATE_LIMIT_WAIT_MESSAGE.format(seconds=wait)
        return BlockerContext(
            type=blocker_type,
            message=message,
            matched_text=matched,
            url=url,
            confidence=confidence,
            retry_after_seconds=wait,
        )
    return None
