"""
Review text cleaning and content-tier classification.
"""

import re
from typing import Iterable, Optional, Tuple

from bs4 import BeautifulSoup

COMPLETE = "complete"
TRUNCATED = "truncated"
EXCERPT = "excerpt"
STUB = "stub"
INVALID = "invalid"

CONTENT_TIERS = (COMPLETE, TRUNCATED, EXCERPT, STUB, INVALID)

COMPLETE_MIN_WORDS = 300
INVALID_MAX_WORDS = 150

_STRIP_TAGS = ("script", "style", "noscript", "nav", "header", "footer", "aside", "form", "iframe")

PAYWALL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"subscribe\s+to\s+(continue|read|access)",
        r"(sign|log)\s+in\s+to\s+(continue|read|access|view)",
        r"already\s+a\s+(member|subscriber)",
        r"become\s+a\s+(member|subscriber)",
        r"create\s+(a\s+)?(free\s+)?account\s+to",
        r"unlock\s+(this\s+)?(story|article|content)",
        r"paywall",
    )
]

ERROR_PAGE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"page\s+not\s+found",
        r"error\s+404|404\s+(error|not\s+found)",
        r"sorry[,.]?\s+(we\s+)?couldn['’]?t\s+find",
        r"the\s+page\s+you('re|\s+are)\s+looking\s+for",
        r"(page|article|content)\s+(is\s+)?(no\s+longer|not)\s+available",
        r"access\s+denied",
        r"(enable|turn\s+off)\s+(your\s+)?ad\s*block",
        r"verify\s+you\s+are\s+(a\s+)?human",
    )
]


def clean_html(html: Optional[str]) -> str:
    """Visible text of an HTML document, whitespace collapsed to single spaces."""
    if not isinstance(html, str) or not html.strip():
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_STRIP_TAGS):
        tag.decompose()
    text = soup.get_text(separator=" ")
    return clean_text(text)


def clean_text(text: Optional[str]) -> str:
    if not isinstance(text, str):
        return ""
    text = text.replace("\u00a0", " ")
    return re.sub(r"\s+", " ", text).strip()


def looks_like_html(text: Optional[str]) -> bool:
    return isinstance(text, str) and bool(re.search(r"<\s*(html|body|p|div|article|span|br)\b", text, re.IGNORECASE))


def clean_review_text(raw: Optional[str]) -> str:
    """Clean raw review text, stripping markup when present."""
    return clean_html(raw) if looks_like_html(raw) else clean_text(raw)


def word_count(text: Optional[str]) -> int:
    return len(text.split()) if isinstance(text, str) else 0


def classify_content_tier(
    text: Optional[str], excerpts: Optional[Iterable[str]] = None
) -> Tuple[str, str, int]:
    """
    Classify how much review content is available.

    Args:
        text: Cleaned full text, if any
        excerpts: Aggregator excerpts for the same review

    Returns:
        (tier, reason, word count of the full text)
    """
    words = word_count(text)
    has_excerpt = any(isinstance(e, str) and e.strip() for e in (excerpts or ()))

    if words:
        if words < INVALID_MAX_WORDS and any(p.search(text) for p in ERROR_PAGE_PATTERNS):
            return INVALID, "error or bot-check page", words
        if any(p.search(text) for p in PAYWALL_PATTERNS):
            return TRUNCATED, "paywall marker in text", words
        if words >= COMPLETE_MIN_WORDS:
            return COMPLETE, f"{words} words", words
        return TRUNCATED, f"only {words} words", words

    if has_excerpt:
        return EXCERPT, "aggregator excerpt only", 0
    return STUB, "no text", 0
