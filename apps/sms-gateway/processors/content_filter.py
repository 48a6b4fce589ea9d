from typing import Iterable, List, Optional, Pattern
import logging
import re

logger = logging.getLogger(__name__)

# Originator ids the telco uses for mobile-money notifications.
# Update when MTN changes sender IDs.
SENDER_ALLOWLIST = (
    "MTN",
    "MTN MoMo",
    "MOMO",
    "MTNMobileMoney",
    "MTN Mobile Money",
    "100",
    "456",
    "MTN-100",
    "MTN-456",
)

CURRENCIES = r"(?:UGX|USD|RWF|KES|TZS)"

# Ordered; a body passes when it fully matches any one of them
BODY_PATTERNS = (
    # Money received
    rf".*(?:received|credit|deposit).*\d+.*{CURRENCIES}.*",
    # Money sent
    rf".*(?:sent|paid|transfer|withdraw).*\d+.*{CURRENCIES}.*",
    # Balance
    rf".*(?:balance|bal).*\d+.*{CURRENCIES}.*",
    # Confirmation wording
    r".*(?:payment|paid|transaction).*(?:successful|completed|confirmed).*",
    # Amount + currency anywhere
    rf".*\d+.*{CURRENCIES}.*",
)


class ContentFilter:
    """Decides whether a captured message is a transaction notification worth forwarding

    Two independent checks, both required:
    1. The sender is (or contains) a known mobile-money originator
    2. The trimmed body fully matches one of the notification shapes

    The same rules run on the relay (to save bandwidth) and on the backend,
    where they are authoritative.
    """

    def __init__(
        self,
        sender_allowlist: Iterable[str] = SENDER_ALLOWLIST,
        body_patterns: Iterable[str] = BODY_PATTERNS,
    ):
        self.sender_allowlist: List[str] = [s.strip().lower() for s in sender_allowlist if s.strip()]
        self.body_patterns: List[Pattern] = [
            re.compile(p, re.IGNORECASE | re.DOTALL) for p in body_patterns
        ]

    def accept(self, sender: Optional[str], body: Optional[str]) -> bool:
        return self.rejection_reason(sender, body) is None

    def accept_event(self, event) -> bool:
        """Convenience wrapper for CapturedEvent"""
        return self.accept(event.sender, event.body)

    def rejection_reason(self, sender: Optional[str], body: Optional[str]) -> Optional[str]:
        """Return 'sender' or 'content' when rejected, None when accepted"""
        if not self.is_allowed_sender(sender):
            return "sender"
        if not self.matches_content(body):
            return "content"
        return None

    def is_allowed_sender(self, sender: Optional[str]) -> bool:
        normalized = (sender or "").strip().lower()
        if not normalized:
            return False
        return any(
            normalized == allowed or allowed in normalized
            for allowed in self.sender_allowlist
        )

    def matches_content(self, body: Optional[str]) -> bool:
        normalized = (body or "").strip()
        if not normalized:
            return False
        return any(pattern.fullmatch(normalized) for pattern in self.body_patterns)


content_filter = ContentFilter()
