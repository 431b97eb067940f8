"""Email analysis - sentiment, urgency and a suggested reply.

Uses the configured AI provider with a JSON-output prompt. Without an API
key, or when the model returns unusable JSON, a deterministic keyword
heuristic produces the same fields.
"""

import json
import logging
import re
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from aris.db.enums import EmailType
from aris.db.models import EmailAccount, EmailIndex
from aris.services.ai_provider import AIProvider, ChatMessage, get_default_provider

logger = logging.getLogger(__name__)

URGENT_KEYWORDS = ("urgent", "immediately", "asap", "emergency", "critical")

POSITIVE_WORDS = {
    "thanks", "thank", "great", "good", "excellent", "happy", "pleased",
    "appreciate", "wonderful", "perfect", "love", "glad",
}
NEGATIVE_WORDS = {
    "problem", "issue", "broken", "angry", "disappointed", "complaint", "refund",
    "terrible", "bad", "wrong", "late", "delay", "unacceptable", "cancel", "worst",
}

CATEGORY_KEYWORDS = [
    ("order", ("order", "purchase", "shipping", "delivery")),
    ("invoice", ("invoice", "payment", "bill", "receipt")),
    ("support", ("help", "support", "problem", "issue", "broken")),
    ("complaint", ("complaint", "refund", "disappointed", "unacceptable")),
    ("sales", ("quote", "offer", "price", "pricing", "discount")),
]

SHORT_EMAIL_LENGTH = 1000
HEURISTIC_CONFIDENCE_SHORT = 0.8
HEURISTIC_CONFIDENCE_LONG = 0.6
HEURISTIC_DRAFT_CONFIDENCE = 0.5

_WORD_RE = re.compile(r"[a-zA-Z']+")
_TAG_RE = re.compile(r"<[^>]+>")

STOP_WORDS = {
    "re", "fw", "fwd", "the", "a", "an", "and", "or", "for", "to", "of", "in",
    "on", "your", "our", "you", "is", "with", "from", "at", "by", "new",
}

ANALYSIS_PROMPT = """You analyse business emails for a CRM.
Reply with a JSON object with these keys:
sentiment_score (number from -1 to 1), confidence (0 to 1), category (string),
summary (one sentence), urgent_keywords (list of strings),
draft_reply (string, a polite reply), draft_confidence (0 to 1)."""


@dataclass
class EmailAnalysis:
    sentiment_score: float
    confidence: float
    category: str
    summary: str
    urgent_keywords: list[str] = field(default_factory=list)
    draft_reply: str | None = None
    draft_confidence: float | None = None
    source: str = "heuristic"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def html_to_text(html: str | None) -> str:
    if not html:
        return ""
    return " ".join(_TAG_RE.sub(" ", html).split())


def find_urgent_keywords(text: str) -> list[str]:
    lowered = (text or "").lower()
    return [kw for kw in URGENT_KEYWORDS if kw in lowered]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# =============================================================================
# Heuristic analysis
# =============================================================================


def heuristic_analysis(subject: str | None, content: str | None) -> EmailAnalysis:
    text = f"{subject or ''}\n{content or ''}"
    words = [w.lower() for w in _WORD_RE.findall(text)]
    positive = sum(1 for w in words if w in POSITIVE_WORDS)
    negative = sum(1 for w in words if w in NEGATIVE_WORDS)
    sentiment = (positive - negative) / (positive + negative) if positive + negative else 0.0

    body = content or ""
    confidence = (
        HEURISTIC_CONFIDENCE_SHORT
        if body.strip() and len(body) <= SHORT_EMAIL_LENGTH
        else HEURISTIC_CONFIDENCE_LONG
    )

    category = "general"
    word_set = set(words)
    for name, keywords in CATEGORY_KEYWORDS:
        if word_set.intersection(keywords):
            category = name
            break

    summary_source = " ".join(body.split()) or (subject or "")
    summary = summary_source[:150]

    greeting_subject = subject or "your message"
    draft = (
        f"Hello,\n\nThank you for your email regarding \"{greeting_subject}\". "
        "We have received it and will get back to you shortly.\n\nBest regards"
    )

    return EmailAnalysis(
        sentiment_score=round(sentiment, 3),
        confidence=confidence,
        category=category,
        summary=summary,
        urgent_keywords=find_urgent_keywords(text),
        draft_reply=draft,
        draft_confidence=HEURISTIC_DRAFT_CONFIDENCE,
        source="heuristic",
    )


# =============================================================================
# Model analysis
# =============================================================================


def parse_model_output(raw: str, subject: str | None, content: str | None) -> EmailAnalysis:
    """Validate the model's JSON. Raises ValueError on anything unusable."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("Model output is not JSON") from exc
    if not isinstance(data, dict):
        raise ValueError("Model output is not a JSON object")

    try:
        sentiment = _clamp(float(data["sentiment_score"]), -1.0, 1.0)
        confidence = _clamp(float(data["confidence"]), 0.0, 1.0)
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError("Model output is missing scores") from exc

    draft_confidence = data.get("draft_confidence")
    keywords = data.get("urgent_keywords") or []
    if not isinstance(keywords, list):
        keywords = []
    # Keyword detection is ours, not the model's
    detected = find_urgent_keywords(f"{subject or ''}\n{content or ''}")

    return EmailAnalysis(
        sentiment_score=sentiment,
        confidence=confidence,
        category=str(data.get("category") or "general"),
        summary=str(data.get("summary") or ""),
        urgent_keywords=sorted(set(str(k).lower() for k in keywords) | set(detected)),
        draft_reply=data.get("draft_reply") or None,
        draft_confidence=(
            _clamp(float(draft_confidence), 0.0, 1.0) if draft_confidence is not None else None
        ),
        source="ai",
    )


async def analyze_email(
    db: Session,
    email: EmailIndex,
    content: str | None,
    provider: AIProvider | None = None,
) -> EmailAnalysis:
    """Analyse one indexed email."""
    provider = provider or get_default_provider()
    if provider is None:
        return heuristic_analysis(email.subject, content)

    messages = [
        ChatMessage(role="system", content=ANALYSIS_PROMPT),
        ChatMessage(
            role="user",
            content=(
                f"From: {email.sender_email or 'unknown'}\n"
                f"Subject: {email.subject or '(no subject)'}\n\n"
                f"{(content or '')[:8000]}"
            ),
        ),
    ]
    response = await provider.chat(messages, json_output=True)
    try:
        return parse_model_output(response.content, email.subject, content)
    except ValueError as exc:
        logger.warning("AI analysis unusable, using heuristics: %s", exc)
        return heuristic_analysis(email.subject, content)


# =============================================================================
# Learning
# =============================================================================


def learn_from_emails(db: Session, account: EmailAccount, limit: int = 200) -> dict[str, Any]:
    """Summarise who writes to this mailbox and what about."""
    emails = (
        db.query(EmailIndex)
        .filter(EmailIndex.email_account_id == account.id)
        .order_by(EmailIndex.received_at.desc())
        .limit(limit)
        .all()
    )
    senders = Counter(
        e.sender_email.lower()
        for e in emails
        if e.sender_email and e.email_type == EmailType.RECEIVED.value
    )
    terms = Counter(
        word
        for e in emails
        for word in (w.lower() for w in _WORD_RE.findall(e.subject or ""))
        if len(word) > 2 and word not in STOP_WORDS
    )
    sent = sum(1 for e in emails if e.email_type == EmailType.SENT.value)

    return {
        "emails_analyzed": len(emails),
        "top_senders": [{"email": s, "count": c} for s, c in senders.most_common(10)],
        "common_subject_terms": [t for t, _ in terms.most_common(15)],
        "sent_ratio": round(sent / len(emails), 3) if emails else 0.0,
    }
