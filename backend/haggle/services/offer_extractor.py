"""
Offer extraction from free-text chat.

WHAT: Assign a numeric offer and confidence to a chat message
WHY: Track each role's latest offer without asking participants for structured input
HOW: Regex token scan + lexical context scoring + role-biased selection

The heuristic is deterministic and side-effect free:

1. Every numeric token (optionally "$"-prefixed or followed by "dollars"/"USD")
   starts at BASE_CONFIDENCE.
2. A token glued to a product/model qualifier ("iPhone 14", "14 Pro",
   "Series 5") is suppressed to near-zero confidence.
3. Offer-declaration phrases in the surrounding window boost the token
   (more when the phrase comes before the number).
4. Rejection phrases dampen it; the number may still anchor a later offer.
5. A currency marker boosts it.
6. Confidence is scaled by how plausible the magnitude is as a price.

Selection: explicit offer-declarations win; otherwise sellers anchor high and
buyers anchor low within the most-confident cluster.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..core.config import settings
from ..models.negotiation import ExtractionResult, OfferCandidate, Role
from ..utils.logger import get_logger

logger = get_logger(__name__)


BASE_CONFIDENCE = 0.5
SUPPRESSED_CONFIDENCE = 0.02
OFFER_BOOST_BEFORE = 0.35
OFFER_BOOST_AFTER = 0.25
CURRENCY_BOOST = 0.15
REJECTION_DAMPING = 0.6
CLUSTER_MARGIN = 0.1

TAG_OFFER = "offer"
TAG_REJECTION = "rejection"
TAG_MODEL_NUMBER = "model_number"
TAG_NEUTRAL = "neutral"

# $1,200 | $ 500.50 | 300 | 450 dollars
TOKEN_PATTERN = re.compile(
    r'(?P<currency>\$\s?)?'
    r'(?<![\w.,])(?P<number>\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)(?!\w)'
    r'(?P<suffix>\s*(?:usd|dollars?|bucks)\b)?',
    re.IGNORECASE
)

# Words that make an adjacent number a catalog/model number
PRECEDING_QUALIFIERS = frozenset({
    "iphone", "ipad", "galaxy", "pixel", "note", "series", "model", "version",
    "mark", "mk", "gen", "generation", "edition", "playstation", "xbox", "ps",
    "windows", "ios", "android", "v",
})
FOLLOWING_QUALIFIERS = frozenset({
    "pro", "max", "plus", "ultra", "mini", "series", "gb", "tb", "inch",
    "inches", "mp", "hz", "gen", "generation", "edition",
})

OFFER_PHRASES = (
    "i can offer", "i'll offer", "i will offer", "how about", "what about",
    "my final offer", "final offer", "best offer", "my offer", "counter",
    "i can do", "i could do", "i can go", "i'll go", "i can sell", "i'll sell",
    "i will sell", "sell it for", "sell this for", "i'll pay", "i will pay",
    "i can pay", "willing to pay", "i'll take", "i will take", "would you take",
    "would you accept", "let's say", "lets say", "meet at", "meeting at",
    "deal at", "asking",
)

REJECTION_PHRASES = (
    "too high", "too low", "too much", "too expensive", "can't afford",
    "cannot afford", "cant afford", "no way", "not worth", "can't go",
    "cannot go", "can't do", "cannot do", "won't pay", "will not pay",
    "not paying", "out of my budget", "over my budget", "ridiculous",
)

_WORD_BEFORE = re.compile(r'([a-z]+)\s*$')
_WORD_AFTER = re.compile(r'^\s*([a-z]+)')


@dataclass(frozen=True)
class ExtractorConfig:
    """Tunable thresholds for the heuristic."""
    min_confidence: float = 0.2
    window: int = 30
    plausible_min: float = 5.0
    plausible_max: float = 100000.0

    @classmethod
    def from_settings(cls) -> "ExtractorConfig":
        return cls(
            min_confidence=settings.OFFER_MIN_CONFIDENCE,
            window=settings.OFFER_CONTEXT_WINDOW,
            plausible_min=settings.OFFER_PLAUSIBLE_MIN,
            plausible_max=settings.OFFER_PLAUSIBLE_MAX,
        )


def _normalize(text: str) -> str:
    return text.lower().replace("’", "'")


def _contains_any(window: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in window for phrase in phrases)


def _has_model_qualifier(before: str, after: str) -> bool:
    """
    True if the token is glued to a product/model qualifier word.

    Only the context windows are searched, which keeps a long message linear.
    """
    preceding = _WORD_BEFORE.search(before)
    if preceding and preceding.group(1) in PRECEDING_QUALIFIERS:
        return True
    following = _WORD_AFTER.match(after)
    return bool(following and following.group(1) in FOLLOWING_QUALIFIERS)


def _plausibility(value: float, config: ExtractorConfig) -> float:
    """Scale factor for how believable the magnitude is as a price."""
    if value <= 0:
        return 0.05
    if value < config.plausible_min:
        return 0.4
    if value > config.plausible_max:
        return 0.3
    return 1.0


def score_candidates(text: str, config: Optional[ExtractorConfig] = None) -> list[OfferCandidate]:
    """
    Find and score every numeric token in the text.

    Args:
        text: Raw chat message
        config: Thresholds (defaults to application settings)

    Returns:
        Candidates in textual order
    """
    config = config or ExtractorConfig.from_settings()
    lowered = _normalize(text)
    candidates = []

    for match in TOKEN_PATTERN.finditer(lowered):
        value = float(match.group("number").replace(",", ""))
        currency = bool(match.group("currency") or match.group("suffix"))
        start, end = match.start("number"), match.end("number")

        before = lowered[max(0, start - config.window):start]
        after = lowered[end:end + config.window]

        if not currency and _has_model_qualifier(before, after):
            candidates.append(OfferCandidate(
                value=value,
                confidence=SUPPRESSED_CONFIDENCE,
                tag=TAG_MODEL_NUMBER,
                position=start,
                currency=False,
            ))
            continue

        confidence = BASE_CONFIDENCE
        tag = TAG_NEUTRAL

        if _contains_any(before, OFFER_PHRASES):
            confidence += OFFER_BOOST_BEFORE
            tag = TAG_OFFER
        elif _contains_any(after, OFFER_PHRASES):
            confidence += OFFER_BOOST_AFTER
            tag = TAG_OFFER

        if currency:
            confidence += CURRENCY_BOOST

        if _contains_any(before + " " + after, REJECTION_PHRASES):
            confidence *= REJECTION_DAMPING
            if tag != TAG_OFFER:
                tag = TAG_REJECTION

        confidence *= _plausibility(value, config)

        candidates.append(OfferCandidate(
            value=value,
            confidence=round(min(1.0, max(0.0, confidence)), 4),
            tag=tag,
            position=start,
            currency=currency,
        ))

    return candidates


def _pick_by_role(cluster: list[OfferCandidate], role: Optional[Role]) -> OfferCandidate:
    if role is Role.SELLER:
        return max(cluster, key=lambda c: (c.value, c.position))
    if role is Role.BUYER:
        return min(cluster, key=lambda c: (c.value, -c.position))
    return max(cluster, key=lambda c: (c.confidence, -c.position))


def select_offer(
    candidates: list[OfferCandidate],
    role: Optional[Role],
    config: Optional[ExtractorConfig] = None
) -> Optional[OfferCandidate]:
    """
    Choose the candidate that represents the message's offer.

    Offer-declarations above the floor win (highest confidence, ties broken
    by role bias). Otherwise the most-confident cluster is reduced by role:
    seller -> maximum value, buyer -> minimum value, no role -> single
    highest-confidence candidate.
    """
    config = config or ExtractorConfig.from_settings()
    eligible = [c for c in candidates if c.confidence >= config.min_confidence]
    if not eligible:
        return None

    declared = [c for c in eligible if c.tag == TAG_OFFER]
    if declared:
        top = max(c.confidence for c in declared)
        return _pick_by_role([c for c in declared if c.confidence == top], role)

    top = max(c.confidence for c in eligible)
    if role is None:
        return _pick_by_role([c for c in eligible if c.confidence == top], None)
    cluster = [c for c in eligible if c.confidence >= top - CLUSTER_MARGIN]
    return _pick_by_role(cluster, role)


def extract_offer(
    text: str,
    role: Optional[Role] = None,
    config: Optional[ExtractorConfig] = None
) -> ExtractionResult:
    """
    Extract a numeric offer from a chat message.

    Args:
        text: Raw chat message
        role: Author's role, used to bias selection (sellers high, buyers low)
        config: Thresholds (defaults to application settings)

    Returns:
        ExtractionResult with the chosen offer (or None) and all scored candidates

    Example:
        >>> extract_offer("I can sell this for $500", Role.SELLER).offer
        500.0
    """
    config = config or ExtractorConfig.from_settings()
    candidates = score_candidates(text or "", config)
    chosen = select_offer(candidates, role, config)

    if chosen is None:
        if candidates:
            logger.debug(f"No candidate above confidence floor in {len(candidates)} numeric tokens")
        return ExtractionResult(offer=None, confidence=0.0, tag="none", candidates=candidates)

    return ExtractionResult(
        offer=chosen.value,
        confidence=chosen.confidence,
        tag=chosen.tag,
        candidates=candidates,
    )
