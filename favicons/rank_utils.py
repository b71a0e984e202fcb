"""Deterministic quality score for icon candidates.

Scores depend only on declared metadata (size, type hint, rel text and where
the candidate came from), never on anything observed over the network.
"""

from typing import List, Optional, Sequence

from .models import Candidate, OriginKind

BASE_SCORE = 50
MANIFEST_BASE_SCORE = 60
VECTOR_BONUS = 100
APPLE_TOUCH_BONUS = 10
MASK_PENALTY = 10
REMOTE_FALLBACK_SCORE = 5

WELL_KNOWN_SCORES = {
    "/favicon.ico": 10,
    "/apple-touch-icon.png": 20,
}

SIZE_TIERS = (
    (512, 90),
    (256, 80),
    (192, 70),
    (128, 60),
    (64, 50),
    (32, 40),
)

FORMAT_BONUSES = (
    ("png", 20),
    ("webp", 15),
    ("gif", 10),
    ("ico", 5),
)


def is_vector_hint(hint: Optional[str]) -> bool:
    return bool(hint) and "svg" in hint.lower()


def size_bonus(size: Optional[int]) -> int:
    if not size:
        return 0
    for threshold, bonus in SIZE_TIERS:
        if size >= threshold:
            return bonus
    return 0


def format_bonus(hint: Optional[str]) -> int:
    if not hint:
        return 0
    hint = hint.lower()
    for needle, bonus in FORMAT_BONUSES:
        if needle in hint:
            return bonus
    return 0


def relation_bonus(relation_text: str) -> int:
    rel = (relation_text or "").lower()
    bonus = 0
    if "apple-touch" in rel:
        bonus += APPLE_TOUCH_BONUS
    if "mask" in rel or "monochrome" in rel:
        bonus -= MASK_PENALTY
    return bonus


def score_candidate(declared_size: Optional[int], format_hint: Optional[str],
                    relation_text: str, origin_kind: OriginKind) -> int:
    if origin_kind is OriginKind.REMOTE_FALLBACK:
        return REMOTE_FALLBACK_SCORE
    if origin_kind is OriginKind.WELL_KNOWN_PATH:
        return WELL_KNOWN_SCORES.get(relation_text, min(WELL_KNOWN_SCORES.values()))

    score = MANIFEST_BASE_SCORE if origin_kind is OriginKind.MANIFEST_ENTRY else BASE_SCORE
    if is_vector_hint(format_hint):
        score += VECTOR_BONUS
    score += size_bonus(declared_size)
    score += format_bonus(format_hint)
    score += relation_bonus(relation_text)
    return score


def rank_candidates(candidates: Sequence[Candidate]) -> List[Candidate]:
    """Highest score first; equal scores keep discovery order. Nothing is dropped."""
    return sorted(candidates, key=lambda c: c.rank_score, reverse=True)
