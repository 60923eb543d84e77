"""Deterministic, token-order-insensitive similarity for normalized names."""

from __future__ import annotations

from difflib import SequenceMatcher

_SEQUENCE_WEIGHT = 0.4
_ALIGNMENT_WEIGHT = 0.6
_PREFIX_TOKEN_SCORE = 0.85
_INITIAL_TOKEN_SCORE = 0.6
_TOKEN_RATIO_MIN = 0.8
_UNANCHORED_PENALTY = 0.5


def token_similarity(left: str, right: str) -> float:
    """Score two single name tokens in [0, 1]."""

    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    short, long_ = (left, right) if len(left) <= len(right) else (right, left)
    if len(short) == 1:
        return _INITIAL_TOKEN_SCORE if long_.startswith(short) else 0.0
    if len(short) >= 3 and long_.startswith(short):
        return _PREFIX_TOKEN_SCORE
    ratio = SequenceMatcher(a=left, b=right).ratio()
    return ratio if ratio >= _TOKEN_RATIO_MIN else 0.0


def token_alignment(left_tokens: list[str], right_tokens: list[str]) -> tuple[float, bool]:
    """Greedy one-to-one token alignment.

    Returns the mean aligned score over the longer name and whether at least
    one full (non-initial) token pair anchored the alignment.
    """

    if not left_tokens or not right_tokens:
        return 0.0, False
    pairs = sorted(
        (
            (token_similarity(left, right), left_index, right_index)
            for left_index, left in enumerate(left_tokens)
            for right_index, right in enumerate(right_tokens)
        ),
        key=lambda pair: (-pair[0], pair[1], pair[2]),
    )
    used_left: set[int] = set()
    used_right: set[int] = set()
    total = 0.0
    anchored = False
    for score, left_index, right_index in pairs:
        if score <= 0.0:
            break
        if left_index in used_left or right_index in used_right:
            continue
        used_left.add(left_index)
        used_right.add(right_index)
        total += score
        if score >= _TOKEN_RATIO_MIN:
            anchored = True
    return total / max(len(left_tokens), len(right_tokens)), anchored


def name_similarity(left: str, right: str) -> float:
    """Composite similarity of two normalized names, rounded to 4 places.

    Names sharing no anchored token are halved, which keeps them below any
    sensible match floor ("josh cougler" never scores against "sam ghanem").
    """

    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    left_tokens = left.split()
    right_tokens = right.split()
    sequence = SequenceMatcher(
        a=" ".join(sorted(left_tokens)),
        b=" ".join(sorted(right_tokens)),
    ).ratio()
    alignment, anchored = token_alignment(left_tokens, right_tokens)
    blended = _SEQUENCE_WEIGHT * sequence + _ALIGNMENT_WEIGHT * alignment
    if not anchored:
        blended *= _UNANCHORED_PENALTY
    return round(blended, 4)
