"""
Pairwise agreement between panel outputs.

The agreement score is the fraction of successful-result pairs whose
similarity exceeds AGREEMENT_PAIR_THRESHOLD. The consensus payload is the
first successful result in panel order.
"""
import difflib
import json
from itertools import combinations
from typing import Any, Callable, Optional, Sequence, Tuple

from modelgate.core.logging import get_logger
from modelgate.services.verification.schema import PanelMemberResult

logger = get_logger(__name__)

SimilarityFn = Callable[[Any, Any], float]

AGREEMENT_PAIR_THRESHOLD = 0.8


def canonical_json(value: Any) -> str:
    """
    Serialization used to compare payloads; key order does not matter.

    Dicts whose keys JSON cannot encode or sort (tuples, mixed key types)
    are serialized with every non-string key replaced by a typed repr.
    """
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except TypeError:
        return json.dumps(_stringify_keys(value), sort_keys=True, default=str)


def _stringify_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {_key_text(key): _stringify_keys(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(item) for item in value]
    return value


def _key_text(key: Any) -> str:
    if isinstance(key, str):
        return key
    return f"{type(key).__name__}:{key!r}"


def length_ratio_similarity(a: Any, b: Any) -> float:
    """
    1.0 for identical serializations, otherwise shorter/longer length ratio.

    Cheap and structure-blind: two unrelated payloads of similar size score
    high. Use sequence_similarity when that matters.
    """
    if a is None or b is None:
        return 0.0
    left, right = canonical_json(a), canonical_json(b)
    if left == right:
        return 1.0
    longest = max(len(left), len(right))
    if longest == 0:
        return 1.0
    return min(len(left), len(right)) / longest


def exact_match_similarity(a: Any, b: Any) -> float:
    if a is None or b is None:
        return 0.0
    return 1.0 if canonical_json(a) == canonical_json(b) else 0.0


def sequence_similarity(a: Any, b: Any) -> float:
    """difflib ratio over the canonical serializations."""
    if a is None or b is None:
        return 0.0
    left, right = canonical_json(a), canonical_json(b)
    if left == right:
        return 1.0
    return difflib.SequenceMatcher(None, left, right, autojunk=False).ratio()


SIMILARITY_STRATEGIES = {
    "length_ratio": length_ratio_similarity,
    "exact": exact_match_similarity,
    "sequence": sequence_similarity,
}


def get_similarity(name: str) -> SimilarityFn:
    try:
        return SIMILARITY_STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown similarity strategy {name!r}; expected one of {sorted(SIMILARITY_STRATEGIES)}"
        ) from None


def calculate_agreement(
    results: Sequence[PanelMemberResult],
    similarity: SimilarityFn = length_ratio_similarity,
) -> float:
    """
    Share of agreeing pairs among successful results, in [0, 1].

    No successful result scores 0; a single one trivially agrees with itself.
    """
    payloads = [member.result for member in results if member.success]
    if not payloads:
        return 0.0
    if len(payloads) == 1:
        return 1.0

    pairs = list(combinations(payloads, 2))
    agreeing = sum(
        1 for left, right in pairs
        if _pair_similarity(similarity, left, right) > AGREEMENT_PAIR_THRESHOLD
    )
    return agreeing / len(pairs)


def _pair_similarity(similarity: SimilarityFn, left: Any, right: Any) -> float:
    # A pair that cannot be compared counts as disagreeing
    try:
        return similarity(left, right)
    except (TypeError, ValueError, RecursionError) as exc:
        logger.warning(
            "consensus_pair_not_comparable",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return 0.0


def calculate_consensus(
    results: Sequence[PanelMemberResult],
    similarity: SimilarityFn = length_ratio_similarity,
) -> Tuple[float, Optional[Any]]:
    """Returns (agreement_score, consensus_payload)."""
    consensus = next((member.result for member in results if member.success), None)
    return calculate_agreement(results, similarity), consensus
