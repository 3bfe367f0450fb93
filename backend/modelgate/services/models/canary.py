"""
Deterministic canary bucketing.

The same (user, project, role) triple always maps to the same bucket in
[1, 100], so a user stays on one side of a canary experiment across calls and
raising the canary percentage only ever adds buckets.
"""
from typing import Optional

from modelgate.core.config import CanaryConfig

ANONYMOUS_USER = "anonymous"
DEFAULT_PROJECT = "default"


def canary_seed_string(user_id: Optional[str], project_id: Optional[str], role: str) -> str:
    return f"{user_id or ANONYMOUS_USER}-{project_id or DEFAULT_PROJECT}-{role}"


def stable_string_hash(value: str) -> int:
    """
    Order-sensitive 31-multiplier string hash with signed 32-bit wraparound.

    Iterates UTF-16 code units so the result matches the hash other services
    compute for the same seed string.
    """
    encoded = value.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + code_unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def canary_bucket(user_id: Optional[str], project_id: Optional[str], role: str) -> int:
    """Bucket in [1, 100] for a (user, project, role) triple."""
    return abs(stable_string_hash(canary_seed_string(user_id, project_id, role))) % 100 + 1


def is_canary_eligible(
    config: CanaryConfig,
    role: str,
    is_critical: bool,
    bucket: int,
    has_canary_candidates: bool,
) -> bool:
    """
    Whether a call should be routed to a canary model.

    All of: canary enabled, canary candidates exist, role not excluded,
    critical-only satisfied, and bucket within the configured percentage.
    """
    if not config.enabled or not has_canary_candidates:
        return False
    if role in config.excluded_roles:
        return False
    if config.critical_only and not is_critical:
        return False
    return bucket <= config.percentage
