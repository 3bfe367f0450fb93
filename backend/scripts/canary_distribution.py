"""
Simulate canary bucket distribution for a population of users.
Usage: python scripts/canary_distribution.py [--users=10000] [--percent=5] [--role=schema] [--projects=3]

Prints the share of (user, project) pairs that would be routed to a canary
model for the given percentage, and how evenly buckets are filled.
"""
import argparse
import sys
from collections import Counter
from statistics import mean, stdev

from modelgate.core.config import CanaryConfig
from modelgate.core.observability import configure_observability
from modelgate.services.models.canary import canary_bucket, is_canary_eligible
from modelgate.services.models.schema import ModelRole


def simulate(num_users: int, num_projects: int, role: str, percentage: int):
    """Return (bucket counts, number of canary-routed pairs, total pairs)."""
    config = CanaryConfig(enabled=True, percentage=percentage)
    buckets: Counter = Counter()
    routed = 0
    total = 0

    for user_index in range(num_users):
        user_id = f"user_{user_index}"
        for project_index in range(num_projects):
            project_id = f"project_{project_index}"
            bucket = canary_bucket(user_id, project_id, role)
            buckets[bucket] += 1
            total += 1
            if is_canary_eligible(config, role, is_critical=False, bucket=bucket, has_canary_candidates=True):
                routed += 1

    return buckets, routed, total


def main():
    parser = argparse.ArgumentParser(description="Simulate canary routing distribution")
    parser.add_argument("--users", type=int, default=10000, help="Number of simulated users")
    parser.add_argument("--projects", type=int, default=3, help="Projects per user")
    parser.add_argument("--percent", type=int, default=5, help="Canary percentage (0-100)")
    parser.add_argument(
        "--role",
        default=ModelRole.SCHEMA.value,
        choices=[role.value for role in ModelRole],
        help="Model role used in the bucket seed",
    )
    args = parser.parse_args()
    tracer_provider = configure_observability()

    if not 0 <= args.percent <= 100:
        print("Error: --percent must be between 0 and 100", file=sys.stderr)
        sys.exit(1)

    print(f"Simulating {args.users} users x {args.projects} projects, role={args.role}, percent={args.percent}\n")

    buckets, routed, total = simulate(args.users, args.projects, args.role, args.percent)
    counts = [buckets.get(bucket, 0) for bucket in range(1, 101)]

    print("=" * 60)
    print("CANARY DISTRIBUTION")
    print("=" * 60)
    print(f"Pairs evaluated:      {total}")
    print(f"Routed to canary:     {routed} ({routed / total * 100:.2f}%)")
    print(f"Expected share:       {args.percent:.2f}%")
    print(f"Bucket fill (mean):   {mean(counts):.1f}")
    if len(counts) > 1:
        print(f"Bucket fill (stdev):  {stdev(counts):.1f}")
    print(f"Emptiest bucket:      {min(counts)}")
    print(f"Fullest bucket:       {max(counts)}")
    print("=" * 60)
    tracer_provider.shutdown()


if __name__ == "__main__":
    main()
