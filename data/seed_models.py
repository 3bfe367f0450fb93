"""
Seed script that writes a sample model catalog for local development.
The output file can be loaded with ModelRegistry.from_file.

Usage: python data/seed_models.py [--output=data/models.json] [--with-canary]
"""
import argparse
import json
from pathlib import Path

from modelgate.core.observability import configure_observability
from modelgate.services.models.schema import ModelDescriptor, ModelRole, ModelStatus

DEFAULT_OUTPUT = Path(__file__).parent / "models.json"

# (role, provider, name, capabilities)
SAMPLE_MODELS = [
    (ModelRole.SCHEMA, "anthropic", "Schema Designer A", ["sql", "migrations", "json"]),
    (ModelRole.SCHEMA, "openai", "Schema Designer B", ["sql", "migrations"]),
    (ModelRole.SCHEMA, "google", "Schema Designer C", ["sql", "json"]),
    (ModelRole.CODE_GENERATOR, "anthropic", "Code Generator A", ["python", "typescript"]),
    (ModelRole.CODE_GENERATOR, "openai", "Code Generator B", ["python"]),
    (ModelRole.CONVERSATIONAL, "anthropic", "Chat A", ["streaming"]),
    (ModelRole.SECURITY_CHECKER, "openai", "Security Reviewer A", ["sast"]),
    (ModelRole.RESEARCH, "google", "Research A", ["web"]),
]


def generate_models(with_canary: bool = False):
    """Build catalog entries; optionally add one canary per role that has models."""
    models = []
    for index, (role, provider, name, capabilities) in enumerate(SAMPLE_MODELS, start=1):
        models.append(
            ModelDescriptor(
                id=f"{role.value}-{provider}-{index}",
                name=name,
                role=role,
                status=ModelStatus.STABLE,
                capabilities=frozenset(capabilities),
                provider=provider,
                version_tag="v1",
            )
        )

    if with_canary:
        roles = sorted({model.role for model in models}, key=lambda role: role.value)
        for role in roles:
            models.append(
                ModelDescriptor(
                    id=f"{role.value}-canary",
                    name=f"{role.value.replace('_', ' ').title()} Canary",
                    role=role,
                    status=ModelStatus.CANARY,
                    capabilities=frozenset(),
                    provider="anthropic",
                    version_tag="v2-rc",
                )
            )
    return models


def main():
    parser = argparse.ArgumentParser(description="Write a sample model catalog")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="Catalog file to write")
    parser.add_argument("--with-canary", action="store_true", help="Add one canary model per role")
    args = parser.parse_args()
    configure_observability()

    print("=" * 60)
    print("Seeding model catalog")
    print("=" * 60)

    models = generate_models(with_canary=args.with_canary)
    catalog = {"models": [model.model_dump(mode="json") for model in models]}

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(json.dumps(catalog, indent=2), encoding="utf-8")

    print(f"[OK] Wrote {len(models)} models to {args.output}")


if __name__ == "__main__":
    main()
