"""
Model registry.

Holds the catalog of model backends indexed by role. The catalog can be
seeded directly (`register`), loaded from a JSON file (`from_file`) or pulled
from an async loader that is re-invoked once the cache TTL has expired.

Selection reads the registry through `list_by_role`; the registry is treated
as a read-only snapshot for the duration of one selection.
"""
import asyncio
import json
import time
from collections import Counter
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Union

from modelgate.core.logging import get_logger
from modelgate.services.models.schema import ModelDescriptor, ModelRole, ModelStatus

logger = get_logger(__name__)

CatalogLoader = Callable[[], Awaitable[Iterable[ModelDescriptor]]]


class RegistryUnavailableError(Exception):
    """Raised when the catalog cannot be read and no snapshot is cached."""
    pass


class ModelLifecycleError(Exception):
    """Raised when a status transition is not allowed for a model."""
    pass


class ModelRegistryProtocol(Protocol):
    async def list_by_role(self, role: ModelRole) -> List[ModelDescriptor]:
        ...


class ModelRegistry:
    """In-memory model catalog with optional TTL-based refresh."""

    def __init__(
        self,
        models: Optional[Iterable[ModelDescriptor]] = None,
        loader: Optional[CatalogLoader] = None,
        cache_ttl_seconds: float = 300.0,
    ):
        self._models: Dict[str, ModelDescriptor] = {}
        self._loader = loader
        self.cache_ttl_seconds = cache_ttl_seconds
        self._last_sync: Optional[float] = None
        for model in models or ():
            self.register(model)

    @classmethod
    def from_file(cls, path: Union[str, Path], cache_ttl_seconds: float = 300.0) -> "ModelRegistry":
        """
        Load a catalog from a JSON file.

        The file holds either a list of model objects or {"models": [...]}.
        The file is re-read on refresh, so edits are picked up out-of-band.
        """
        catalog_path = Path(path)

        async def _load() -> List[ModelDescriptor]:
            return await asyncio.to_thread(load_catalog, catalog_path)

        registry = cls(models=load_catalog(catalog_path), loader=_load, cache_ttl_seconds=cache_ttl_seconds)
        registry._last_sync = time.monotonic()
        return registry

    def register(self, model: ModelDescriptor) -> None:
        """Add or replace a model. Insertion order is preserved for new ids."""
        self._models[model.id] = model

    def get_model(self, model_id: str) -> Optional[ModelDescriptor]:
        return self._models.get(model_id)

    def set_status(self, model_id: str, status: ModelStatus) -> ModelDescriptor:
        """
        Change the lifecycle status of a model (e.g. promote canary to stable).

        Raises:
            KeyError if the model is unknown.
        """
        current = self._models[model_id]
        updated = current.model_copy(update={"status": status})
        self._models[model_id] = updated
        logger.info(
            "model_status_changed",
            model_id=model_id,
            previous_status=current.status.value,
            status=status.value,
        )
        return updated

    def promote_canary(self, model_id: str) -> ModelDescriptor:
        """
        Promote a canary to stable for its role.

        Every active stable model of the same role is disabled first, so the
        promoted model becomes the only stable one. Changes apply to the
        in-memory snapshot; a loader refresh replaces them.

        Raises:
            ModelLifecycleError if the model is unknown or not a canary.
        """
        canary = self._models.get(model_id)
        if canary is None:
            raise ModelLifecycleError(f"Canary model not found: {model_id}")
        if canary.status != ModelStatus.CANARY:
            raise ModelLifecycleError(
                f"Model {model_id} is not in canary status (status={canary.status.value})"
            )

        demoted = self.list_models(role=canary.role, status=ModelStatus.STABLE, is_active=True)
        for model in demoted:
            self.set_status(model.id, ModelStatus.DISABLED)
        promoted = self.set_status(model_id, ModelStatus.STABLE)

        logger.info(
            "canary_promoted",
            model_id=model_id,
            role=canary.role.value,
            demoted_model_ids=[model.id for model in demoted],
        )
        return promoted

    def remove_model(self, model_id: str) -> bool:
        """Soft-delete: mark inactive and disabled. Returns False for unknown ids."""
        current = self._models.get(model_id)
        if current is None:
            logger.warning("model_remove_unknown", model_id=model_id)
            return False
        self._models[model_id] = current.model_copy(
            update={"is_active": False, "status": ModelStatus.DISABLED}
        )
        logger.info("model_deactivated", model_id=model_id)
        return True

    async def stats(self) -> Dict[str, Any]:
        """Counts of active models: total, by_status, by_role and by_provider."""
        await self.ensure_fresh()
        active = [model for model in self._models.values() if model.is_active]
        return {
            "total": len(active),
            "by_status": dict(Counter(model.status.value for model in active)),
            "by_role": dict(Counter(model.role.value for model in active)),
            "by_provider": dict(Counter(model.provider or "unknown" for model in active)),
        }

    def list_models(
        self,
        role: Optional[ModelRole] = None,
        status: Optional[ModelStatus] = None,
        provider: Optional[str] = None,
        is_active: Optional[bool] = None,
        capabilities: Optional[Iterable[str]] = None,
    ) -> List[ModelDescriptor]:
        """Filter the current snapshot. All filters are optional and combined with AND."""
        required = frozenset(capabilities or ())
        models = []
        for model in self._models.values():
            if role is not None and model.role != role:
                continue
            if status is not None and model.status != status:
                continue
            if provider is not None and model.provider != provider:
                continue
            if is_active is not None and model.is_active != is_active:
                continue
            if required and not model.has_capabilities(required):
                continue
            models.append(model)
        return models

    async def list_by_role(self, role: ModelRole) -> List[ModelDescriptor]:
        """
        Selectable models for a role: active and not disabled, in catalog order.

        Raises:
            RegistryUnavailableError if the loader fails and nothing is cached.
        """
        await self.ensure_fresh()
        return [
            model
            for model in self._models.values()
            if model.role == ModelRole(role)
            and model.is_active
            and model.status != ModelStatus.DISABLED
        ]

    async def ensure_fresh(self) -> None:
        """Refresh from the loader when the cached snapshot is older than the TTL."""
        if self._loader is None:
            return
        if self._last_sync is not None and (time.monotonic() - self._last_sync) < self.cache_ttl_seconds:
            return
        await self.refresh()

    async def refresh(self) -> None:
        """
        Replace the snapshot with the loader's catalog.

        A failed refresh keeps serving the previous snapshot; it only raises
        when there has never been a successful load.
        """
        if self._loader is None:
            return
        try:
            models = list(await self._loader())
        except Exception as exc:
            if self._last_sync is None and not self._models:
                logger.error(
                    "model_registry_unavailable",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise RegistryUnavailableError(f"Model catalog could not be loaded: {exc}") from exc
            logger.warning(
                "model_registry_refresh_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                cached_models=len(self._models),
            )
            self._last_sync = time.monotonic()
            return

        self._models = {model.id: model for model in models}
        self._last_sync = time.monotonic()
        logger.info("model_registry_refreshed", models_count=len(self._models))


def load_catalog(path: Path) -> List[ModelDescriptor]:
    """
    Parse a JSON catalog file into descriptors.

    Raises:
        RegistryUnavailableError if the file is missing or malformed.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise RegistryUnavailableError(f"Cannot read model catalog {path}: {exc}") from exc

    entries = data.get("models", []) if isinstance(data, dict) else data
    try:
        return [ModelDescriptor.model_validate(entry) for entry in entries]
    except ValueError as exc:
        raise RegistryUnavailableError(f"Invalid model catalog {path}: {exc}") from exc
