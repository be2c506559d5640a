"""Cached lookups - TTL caching for templates and identities

Only the read-mostly stores are wrapped. Instances always go straight to
their store so the version check on save sees current data.
"""
from typing import Optional

from ..config.settings import settings
from ..domain.models import Identity, WorkflowTemplate
from ..utils.cache import TTLCache
from ..utils.logger import get_logger
from .base import IdentityStore, TemplateStore

logger = get_logger(__name__)


class CachedTemplateStore:
    """Template store with a TTL cache in front of it"""

    def __init__(
        self,
        store: TemplateStore,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None
    ):
        self._store = store
        self._cache: TTLCache[WorkflowTemplate] = TTLCache(
            ttl_seconds or settings.lookup_cache_ttl_seconds,
            max_entries or settings.lookup_cache_max_entries,
        )

    def find_template_with_steps(self, workflow_id: str) -> Optional[WorkflowTemplate]:
        template = self._cache.get_or_load(
            workflow_id, lambda: self._store.find_template_with_steps(workflow_id)
        )
        return template.model_copy(deep=True) if template else None

    def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        saved = self._store.save_template(template)
        self.invalidate(template.workflow_id)
        return saved

    def invalidate(self, workflow_id: str) -> None:
        logger.debug(f"Evicting cached workflow {workflow_id}", extra={"workflow_id": workflow_id})
        self._cache.invalidate(workflow_id)

    def clear(self) -> None:
        self._cache.clear()


class CachedIdentityStore:
    """Identity store with a TTL cache in front of it"""

    def __init__(
        self,
        store: IdentityStore,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None
    ):
        self._store = store
        self._cache: TTLCache[Identity] = TTLCache(
            ttl_seconds or settings.lookup_cache_ttl_seconds,
            max_entries or settings.lookup_cache_max_entries,
        )

    def find_identity(self, username: str) -> Optional[Identity]:
        identity = self._cache.get_or_load(username, lambda: self._store.find_identity(username))
        return identity.model_copy(deep=True) if identity else None

    def save_identity(self, identity: Identity) -> Identity:
        saved = self._store.save_identity(identity)
        self.invalidate(identity.username)
        return saved

    def invalidate(self, username: str) -> None:
        logger.debug(f"Evicting cached identity {username}", extra={"actor": username})
        self._cache.invalidate(username)

    def clear(self) -> None:
        self._cache.clear()
