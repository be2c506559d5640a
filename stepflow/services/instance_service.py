"""Instance Service - Lifecycle API returning serializable snapshots"""
from typing import Any, Mapping, Optional

from ..config.settings import Settings, settings as default_settings
from ..domain.models import InstancePage, InstanceSnapshot
from ..engine.engine import WorkflowEngine
from ..repositories.base import IdentityStore, InstanceStore, TemplateStore
from ..repositories.cached import CachedIdentityStore, CachedTemplateStore
from ..utils.logger import get_logger

logger = get_logger(__name__)


class InstanceService:
    """Service for workflow instance operations"""

    def __init__(self, engine: WorkflowEngine):
        self.engine = engine

    def start(self, workflow_id: str, actor: str) -> InstanceSnapshot:
        """Start a published workflow for the acting user"""
        return self.engine.start(workflow_id, actor).to_snapshot()

    def submit(
        self,
        instance_id: str,
        actor: str,
        form_values: Optional[Mapping[str, Any]]
    ) -> InstanceSnapshot:
        """Submit form values for the instance's current step"""
        return self.engine.submit(instance_id, actor, form_values).to_snapshot()

    def cancel(self, instance_id: str, actor: str) -> InstanceSnapshot:
        return self.engine.cancel(instance_id, actor).to_snapshot()

    def get(self, instance_id: str, actor: str) -> InstanceSnapshot:
        return self.engine.get(instance_id, actor).to_snapshot()

    def list_for_assignee(
        self,
        actor: str,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> InstancePage:
        """List the acting user's assigned instances"""
        page = max(page, 1)
        size = self.engine.effective_page_size(page_size)
        instances, total = self.engine.list_for_assignee(actor, page, size)
        return InstancePage(
            items=[instance.to_snapshot() for instance in instances],
            page=page,
            page_size=size,
            total=total,
        )


def build_instance_service(app_settings: Optional[Settings] = None) -> InstanceService:
    """
    Wire stores and engine for the configured storage backend

    "memory" keeps everything in process; "mongo" uses the MongoDB
    repositories. Template and identity lookups are TTL-cached either way.
    """
    app_settings = app_settings or default_settings
    template_store: TemplateStore
    instance_store: InstanceStore
    identity_store: IdentityStore

    if app_settings.uses_memory_storage:
        from ..repositories.memory import (
            InMemoryIdentityStore, InMemoryInstanceStore, InMemoryTemplateStore
        )
        template_store = InMemoryTemplateStore()
        instance_store = InMemoryInstanceStore()
        identity_store = InMemoryIdentityStore()
    else:
        from ..repositories.identity_repo import IdentityRepository
        from ..repositories.instance_repo import InstanceRepository
        from ..repositories.template_repo import TemplateRepository
        template_store = TemplateRepository()
        instance_store = InstanceRepository()
        identity_store = IdentityRepository()

    logger.info(f"Using {app_settings.storage_backend} storage backend")
    engine = WorkflowEngine(
        template_store=CachedTemplateStore(
            template_store,
            app_settings.lookup_cache_ttl_seconds,
            app_settings.lookup_cache_max_entries,
        ),
        instance_store=instance_store,
        identity_store=CachedIdentityStore(
            identity_store,
            app_settings.lookup_cache_ttl_seconds,
            app_settings.lookup_cache_max_entries,
        ),
        app_settings=app_settings,
    )
    return InstanceService(engine)
