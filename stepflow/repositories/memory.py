"""In-memory stores

Useful for tests or local runs without MongoDB. Data is not persisted
across process restarts. Every read returns a detached copy, and saves
apply the same version check as the MongoDB instance repository.
"""
import threading
from typing import Dict, List, Optional, Tuple

from ..domain.models import Identity, WorkflowInstance, WorkflowTemplate
from ..domain.errors import AlreadyExistsError, ConcurrencyError, InstanceNotFoundError
from ..utils.time import utc_now


class InMemoryTemplateStore:
    """Store workflow templates in local memory"""

    def __init__(self) -> None:
        self._templates: Dict[str, WorkflowTemplate] = {}
        self._lock = threading.Lock()

    def find_template_with_steps(self, workflow_id: str) -> Optional[WorkflowTemplate]:
        with self._lock:
            template = self._templates.get(workflow_id)
            return template.model_copy(deep=True) if template else None

    def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        now = utc_now()
        if template.created_at is None:
            template.created_at = now
        template.updated_at = now
        with self._lock:
            self._templates[template.workflow_id] = template.model_copy(deep=True)
        return template


class InMemoryIdentityStore:
    """Store identities in local memory"""

    def __init__(self) -> None:
        self._identities: Dict[str, Identity] = {}
        self._lock = threading.Lock()

    def find_identity(self, username: str) -> Optional[Identity]:
        with self._lock:
            identity = self._identities.get(username)
            return identity.model_copy(deep=True) if identity else None

    def save_identity(self, identity: Identity) -> Identity:
        with self._lock:
            self._identities[identity.username] = identity.model_copy(deep=True)
        return identity


class InMemoryInstanceStore:
    """Store workflow instances in local memory"""

    def __init__(self) -> None:
        self._instances: Dict[str, WorkflowInstance] = {}
        self._lock = threading.Lock()

    def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        with self._lock:
            if instance.instance_id in self._instances:
                raise AlreadyExistsError(f"Instance {instance.instance_id} already exists")
            self._instances[instance.instance_id] = instance.model_copy(deep=True)
        return instance

    def load(self, instance_id: str) -> Optional[WorkflowInstance]:
        with self._lock:
            instance = self._instances.get(instance_id)
            return instance.model_copy(deep=True) if instance else None

    def save(self, instance: WorkflowInstance) -> WorkflowInstance:
        with self._lock:
            stored = self._instances.get(instance.instance_id)
            if stored is None:
                raise InstanceNotFoundError(f"Workflow instance {instance.instance_id} not found")
            if stored.version != instance.version:
                raise ConcurrencyError(
                    f"Workflow instance {instance.instance_id} was modified. Please refresh and try again.",
                    details={"expected_version": instance.version}
                )
            updated = instance.model_copy(deep=True, update={"version": instance.version + 1})
            self._instances[instance.instance_id] = updated
            return updated.model_copy(deep=True)

    def list_by_assignee(
        self,
        assignee: str,
        skip: int,
        limit: int
    ) -> Tuple[List[WorkflowInstance], int]:
        with self._lock:
            matches = [i for i in self._instances.values() if i.assignee == assignee]
        matches.sort(key=lambda i: (i.created_at, i.instance_id), reverse=True)
        page = matches[skip:skip + limit]
        return [i.model_copy(deep=True) for i in page], len(matches)
