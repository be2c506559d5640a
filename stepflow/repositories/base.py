"""Store protocols consumed by the lifecycle engine"""
from typing import List, Optional, Protocol, Tuple

from ..domain.models import Identity, WorkflowInstance, WorkflowTemplate


class TemplateStore(Protocol):
    """Read access to workflow templates"""

    def find_template_with_steps(self, workflow_id: str) -> Optional[WorkflowTemplate]:
        """Template with its steps, fields and rules, or None"""

    def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Insert or replace a template"""


class InstanceStore(Protocol):
    """
    Persistence for workflow instances

    save() is atomic per instance: it fails with ConcurrencyError when the
    stored version differs from the instance's version, so two concurrent
    writers cannot both win.
    """

    def load(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Detached copy of the stored instance, or None"""

    def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Insert a new instance"""

    def save(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Write back a loaded instance, bumping its version"""

    def list_by_assignee(
        self,
        assignee: str,
        skip: int,
        limit: int
    ) -> Tuple[List[WorkflowInstance], int]:
        """Instances assigned to a user, newest first, plus the total count"""


class IdentityStore(Protocol):
    """Identity and role lookup"""

    def find_identity(self, username: str) -> Optional[Identity]:
        """Identity with its role names, or None"""

    def save_identity(self, identity: Identity) -> Identity:
        """Insert or replace an identity"""
