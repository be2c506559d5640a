"""Access Guard - Decides who may read or act on a workflow instance"""
from typing import Optional, TYPE_CHECKING

from ..config.settings import settings
from ..domain.errors import PermissionDeniedError
from ..domain.models import WorkflowInstance
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..repositories.base import IdentityStore

logger = get_logger(__name__)


class AccessGuard:
    """
    Permission enforcement for instance operations

    Rules:
    - The assignee may act on the instance
    - The initiator may act on the instance
    - Anyone holding the administrator role may act on any instance

    The first two checks use the loaded instance only; the identity store
    is consulted for the administrator fallback.
    """

    def __init__(self, identity_store: "IdentityStore", admin_role_name: Optional[str] = None):
        self._identity_store = identity_store
        self._admin_role_name = admin_role_name or settings.admin_role_name

    def can_access(self, instance: WorkflowInstance, actor: str) -> bool:
        if not actor:
            return False

        if actor == instance.assignee or actor == instance.initiated_by:
            return True

        identity = self._identity_store.find_identity(actor)
        if identity is None:
            return False
        return identity.has_role(self._admin_role_name)

    def ensure_can_access(self, instance: WorkflowInstance, actor: str) -> None:
        """
        Raise if the actor may not access the instance

        Raises:
            PermissionDeniedError: If access is denied
        """
        if not self.can_access(instance, actor):
            logger.warning(
                f"Access denied to instance {instance.instance_id} for {actor}",
                extra={"instance_id": instance.instance_id, "actor": actor}
            )
            raise PermissionDeniedError(
                "You do not have permission to access this task",
                details={"instance_id": instance.instance_id}
            )
