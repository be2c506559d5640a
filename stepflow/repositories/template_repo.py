"""Template Repository - Data access for workflow templates"""
from typing import Optional
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError
from pydantic import ValidationError

from .mongo_client import WORKFLOWS, get_collection
from ..domain.models import WorkflowTemplate
from ..domain.errors import AlreadyExistsError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class TemplateRepository:
    """Repository for workflow templates (steps and rules are embedded)"""

    def __init__(self, collection: Optional[Collection] = None):
        self._workflows: Collection = collection if collection is not None else get_collection(WORKFLOWS)

    def find_template_with_steps(self, workflow_id: str) -> Optional[WorkflowTemplate]:
        """Get template by ID"""
        doc = self._workflows.find_one({"workflow_id": workflow_id})
        if not doc:
            return None
        doc.pop("_id", None)
        try:
            return WorkflowTemplate.model_validate(doc)
        except ValidationError as e:
            logger.error(
                f"Corrupted workflow data for {workflow_id}. Validation failed: {str(e)[:500]}",
                extra={"workflow_id": workflow_id}
            )
            raise

    def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Insert or replace a template"""
        now = utc_now()
        if template.created_at is None:
            template.created_at = now
        template.updated_at = now

        doc = template.model_dump(mode="python")
        doc["_id"] = template.workflow_id
        try:
            self._workflows.replace_one({"_id": template.workflow_id}, doc, upsert=True)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Workflow {template.workflow_id} already exists")
        logger.info(f"Saved workflow: {template.workflow_id}", extra={"workflow_id": template.workflow_id})
        return template
