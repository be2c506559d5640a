"""Instance Repository - Data access for workflow instances"""
from typing import List, Optional, Tuple
from pymongo.collection import Collection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import WORKFLOW_INSTANCES, get_collection
from ..domain.models import WorkflowInstance
from ..domain.errors import AlreadyExistsError, ConcurrencyError, InstanceNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# created_at and instance_id never change, so pages stay stable
LIST_SORT = [("created_at", DESCENDING), ("instance_id", DESCENDING)]


class InstanceRepository:
    """Repository for workflow instances with optimistic concurrency"""

    def __init__(self, collection: Optional[Collection] = None):
        self._instances: Collection = (
            collection if collection is not None else get_collection(WORKFLOW_INSTANCES)
        )

    def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Create a new instance"""
        # Don't use mode="json" - datetimes must stay sortable in MongoDB
        doc = instance.model_dump()
        doc["_id"] = instance.instance_id
        try:
            self._instances.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Instance {instance.instance_id} already exists")
        logger.info(f"Created instance: {instance.instance_id}", extra={"instance_id": instance.instance_id})
        return instance

    def load(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Get instance by ID"""
        doc = self._instances.find_one({"instance_id": instance_id})
        if doc:
            doc.pop("_id", None)
            return WorkflowInstance.model_validate(doc)
        return None

    def save(self, instance: WorkflowInstance) -> WorkflowInstance:
        """
        Write back an instance loaded earlier

        The write only applies if the stored version still equals the
        instance's version; the stored version is then bumped by one.

        Raises:
            ConcurrencyError: If another writer saved the instance first
            InstanceNotFoundError: If the instance no longer exists
        """
        expected_version = instance.version
        updates = instance.model_dump(exclude={"instance_id"})
        updates["version"] = expected_version + 1

        result = self._instances.find_one_and_update(
            {"instance_id": instance.instance_id, "version": expected_version},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            if self._instances.find_one({"instance_id": instance.instance_id}, {"_id": 1}):
                raise ConcurrencyError(
                    f"Workflow instance {instance.instance_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise InstanceNotFoundError(f"Workflow instance {instance.instance_id} not found")

        result.pop("_id", None)
        logger.info(
            f"Saved instance: {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "status": result.get("status")}
        )
        return WorkflowInstance.model_validate(result)

    def list_by_assignee(
        self,
        assignee: str,
        skip: int,
        limit: int
    ) -> Tuple[List[WorkflowInstance], int]:
        """List instances assigned to a user, newest first"""
        query = {"assignee": assignee}
        total = self._instances.count_documents(query)
        cursor = self._instances.find(query).sort(LIST_SORT).skip(skip).limit(limit)

        instances = []
        for doc in cursor:
            doc.pop("_id", None)
            instances.append(WorkflowInstance.model_validate(doc))
        return instances, total
