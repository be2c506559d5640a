"""
Task CRUD Routes

Start, read and list workflow instances.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...deps import get_current_username_dep, get_correlation_id_dep, get_instance_service
from ....domain.errors import DomainError
from ....domain.models import InstanceSnapshot
from ....services.instance_service import InstanceService
from ....utils.logger import get_logger
from .schemas import TaskListResponse

logger = get_logger(__name__)
router = APIRouter()


@router.get("/", response_model=TaskListResponse)
async def list_my_tasks(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    actor: str = Depends(get_current_username_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: InstanceService = Depends(get_instance_service)
):
    """
    List workflow instances assigned to the current user

    Newest first; page is 1-based.
    """
    try:
        result = service.list_for_assignee(actor, page=page, page_size=page_size)
        return TaskListResponse(
            items=result.items,
            page=result.page,
            page_size=result.page_size,
            total=result.total,
            has_next=result.has_next
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/start/{workflow_id}", response_model=InstanceSnapshot, status_code=status.HTTP_201_CREATED)
async def start_workflow(
    workflow_id: str,
    actor: str = Depends(get_current_username_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: InstanceService = Depends(get_instance_service)
):
    """
    Start a published workflow

    The current user becomes both initiator and assignee.
    """
    try:
        snapshot = service.start(workflow_id, actor)
        logger.info(
            f"Started task: {snapshot.id}",
            extra={"instance_id": snapshot.id, "workflow_id": workflow_id, "actor": actor}
        )
        return snapshot

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{instance_id}", response_model=InstanceSnapshot)
async def get_task(
    instance_id: str,
    actor: str = Depends(get_current_username_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: InstanceService = Depends(get_instance_service)
):
    """Get a workflow instance the current user may access"""
    try:
        return service.get(instance_id, actor)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
