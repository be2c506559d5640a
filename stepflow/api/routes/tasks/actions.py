"""
Task Action Routes

Submit the current step's form and cancel running instances.
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, HTTPException

from ...deps import get_current_username_dep, get_correlation_id_dep, get_instance_service
from ....domain.errors import DomainError
from ....domain.models import InstanceSnapshot
from ....services.instance_service import InstanceService
from ....utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.post("/{instance_id}/submit", response_model=InstanceSnapshot)
async def submit_task(
    instance_id: str,
    form_values: Optional[Dict[str, Any]] = Body(None),
    actor: str = Depends(get_current_username_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: InstanceService = Depends(get_instance_service)
):
    """
    Submit form values for the current step

    Blocking business rules (REQUIRE_APPROVAL, REJECT) are checked first;
    a match returns 400 RULE_BLOCKED and leaves the instance unchanged.
    """
    try:
        return service.submit(instance_id, actor, form_values or {})

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{instance_id}/cancel", response_model=InstanceSnapshot)
async def cancel_task(
    instance_id: str,
    actor: str = Depends(get_current_username_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: InstanceService = Depends(get_instance_service)
):
    """Cancel a running workflow instance"""
    try:
        return service.cancel(instance_id, actor)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
