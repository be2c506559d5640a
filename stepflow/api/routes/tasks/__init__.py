"""
Task Routes Module

Workflow instance endpoints:

- crud.py: List my tasks, start a workflow, get a task
- actions.py: Submit the current step, cancel

All routes are combined into a single router for inclusion in the API.
"""

from fastapi import APIRouter

from .schemas import TaskListResponse
from .crud import router as crud_router
from .actions import router as actions_router

router = APIRouter()

# /start/{workflow_id} is a POST, so it never collides with GET /{instance_id}
router.include_router(crud_router)
router.include_router(actions_router)

__all__ = ["router", "TaskListResponse"]
