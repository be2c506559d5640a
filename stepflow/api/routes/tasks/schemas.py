"""
Task Schemas

Response models for workflow instance ("task") endpoints. Submissions take
the form values themselves as the JSON body.
"""

from typing import List
from pydantic import BaseModel

from ....domain.models import InstanceSnapshot


class TaskListResponse(BaseModel):
    """Response for the assigned-task list"""
    items: List[InstanceSnapshot]
    page: int
    page_size: int
    total: int
    has_next: bool
