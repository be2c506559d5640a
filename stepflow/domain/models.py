"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from .enums import (
    FieldType, InstanceStatus, StepType, WorkflowStatus, BLOCKING_ACTIONS
)
from .errors import PayloadTooLargeError
from ..utils.time import format_iso


# ============================================================================
# Identity
# ============================================================================

class Identity(BaseModel):
    """A known user and the names of its roles"""
    model_config = ConfigDict(extra="ignore")

    username: str = Field(..., description="Unique login name")
    email: Optional[str] = Field(None, description="User email")
    full_name: Optional[str] = Field(None, description="Display name")
    roles: List[str] = Field(default_factory=list, description="Role names")

    def has_role(self, role_name: str) -> bool:
        """Case-insensitive role membership"""
        wanted = role_name.lower()
        return any(role.lower() == wanted for role in self.roles)


# ============================================================================
# Workflow Template (read-only to the engine)
# ============================================================================

class FieldDefinition(BaseModel):
    """Form field definition"""
    model_config = ConfigDict(extra="ignore")

    label: str = Field(..., description="Display label, also used as a rule variable alias")
    field_key: Optional[str] = Field(None, description="Stable key, used as rule variable name")
    field_type: FieldType = Field(default=FieldType.TEXT)
    required: bool = Field(default=False)
    placeholder: Optional[str] = None
    options: Optional[List[str]] = Field(None, description="Options for select/radio/checkbox")
    field_order: int = Field(default=0, description="Display order")


class RuleDefinition(BaseModel):
    """Business rule: condition expression plus the action taken when it matches"""
    model_config = ConfigDict(extra="ignore")

    rule_id: Optional[str] = Field(None, description="Unique rule ID")
    name: str = Field(default="Rule")
    description: Optional[str] = None
    condition_expression: Optional[str] = Field(None, description="e.g. amount > 1000")
    action_type: Optional[str] = Field(None, description="REQUIRE_APPROVAL, REJECT, AUTO_APPROVE, ...")
    rule_order: int = Field(default=0)
    step_id: Optional[str] = Field(None, description="Owning step, None for legacy workflow-level rules")

    @property
    def is_blocking(self) -> bool:
        return self.action_type in BLOCKING_ACTIONS


class StepDefinition(BaseModel):
    """A node in the template's linear step sequence"""
    model_config = ConfigDict(extra="ignore")

    step_id: str = Field(..., description="Unique step ID")
    name: str = Field(..., description="Display name")
    description: Optional[str] = None
    step_type: StepType = Field(default=StepType.TASK)
    step_order: int = Field(default=0, description="Order index within the template")
    fields: List[FieldDefinition] = Field(default_factory=list)
    rules: List[RuleDefinition] = Field(default_factory=list)

    def ordered_rules(self) -> List[RuleDefinition]:
        return sorted(self.rules, key=lambda r: r.rule_order)


class WorkflowTemplate(BaseModel):
    """Workflow template with its steps and legacy workflow-level rules"""
    model_config = ConfigDict(extra="ignore")

    workflow_id: str = Field(..., description="Unique workflow ID")
    name: str = Field(..., description="Workflow name")
    description: Optional[str] = None
    status: WorkflowStatus = Field(default=WorkflowStatus.DRAFT)
    steps: List[StepDefinition] = Field(default_factory=list)
    rules: List[RuleDefinition] = Field(default_factory=list, description="Workflow-level rules")
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_published(self) -> bool:
        return self.status == WorkflowStatus.PUBLISHED

    def ordered_steps(self) -> List[StepDefinition]:
        """Steps by order index (stable for equal indexes)"""
        return sorted(self.steps, key=lambda s: s.step_order)

    def find_step(self, step_id: Optional[str]) -> Optional[StepDefinition]:
        if step_id is None:
            return None
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def start_step(self) -> Optional[StepDefinition]:
        """
        First START-typed step, else the lowest order index, else None
        """
        ordered = self.ordered_steps()
        for step in ordered:
            if step.step_type == StepType.START:
                return step
        return ordered[0] if ordered else None

    def next_step(self, step_id: str) -> Optional[StepDefinition]:
        """Successor by order index, None if last or unknown"""
        ordered = self.ordered_steps()
        for index, step in enumerate(ordered):
            if step.step_id == step_id:
                if index + 1 < len(ordered):
                    return ordered[index + 1]
                return None
        return None

    def legacy_rules(self) -> List[RuleDefinition]:
        """Workflow-level rules not bound to any step"""
        unbound = [r for r in self.rules if r.step_id is None]
        return sorted(unbound, key=lambda r: r.rule_order)


# ============================================================================
# Workflow Instance
# ============================================================================

class FormDataEntry(BaseModel):
    """One submitted payload in the append-only form-data log"""
    model_config = ConfigDict(extra="ignore")

    sequence: int = Field(..., description="1-based position in the log")
    step_id: Optional[str] = Field(None, description="Step the payload was submitted on")
    step_name: Optional[str] = None
    submitted_by: str = Field(..., description="Username of the submitter")
    submitted_at: datetime
    payload: str = Field(..., description="Canonical JSON encoding of the form values")


class WorkflowInstance(BaseModel):
    """One running execution of a workflow template"""
    model_config = ConfigDict(extra="ignore")

    instance_id: str = Field(..., description="Unique instance ID")
    workflow_id: str
    workflow_name: str
    current_step_id: Optional[str] = None
    current_step_name: Optional[str] = None
    assignee: str = Field(..., description="Username currently responsible")
    initiated_by: str = Field(..., description="Username that started the instance")
    status: InstanceStatus = Field(default=InstanceStatus.IN_PROGRESS)
    form_data: List[FormDataEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    version: int = Field(default=1, description="Optimistic concurrency version")

    @property
    def form_data_length(self) -> int:
        """Total characters held in the log"""
        return sum(len(entry.payload) for entry in self.form_data)

    def append_form_data(
        self,
        entry: FormDataEntry,
        max_length: int,
        max_entries: int
    ) -> None:
        """
        Append a payload to the form-data log

        Prior entries are never rewritten. The append is refused when the log
        would exceed either cap.

        Raises:
            PayloadTooLargeError: If the log would exceed its size or count cap
        """
        new_length = self.form_data_length + len(entry.payload)
        if new_length > max_length:
            raise PayloadTooLargeError(
                "Accumulated form data exceeds maximum allowed size",
                details={"max_length": max_length, "resulting_length": new_length}
            )
        if len(self.form_data) + 1 > max_entries:
            raise PayloadTooLargeError(
                "Form data log exceeds maximum number of submissions",
                details={"max_entries": max_entries}
            )
        self.form_data.append(entry)

    def move_to_step(self, step: StepDefinition) -> None:
        self.current_step_id = step.step_id
        self.current_step_name = step.name

    def to_snapshot(self) -> "InstanceSnapshot":
        return InstanceSnapshot(
            id=self.instance_id,
            workflow_id=self.workflow_id,
            workflow_name=self.workflow_name,
            current_step_id=self.current_step_id,
            current_step_name=self.current_step_name,
            assignee=self.assignee,
            initiated_by=self.initiated_by,
            status=self.status,
            form_data=[entry.model_copy() for entry in self.form_data],
            created_at=format_iso(self.created_at),
            completed_at=format_iso(self.completed_at) if self.completed_at else None,
        )


class InstanceSnapshot(BaseModel):
    """Serializable view of an instance returned by the lifecycle API"""

    id: str
    workflow_id: str
    workflow_name: str
    current_step_id: Optional[str] = None
    current_step_name: Optional[str] = None
    assignee: str
    initiated_by: str
    status: InstanceStatus
    form_data: List[FormDataEntry] = Field(default_factory=list)
    created_at: str
    completed_at: Optional[str] = None


class InstancePage(BaseModel):
    """One page of instance snapshots"""

    items: List[InstanceSnapshot]
    page: int = Field(..., description="1-based page number")
    page_size: int
    total: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total
