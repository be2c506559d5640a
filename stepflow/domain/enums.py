"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class WorkflowStatus(str, Enum):
    """Workflow template status"""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class StepType(str, Enum):
    """Types of workflow steps"""
    START = "START"
    TASK = "TASK"
    APPROVAL = "APPROVAL"
    NOTIFICATION = "NOTIFICATION"
    CONDITION = "CONDITION"
    END = "END"  # Reaching an END step completes the instance


class FieldType(str, Enum):
    """Form field types"""
    TEXT = "TEXT"
    TEXTAREA = "TEXTAREA"
    NUMBER = "NUMBER"
    EMAIL = "EMAIL"
    DATE = "DATE"
    SELECT = "SELECT"
    RADIO = "RADIO"
    CHECKBOX = "CHECKBOX"
    FILE = "FILE"


class RuleAction(str, Enum):
    """Known business rule actions"""
    REQUIRE_APPROVAL = "REQUIRE_APPROVAL"
    REJECT = "REJECT"
    AUTO_APPROVE = "AUTO_APPROVE"
    NOTIFY = "NOTIFY"
    NOTIFY_ADMIN = "NOTIFY_ADMIN"
    ESCALATE = "ESCALATE"


# Only these actions can halt a submission
BLOCKING_ACTIONS = frozenset({RuleAction.REQUIRE_APPROVAL.value, RuleAction.REJECT.value})


class InstanceStatus(str, Enum):
    """Workflow instance status"""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """COMPLETED and CANCELLED are absorbing"""
        return self is not InstanceStatus.IN_PROGRESS
