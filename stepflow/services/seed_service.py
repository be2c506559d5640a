"""Seed Service - Sample identities and the "Sample Request" workflow"""
from typing import List

from ..domain.enums import FieldType, RuleAction, StepType, WorkflowStatus
from ..domain.models import (
    FieldDefinition, Identity, RuleDefinition, StepDefinition, WorkflowTemplate
)
from ..repositories.base import IdentityStore, TemplateStore
from ..utils.idgen import generate_rule_id, generate_step_id
from ..utils.logger import get_logger

logger = get_logger(__name__)

SAMPLE_WORKFLOW_ID = "WF-sample-request"
SAMPLE_WORKFLOW_NAME = "Sample Request"

SAMPLE_IDENTITIES = [
    Identity(
        username="admin",
        email="admin@workflow.com",
        full_name="System Administrator",
        roles=["ADMIN", "USER"],
    ),
    Identity(
        username="user",
        email="user@workflow.com",
        full_name="Demo User",
        roles=["USER"],
    ),
]


def build_sample_workflow() -> WorkflowTemplate:
    """Two-step sample: a request form with amount rules, then Done"""
    submit_step_id = generate_step_id()
    submit_step = StepDefinition(
        step_id=submit_step_id,
        name="Submit Request",
        description="Fill in the request details below.",
        step_type=StepType.TASK,
        step_order=0,
        fields=[
            FieldDefinition(
                label="Title", field_key="title", field_type=FieldType.TEXT,
                required=True, placeholder="e.g. Office supplies", field_order=0,
            ),
            FieldDefinition(
                label="Amount", field_key="amount", field_type=FieldType.NUMBER,
                required=True, placeholder="0", field_order=1,
            ),
            FieldDefinition(
                label="Description", field_key="description", field_type=FieldType.TEXTAREA,
                placeholder="Optional details", field_order=2,
            ),
        ],
        rules=[
            RuleDefinition(
                rule_id=generate_rule_id(),
                name="High value",
                description="When amount is over 1000, require approval.",
                condition_expression="amount > 1000",
                action_type=RuleAction.REQUIRE_APPROVAL.value,
                rule_order=0,
                step_id=submit_step_id,
            ),
            RuleDefinition(
                rule_id=generate_rule_id(),
                name="Low value",
                description="When amount is 1000 or less, auto-approve.",
                condition_expression="amount <= 1000",
                action_type=RuleAction.AUTO_APPROVE.value,
                rule_order=1,
                step_id=submit_step_id,
            ),
        ],
    )
    done_step = StepDefinition(
        step_id=generate_step_id(),
        name="Done",
        step_type=StepType.END,
        step_order=1,
    )
    return WorkflowTemplate(
        workflow_id=SAMPLE_WORKFLOW_ID,
        name=SAMPLE_WORKFLOW_NAME,
        description=(
            "Submit a simple request with title, amount and description. "
            "Use this to test the workflow form and business rules."
        ),
        status=WorkflowStatus.PUBLISHED,
        steps=[submit_step, done_step],
        created_by="admin",
    )


def seed_sample_data(template_store: TemplateStore, identity_store: IdentityStore) -> List[str]:
    """
    Create the sample identities and workflow if missing

    Returns:
        Names of the records that were created
    """
    created: List[str] = []

    for identity in SAMPLE_IDENTITIES:
        if identity_store.find_identity(identity.username) is None:
            identity_store.save_identity(identity.model_copy(deep=True))
            created.append(identity.username)
            logger.info(f"Seeded identity: {identity.username}", extra={"actor": identity.username})

    if template_store.find_template_with_steps(SAMPLE_WORKFLOW_ID) is None:
        template_store.save_template(build_sample_workflow())
        created.append(SAMPLE_WORKFLOW_NAME)
        logger.info(
            f"Seeded sample workflow: \"{SAMPLE_WORKFLOW_NAME}\"",
            extra={"workflow_id": SAMPLE_WORKFLOW_ID}
        )

    return created
