"""
Workflow Engine - Instance Lifecycle Manager

Advances running workflow instances through their template's linear step
sequence.

=============================================================================
STATE MACHINE
=============================================================================

    IN_PROGRESS --submit (last step / END reached)--> COMPLETED
    IN_PROGRESS --cancel--> CANCELLED

COMPLETED and CANCELLED are terminal: no further submission or cancel.

=============================================================================
SUBMIT PIPELINE
=============================================================================

1. Load the instance and authorize the actor (AccessGuard)
2. Require IN_PROGRESS
3. Pick the rule set: current step rules, else legacy workflow-level rules
4. Build the rule context (ContextBuilder) and check blocking rules
   (RuleEvaluator); a match rejects the submission with nothing changed
5. Append the canonical payload to the form-data log
6. Advance to the successor step, or complete when there is none or it is END
7. Save with the optimistic version check

=============================================================================
"""
import json
from typing import Any, List, Mapping, Optional, Tuple

from ..config.settings import Settings, settings as default_settings
from ..domain.enums import InstanceStatus, StepType
from ..domain.errors import (
    IdentityNotFoundError, InstanceNotFoundError, InvalidFormDataError,
    InvalidStateError, RuleBlockedError, WorkflowNotFoundError
)
from ..domain.models import (
    FormDataEntry, RuleDefinition, StepDefinition, WorkflowInstance, WorkflowTemplate
)
from ..repositories.base import IdentityStore, InstanceStore, TemplateStore
from ..utils.idgen import generate_instance_id
from ..utils.logger import get_logger
from ..utils.time import utc_now
from .access_guard import AccessGuard
from .context_builder import ContextBuilder
from .rule_evaluator import RuleEvaluator

logger = get_logger(__name__)


def encode_form_values(form_values: Optional[Mapping[str, Any]]) -> str:
    """
    Canonical JSON text for a submitted payload (sorted keys, compact)

    Raises:
        InvalidFormDataError: If the payload is not a JSON object of
            JSON-representable values
    """
    if form_values is None:
        form_values = {}
    if not isinstance(form_values, Mapping):
        raise InvalidFormDataError("Form data must be an object")
    try:
        return json.dumps(
            dict(form_values),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise InvalidFormDataError(f"Form data cannot be encoded: {e}")


class WorkflowEngine:
    """
    The Workflow Engine - owns the instance state machine

    Responsibilities:
    - Start instances from published templates
    - Authorize every read and mutation through the AccessGuard
    - Check blocking business rules before accepting a submission
    - Keep the form-data log append-only and bounded
    - Advance, complete and cancel instances

    Every operation works on a detached copy loaded from the instance store
    and writes it back in a single save; a failure anywhere leaves the stored
    instance untouched.
    """

    def __init__(
        self,
        template_store: TemplateStore,
        instance_store: InstanceStore,
        identity_store: IdentityStore,
        app_settings: Optional[Settings] = None
    ):
        self._settings = app_settings or default_settings
        self.template_store = template_store
        self.instance_store = instance_store
        self.identity_store = identity_store
        self.access_guard = AccessGuard(identity_store, self._settings.admin_role_name)
        self.context_builder = ContextBuilder()
        self.rule_evaluator = RuleEvaluator(self._settings.rule_expression_max_length)

    # =========================================================================
    # Start
    # =========================================================================

    def start(self, workflow_id: str, initiator: str) -> WorkflowInstance:
        """
        Start a new instance of a published workflow

        Args:
            workflow_id: Template to run
            initiator: Username starting the workflow; becomes the assignee

        Raises:
            WorkflowNotFoundError: If the template does not exist
            InvalidStateError: If the template is not published
            IdentityNotFoundError: If the initiator is unknown
        """
        template = self._get_template_or_raise(workflow_id)
        if not template.is_published:
            raise InvalidStateError(
                "Workflow must be published before it can be started",
                details={"workflow_id": workflow_id, "status": template.status.value}
            )
        if self.identity_store.find_identity(initiator) is None:
            raise IdentityNotFoundError(f"User {initiator} not found")

        start_step = template.start_step()
        now = utc_now()
        instance = WorkflowInstance(
            instance_id=generate_instance_id(),
            workflow_id=template.workflow_id,
            workflow_name=template.name,
            assignee=initiator,
            initiated_by=initiator,
            status=InstanceStatus.IN_PROGRESS,
            created_at=now,
            updated_at=now,
        )
        if start_step is not None:
            instance.move_to_step(start_step)

        created = self.instance_store.create(instance)
        logger.info(
            f"Started instance {created.instance_id} of workflow {workflow_id}",
            extra={
                "instance_id": created.instance_id,
                "workflow_id": workflow_id,
                "step_id": created.current_step_id,
                "actor": initiator,
                "action": "start",
            }
        )
        return created

    # =========================================================================
    # Submit
    # =========================================================================

    def submit(
        self,
        instance_id: str,
        actor: str,
        form_values: Optional[Mapping[str, Any]]
    ) -> WorkflowInstance:
        """
        Submit form values for the current step

        Raises:
            InstanceNotFoundError: If the instance does not exist
            PermissionDeniedError: If the actor may not act on the instance
            InvalidStateError: If the instance is not IN_PROGRESS
            RuleBlockedError: If a blocking rule matched; nothing is changed
            InvalidFormDataError: If the payload cannot be encoded
            PayloadTooLargeError: If the form-data log would exceed its caps
            ConcurrencyError: If the instance was saved by someone else meanwhile
        """
        instance = self._load_or_raise(instance_id)
        self.access_guard.ensure_can_access(instance, actor)
        self._ensure_in_progress(instance, "submit to")

        form_values = form_values or {}
        template = self._get_template_or_raise(instance.workflow_id)
        current_step = template.find_step(instance.current_step_id)
        if instance.current_step_id is not None and current_step is None:
            logger.warning(
                f"Current step {instance.current_step_id} no longer exists in workflow {template.workflow_id}",
                extra={"instance_id": instance_id, "step_id": instance.current_step_id}
            )

        self._check_blocking_rules(instance, template, current_step, form_values)

        payload = encode_form_values(form_values)
        now = utc_now()
        instance.append_form_data(
            FormDataEntry(
                sequence=len(instance.form_data) + 1,
                step_id=instance.current_step_id,
                step_name=instance.current_step_name,
                submitted_by=actor,
                submitted_at=now,
                payload=payload,
            ),
            max_length=self._settings.max_form_data_length,
            max_entries=self._settings.max_form_data_entries,
        )

        successor = template.next_step(current_step.step_id) if current_step else None
        self._transition_to_next(instance, successor)
        instance.updated_at = now

        saved = self.instance_store.save(instance)
        logger.info(
            f"Submitted step {saved.form_data[-1].step_id} on instance {instance_id}",
            extra={
                "instance_id": instance_id,
                "step_id": saved.current_step_id,
                "actor": actor,
                "action": "submit",
                "status": saved.status.value,
            }
        )
        return saved

    def _rules_for_step(
        self,
        template: WorkflowTemplate,
        step: Optional[StepDefinition]
    ) -> List[RuleDefinition]:
        """Step rules take precedence; legacy workflow rules apply only when the step has none"""
        if step is not None and step.rules:
            return step.ordered_rules()
        return template.legacy_rules()

    def _check_blocking_rules(
        self,
        instance: WorkflowInstance,
        template: WorkflowTemplate,
        step: Optional[StepDefinition],
        form_values: Mapping[str, Any]
    ) -> None:
        rules = self._rules_for_step(template, step)
        if not rules:
            return

        context = self.context_builder.build_context(form_values, step)
        match = self.rule_evaluator.first_blocking_match(rules, context)
        if match is None:
            return

        logger.info(
            f"Submission on instance {instance.instance_id} blocked by rule '{match.rule.name}'",
            extra={
                "instance_id": instance.instance_id,
                "step_id": instance.current_step_id,
                "rule_name": match.rule.name,
                "action": match.rule.action_type,
            }
        )
        raise RuleBlockedError(
            match.message,
            details={"rule_name": match.rule.name, "action_type": match.rule.action_type}
        )

    def _transition_to_next(
        self,
        instance: WorkflowInstance,
        successor: Optional[StepDefinition]
    ) -> None:
        """Advance to the successor, or complete when there is none or it is END"""
        if successor is not None and successor.step_type != StepType.END:
            instance.move_to_step(successor)
            return

        if successor is not None:
            instance.move_to_step(successor)
        instance.status = InstanceStatus.COMPLETED
        instance.completed_at = utc_now()
        logger.info(
            f"Instance {instance.instance_id} completed",
            extra={"instance_id": instance.instance_id, "status": InstanceStatus.COMPLETED.value}
        )

    # =========================================================================
    # Cancel / Read
    # =========================================================================

    def cancel(self, instance_id: str, actor: str) -> WorkflowInstance:
        """
        Cancel a running instance

        Raises:
            InstanceNotFoundError: If the instance does not exist
            PermissionDeniedError: If the actor may not act on the instance
            InvalidStateError: If the instance is already COMPLETED or CANCELLED
        """
        instance = self._load_or_raise(instance_id)
        self.access_guard.ensure_can_access(instance, actor)
        self._ensure_in_progress(instance, "cancel")

        instance.status = InstanceStatus.CANCELLED
        instance.updated_at = utc_now()
        saved = self.instance_store.save(instance)
        logger.info(
            f"Instance {instance_id} cancelled by {actor}",
            extra={"instance_id": instance_id, "actor": actor, "action": "cancel", "status": saved.status.value}
        )
        return saved

    def get(self, instance_id: str, actor: str) -> WorkflowInstance:
        """Read an instance the actor may access"""
        instance = self._load_or_raise(instance_id)
        self.access_guard.ensure_can_access(instance, actor)
        return instance

    def list_for_assignee(
        self,
        assignee: str,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Tuple[List[WorkflowInstance], int]:
        """
        Instances currently assigned to a user, newest first

        Args:
            assignee: Username to list for
            page: 1-based page number
            page_size: Items per page, clamped to max_page_size

        Returns:
            Tuple of (instances on the page, total matching instances)
        """
        if self.identity_store.find_identity(assignee) is None:
            raise IdentityNotFoundError(f"User {assignee} not found")

        page = max(page, 1)
        size = self.effective_page_size(page_size)
        return self.instance_store.list_by_assignee(assignee, (page - 1) * size, size)

    def effective_page_size(self, page_size: Optional[int]) -> int:
        """Requested page size, defaulted and clamped to [1, max_page_size]"""
        size = page_size or self._settings.default_page_size
        return min(max(size, 1), self._settings.max_page_size)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_or_raise(self, instance_id: str) -> WorkflowInstance:
        instance = self.instance_store.load(instance_id)
        if instance is None:
            raise InstanceNotFoundError(f"Workflow instance {instance_id} not found")
        return instance

    def _get_template_or_raise(self, workflow_id: str) -> WorkflowTemplate:
        template = self.template_store.find_template_with_steps(workflow_id)
        if template is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return template

    @staticmethod
    def _ensure_in_progress(instance: WorkflowInstance, operation: str) -> None:
        if instance.status.is_terminal:
            raise InvalidStateError(
                f"Cannot {operation} a {instance.status.value.lower()} workflow instance",
                details={"instance_id": instance.instance_id, "status": instance.status.value}
            )
