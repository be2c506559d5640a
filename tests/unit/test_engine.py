import json

import pytest

from stepflow.domain.enums import InstanceStatus, StepType, WorkflowStatus
from stepflow.domain.errors import (
    ConcurrencyError, IdentityNotFoundError, InstanceNotFoundError, InvalidFormDataError,
    InvalidStateError, PayloadTooLargeError, PermissionDeniedError, RuleBlockedError,
    WorkflowNotFoundError
)
from stepflow.domain.models import FieldDefinition, WorkflowTemplate
from stepflow.engine.engine import WorkflowEngine, encode_form_values
from tests.factories import make_rule, make_step


def save_template(template_store, workflow_id, steps, rules=None, status=WorkflowStatus.PUBLISHED):
    template = WorkflowTemplate(
        workflow_id=workflow_id,
        name=f"Workflow {workflow_id}",
        status=status,
        steps=steps,
        rules=rules or [],
    )
    template_store.save_template(template)
    return template


# =============================================================================
# Start
# =============================================================================

def test_start_picks_start_typed_step(engine, template_store):
    save_template(template_store, "WF-1", [
        make_step("A", "Intro", 0),
        make_step("B", "Begin", 5, step_type=StepType.START),
        make_step("C", "End", 9, step_type=StepType.END),
    ])

    instance = engine.start("WF-1", "alice")

    assert instance.current_step_id == "B"
    assert instance.current_step_name == "Begin"
    assert instance.status == InstanceStatus.IN_PROGRESS
    assert instance.assignee == "alice"
    assert instance.initiated_by == "alice"
    assert instance.completed_at is None
    assert instance.form_data == []


def test_start_falls_back_to_lowest_order(engine, template_store):
    save_template(template_store, "WF-1", [make_step("B", "Second", 2), make_step("A", "First", 1)])

    assert engine.start("WF-1", "alice").current_step_id == "A"


def test_start_without_steps_has_no_current_step(engine, template_store, instance_store):
    save_template(template_store, "WF-empty", [])

    instance = engine.start("WF-empty", "alice")
    assert instance.current_step_id is None

    completed = engine.submit(instance.instance_id, "alice", {"note": "done"})
    assert completed.status == InstanceStatus.COMPLETED
    assert completed.completed_at is not None
    assert len(completed.form_data) == 1


def test_start_failures(engine, template_store):
    save_template(template_store, "WF-draft", [make_step("A", "First", 0)], status=WorkflowStatus.DRAFT)
    save_template(template_store, "WF-live", [make_step("A", "First", 0)])

    with pytest.raises(WorkflowNotFoundError):
        engine.start("WF-missing", "alice")
    with pytest.raises(InvalidStateError):
        engine.start("WF-draft", "alice")
    with pytest.raises(IdentityNotFoundError):
        engine.start("WF-live", "ghost")


def test_start_persists_instance(engine, template_store, instance_store):
    save_template(template_store, "WF-1", [make_step("A", "First", 0)])

    instance = engine.start("WF-1", "alice")

    stored = instance_store.load(instance.instance_id)
    assert stored is not None
    assert stored.workflow_name == "Workflow WF-1"
    assert stored.version == 1


# =============================================================================
# Submit
# =============================================================================

def test_submit_blocked_by_require_approval(engine, approval_template, instance_store):
    instance = engine.start(approval_template.workflow_id, "alice")

    with pytest.raises(RuleBlockedError) as exc_info:
        engine.submit(instance.instance_id, "alice", {"amount": 1500})

    assert "requires approval" in exc_info.value.message
    assert exc_info.value.http_status == 400
    assert exc_info.value.details["rule_name"] == "High value"

    stored = instance_store.load(instance.instance_id)
    assert stored.status == InstanceStatus.IN_PROGRESS
    assert stored.current_step_id == "STEP-submit"
    assert stored.form_data == []
    assert stored.version == instance.version


def test_submit_below_threshold_completes_at_end_step(engine, approval_template):
    instance = engine.start(approval_template.workflow_id, "alice")

    result = engine.submit(instance.instance_id, "alice", {"amount": 500})

    assert result.status == InstanceStatus.COMPLETED
    assert result.current_step_id == "STEP-done"
    assert result.completed_at is not None
    assert json.loads(result.form_data[0].payload) == {"amount": 500}


def test_string_amounts_are_coerced_for_rules(engine, approval_template):
    instance = engine.start(approval_template.workflow_id, "alice")

    with pytest.raises(RuleBlockedError):
        engine.submit(instance.instance_id, "alice", {"amount": "1500"})


def test_label_alias_is_available_to_rules(engine, template_store):
    save_template(template_store, "WF-1", [
        make_step(
            "A", "Submit", 0,
            fields=[FieldDefinition(label="Total Cost", field_key="cost")],
            rules=[make_rule("Budget", "Total_Cost > 100", "REJECT")],
        ),
    ])
    instance = engine.start("WF-1", "alice")

    with pytest.raises(RuleBlockedError) as exc_info:
        engine.submit(instance.instance_id, "alice", {"cost": "250"})

    assert exc_info.value.message == "Submission rejected by rule: Budget"


def test_two_submissions_advance_one_step_each(engine, three_step_template):
    instance = engine.start(three_step_template.workflow_id, "alice")

    first = engine.submit(instance.instance_id, "alice", {"n": 1})
    assert first.current_step_id == "STEP-2"
    assert first.status == InstanceStatus.IN_PROGRESS

    second = engine.submit(instance.instance_id, "alice", {"n": 2})
    assert second.current_step_id == "STEP-3"
    assert second.status == InstanceStatus.IN_PROGRESS

    assert [entry.sequence for entry in second.form_data] == [1, 2]
    assert [entry.payload for entry in second.form_data] == ['{"n":1}', '{"n":2}']
    assert [entry.step_id for entry in second.form_data] == ["STEP-1", "STEP-2"]
    assert second.form_data[0].submitted_by == "alice"


def test_submitting_last_step_completes_and_keeps_step(engine, three_step_template):
    instance = engine.start(three_step_template.workflow_id, "alice")
    for n in range(3):
        result = engine.submit(instance.instance_id, "alice", {"n": n})

    assert result.status == InstanceStatus.COMPLETED
    assert result.current_step_id == "STEP-3"
    assert len(result.form_data) == 3

    with pytest.raises(InvalidStateError):
        engine.submit(instance.instance_id, "alice", {"n": 4})


def test_reject_leaves_form_data_unchanged(engine, template_store, instance_store):
    save_template(template_store, "WF-1", [
        make_step("A", "First", 0),
        make_step(
            "B", "Second", 1,
            rules=[make_rule("Too big", "amount > 10", "REJECT", description="Limit is 10")],
        ),
        make_step("C", "Done", 2, step_type=StepType.END),
    ])
    instance = engine.start("WF-1", "alice")
    engine.submit(instance.instance_id, "alice", {"amount": 50})

    with pytest.raises(RuleBlockedError) as exc_info:
        engine.submit(instance.instance_id, "alice", {"amount": 50})

    assert exc_info.value.message == "Submission rejected by rule: Too big. Limit is 10"
    stored = instance_store.load(instance.instance_id)
    assert len(stored.form_data) == 1
    assert stored.current_step_id == "B"


def test_step_rules_take_precedence_over_legacy_rules(engine, template_store):
    save_template(
        template_store, "WF-1",
        [
            make_step("A", "With rules", 0, rules=[make_rule("Step rule", "amount > 1000", "REJECT")]),
            make_step("B", "Without rules", 1),
            make_step("C", "Done", 2, step_type=StepType.END),
        ],
        rules=[make_rule("Legacy", "amount > 10", "REJECT")],
    )
    instance = engine.start("WF-1", "alice")

    # Only the step rule applies on A
    moved = engine.submit(instance.instance_id, "alice", {"amount": 50})
    assert moved.current_step_id == "B"

    # B has no rules, so the legacy workflow rule applies
    with pytest.raises(RuleBlockedError) as exc_info:
        engine.submit(instance.instance_id, "alice", {"amount": 50})
    assert "Legacy" in exc_info.value.message


def test_legacy_rules_bound_to_a_step_are_not_fallbacks(engine, template_store):
    save_template(
        template_store, "WF-1",
        [make_step("A", "First", 0), make_step("B", "Second", 1)],
        rules=[make_rule("Bound", "amount > 10", "REJECT", step_id="B")],
    )
    instance = engine.start("WF-1", "alice")

    assert engine.submit(instance.instance_id, "alice", {"amount": 50}).current_step_id == "B"


def test_broken_rule_does_not_block(engine, template_store):
    save_template(template_store, "WF-1", [
        make_step("A", "First", 0, rules=[
            make_rule("Broken", "amount >>> 1", "REJECT", order=0),
            make_rule("Unknown", "budget > 1", "REJECT", order=1),
        ]),
        make_step("B", "Second", 1),
    ])
    instance = engine.start("WF-1", "alice")

    assert engine.submit(instance.instance_id, "alice", {"amount": 5}).current_step_id == "B"


def test_submit_requires_access(engine, approval_template):
    instance = engine.start(approval_template.workflow_id, "alice")

    with pytest.raises(PermissionDeniedError):
        engine.submit(instance.instance_id, "bob", {"amount": 5})

    # Administrators may act on any instance
    result = engine.submit(instance.instance_id, "root", {"amount": 5})
    assert result.form_data[0].submitted_by == "root"


def test_submit_unknown_instance(engine):
    with pytest.raises(InstanceNotFoundError):
        engine.submit("WFI-missing", "alice", {})


def test_payload_cap(template_store, instance_store, identity_store, app_settings, three_step_template):
    app_settings.max_form_data_length = 30
    engine = WorkflowEngine(template_store, instance_store, identity_store, app_settings)
    instance = engine.start(three_step_template.workflow_id, "alice")

    engine.submit(instance.instance_id, "alice", {"text": "x" * 10})
    with pytest.raises(PayloadTooLargeError):
        engine.submit(instance.instance_id, "alice", {"text": "x" * 10})

    stored = instance_store.load(instance.instance_id)
    assert len(stored.form_data) == 1
    assert stored.current_step_id == "STEP-2"


def test_entry_count_cap(template_store, instance_store, identity_store, app_settings):
    app_settings.max_form_data_entries = 2
    engine = WorkflowEngine(template_store, instance_store, identity_store, app_settings)
    save_template(template_store, "WF-long", [make_step(f"S{i}", f"Step {i}", i) for i in range(5)])
    instance = engine.start("WF-long", "alice")

    engine.submit(instance.instance_id, "alice", {})
    engine.submit(instance.instance_id, "alice", {})
    with pytest.raises(PayloadTooLargeError):
        engine.submit(instance.instance_id, "alice", {})


def test_unencodable_form_data(engine, three_step_template):
    instance = engine.start(three_step_template.workflow_id, "alice")

    with pytest.raises(InvalidFormDataError):
        engine.submit(instance.instance_id, "alice", {"value": object()})
    with pytest.raises(InvalidFormDataError):
        engine.submit(instance.instance_id, "alice", {"value": float("nan")})


def test_concurrent_writer_loses(engine, three_step_template, instance_store):
    instance = engine.start(three_step_template.workflow_id, "alice")
    stale = instance_store.load(instance.instance_id)

    engine.submit(instance.instance_id, "alice", {"n": 1})

    stale.current_step_id = "STEP-3"
    with pytest.raises(ConcurrencyError):
        instance_store.save(stale)

    stored = instance_store.load(instance.instance_id)
    assert stored.current_step_id == "STEP-2"
    assert len(stored.form_data) == 1


# =============================================================================
# Cancel / Get / List
# =============================================================================

def test_cancel_then_submit_is_invalid(engine, approval_template):
    instance = engine.start(approval_template.workflow_id, "alice")

    cancelled = engine.cancel(instance.instance_id, "alice")
    assert cancelled.status == InstanceStatus.CANCELLED
    assert cancelled.completed_at is None

    with pytest.raises(InvalidStateError):
        engine.submit(instance.instance_id, "alice", {"amount": 5})
    with pytest.raises(InvalidStateError):
        engine.cancel(instance.instance_id, "alice")


def test_cancel_completed_instance_is_invalid(engine, approval_template):
    instance = engine.start(approval_template.workflow_id, "alice")
    engine.submit(instance.instance_id, "alice", {"amount": 5})

    with pytest.raises(InvalidStateError):
        engine.cancel(instance.instance_id, "alice")


def test_cancel_requires_access(engine, approval_template):
    instance = engine.start(approval_template.workflow_id, "alice")

    with pytest.raises(PermissionDeniedError):
        engine.cancel(instance.instance_id, "bob")


def test_get(engine, approval_template):
    instance = engine.start(approval_template.workflow_id, "alice")

    assert engine.get(instance.instance_id, "alice").instance_id == instance.instance_id
    assert engine.get(instance.instance_id, "root").instance_id == instance.instance_id
    with pytest.raises(PermissionDeniedError):
        engine.get(instance.instance_id, "bob")
    with pytest.raises(InstanceNotFoundError):
        engine.get("WFI-missing", "alice")


def test_list_for_assignee_only_returns_own_instances(engine, approval_template):
    mine = {engine.start(approval_template.workflow_id, "alice").instance_id for _ in range(3)}
    engine.start(approval_template.workflow_id, "bob")

    items, total = engine.list_for_assignee("alice")

    assert total == 3
    assert {i.instance_id for i in items} == mine
    assert all(i.assignee == "alice" for i in items)


def test_list_for_assignee_pages_are_stable(engine, approval_template):
    for _ in range(5):
        engine.start(approval_template.workflow_id, "alice")

    first, total = engine.list_for_assignee("alice", page=1, page_size=2)
    second, _ = engine.list_for_assignee("alice", page=2, page_size=2)
    third, _ = engine.list_for_assignee("alice", page=3, page_size=2)
    everything, _ = engine.list_for_assignee("alice", page=1, page_size=10)

    assert total == 5
    assert [i.instance_id for i in first + second + third] == [i.instance_id for i in everything]
    keys = [(i.created_at, i.instance_id) for i in everything]
    assert keys == sorted(keys, reverse=True)


def test_list_for_unknown_identity(engine):
    with pytest.raises(IdentityNotFoundError):
        engine.list_for_assignee("ghost")


def test_page_size_is_clamped(engine, app_settings):
    assert engine.effective_page_size(None) == app_settings.default_page_size
    assert engine.effective_page_size(0) == app_settings.default_page_size
    assert engine.effective_page_size(10_000) == app_settings.max_page_size


def test_encode_form_values_is_canonical():
    assert encode_form_values({"b": 1, "a": "x"}) == '{"a":"x","b":1}'
    assert encode_form_values({}) == "{}"
    assert encode_form_values(None) == "{}"
    assert encode_form_values({"name": "Zoë"}) == '{"name":"Zoë"}'
    with pytest.raises(InvalidFormDataError):
        encode_form_values(["not", "an", "object"])
