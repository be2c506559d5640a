"""
Pytest Configuration and Fixtures

Shared fixtures for all tests. Everything runs on the in-memory stores,
so no MongoDB is needed.
"""

import os

os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest

from stepflow.config.settings import Settings
from stepflow.domain.enums import StepType, WorkflowStatus
from stepflow.domain.models import FieldDefinition, Identity, WorkflowTemplate
from stepflow.engine.engine import WorkflowEngine
from stepflow.repositories.memory import (
    InMemoryIdentityStore, InMemoryInstanceStore, InMemoryTemplateStore
)
from tests.factories import make_rule, make_step


@pytest.fixture
def app_settings():
    """Settings independent of the environment"""
    return Settings(
        _env_file=None,
        storage_backend="memory",
        jwt_secret="test-secret-test-secret-test-secret-32",
        max_form_data_length=50_000,
        max_form_data_entries=500,
    )


@pytest.fixture
def identity_store():
    store = InMemoryIdentityStore()
    store.save_identity(Identity(username="alice", email="alice@example.com", roles=["USER"]))
    store.save_identity(Identity(username="bob", email="bob@example.com", roles=["USER"]))
    store.save_identity(Identity(username="root", email="root@example.com", roles=["admin"]))
    return store


@pytest.fixture
def template_store():
    return InMemoryTemplateStore()


@pytest.fixture
def instance_store():
    return InMemoryInstanceStore()


@pytest.fixture
def engine(template_store, instance_store, identity_store, app_settings):
    return WorkflowEngine(template_store, instance_store, identity_store, app_settings)


@pytest.fixture
def approval_template(template_store):
    """Submit (amount > 1000 requires approval) followed by an END step"""
    template = WorkflowTemplate(
        workflow_id="WF-approval",
        name="Approval Request",
        status=WorkflowStatus.PUBLISHED,
        steps=[
            make_step(
                "STEP-submit", "Submit", 0,
                fields=[FieldDefinition(label="Amount", field_key="amount")],
                rules=[make_rule("High value", "amount > 1000", "REQUIRE_APPROVAL", step_id="STEP-submit")],
            ),
            make_step("STEP-done", "Done", 1, step_type=StepType.END),
        ],
    )
    template_store.save_template(template)
    return template


@pytest.fixture
def three_step_template(template_store):
    """Three TASK steps, no END step"""
    template = WorkflowTemplate(
        workflow_id="WF-three",
        name="Three Steps",
        status=WorkflowStatus.PUBLISHED,
        steps=[
            make_step("STEP-1", "First", 0),
            make_step("STEP-2", "Second", 1),
            make_step("STEP-3", "Third", 2),
        ],
    )
    template_store.save_template(template)
    return template
