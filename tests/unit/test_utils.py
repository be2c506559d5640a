import json
import logging
from datetime import datetime, timezone

import pytest

from stepflow.domain.errors import AuthenticationError
from stepflow.repositories.memory import InMemoryIdentityStore, InMemoryTemplateStore
from stepflow.services.seed_service import SAMPLE_WORKFLOW_ID, seed_sample_data
from stepflow.utils.idgen import generate_correlation_id, generate_instance_id
from stepflow.utils.jwt import JWTValidator
from stepflow.utils.logger import JsonFormatter, set_correlation_id
from stepflow.utils.time import format_iso, parse_iso


def test_token_round_trip(app_settings):
    validator = JWTValidator(app_settings)

    token = validator.create_access_token("alice")

    assert validator.get_username(f"Bearer {token}") == "alice"
    assert validator.validate_token(token)["sub"] == "alice"


def test_invalid_tokens_are_rejected(app_settings):
    validator = JWTValidator(app_settings)

    with pytest.raises(AuthenticationError):
        validator.validate_token("")
    with pytest.raises(AuthenticationError):
        validator.validate_token("Bearer not-a-token")

    other = app_settings.model_copy(update={"jwt_secret": "another-secret-another-secret-1234"})
    foreign = JWTValidator(other).create_access_token("alice")
    with pytest.raises(AuthenticationError):
        validator.validate_token(foreign)


def test_expired_token_is_rejected(app_settings):
    validator = JWTValidator(app_settings)
    token = validator.create_access_token("alice", expires_minutes=-1)

    with pytest.raises(AuthenticationError) as exc_info:
        validator.validate_token(token)
    assert exc_info.value.http_status == 401


def test_json_formatter_includes_context_and_extras():
    set_correlation_id("COR-test")
    record = logging.LogRecord("stepflow.test", logging.INFO, __file__, 1, "hello", None, None)
    record.instance_id = "WFI-1"
    record.unrelated = "dropped"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["correlation_id"] == "COR-test"
    assert payload["instance_id"] == "WFI-1"
    assert "unrelated" not in payload


def test_ids():
    assert generate_instance_id().startswith("WFI-")
    assert generate_correlation_id().startswith("COR-")
    assert generate_instance_id() != generate_instance_id()


def test_iso_round_trip():
    moment = datetime(2024, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    text = format_iso(moment)

    assert text.endswith("Z")
    assert parse_iso(text) == moment


def test_seed_sample_data_is_idempotent():
    templates = InMemoryTemplateStore()
    identities = InMemoryIdentityStore()

    created = seed_sample_data(templates, identities)
    assert created == ["admin", "user", "Sample Request"]
    assert seed_sample_data(templates, identities) == []

    template = templates.find_template_with_steps(SAMPLE_WORKFLOW_ID)
    assert template.is_published
    assert [s.name for s in template.ordered_steps()] == ["Submit Request", "Done"]
    assert identities.find_identity("admin").has_role("admin")
    assert not identities.find_identity("user").has_role("ADMIN")
