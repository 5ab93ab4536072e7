"""
coredna/tests/test_state_roundtrip.py

Export / import of per-user state.
"""

import json

import pytest

from coredna.core.errors import QuotaExceededError, ValidationError
from coredna.features.credits.balance import CreditBalance
from coredna.features.providers.registry import ProviderRegistry
from coredna.features.quota.gate import QuotaGate
from coredna.features.state.service import clear_state, export_state, import_state
from coredna.features.usage.ledger import UsageLedger
from coredna.models.tier import Category


def seed(store, user_id, fixed_now):
    registry = ProviderRegistry(user_id, store)
    registry.set_credentials("video", "ltx2", "fal-key")
    registry.set_credentials("video", "runway", "rw-key", make_active=True)
    registry.set_credentials("llm", "openai", "sk-key")
    ledger = UsageLedger(store)
    for _ in range(5):
        ledger.record(user_id, Category.VIDEO, "ltx2", occurred_at=fixed_now)
    ledger.record(user_id, "extraction", occurred_at=fixed_now)
    CreditBalance(store).credit(user_id, 37)


def test_round_trip_reproduces_decisions(store, fixed_now):
    seed(store, "alice", fixed_now)
    document = json.loads(json.dumps(export_state("alice", store)))

    import_state("bob", document, store)

    gate = QuotaGate(UsageLedger(store))
    for user_id in ("alice", "bob"):
        with pytest.raises(QuotaExceededError):
            gate.admit(user_id, "free", Category.VIDEO, "ltx2", now=fixed_now)
        assert gate.admit(user_id, "pro", Category.VIDEO, "ltx2", now=fixed_now).used == 5
        assert ProviderRegistry(user_id, store).resolve("video").provider_id == "runway"
        assert CreditBalance(store).balance(user_id) == 37

    bob_events = UsageLedger(store).events("bob")
    assert {e.user_id for e in bob_events} == {"bob"}


def test_import_replaces_existing_records(store, fixed_now):
    seed(store, "alice", fixed_now)
    document = export_state("alice", store)

    ProviderRegistry("bob", store).set_credentials("image", "openai", "sk-bob")
    import_state("bob", document, store)

    assert ProviderRegistry("bob", store).has_providers("image") is False


def test_import_validates_before_writing(store, fixed_now):
    seed(store, "alice", fixed_now)
    document = export_state("alice", store)
    document["records"]["credits"] = -4

    with pytest.raises(ValidationError):
        import_state("alice", document, store)
    assert CreditBalance(store).balance("alice") == 37


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"version": 99, "records": {}},
        {"version": 1},
        {"version": 1, "records": {"secrets": "x"}},
        {"version": 1, "records": {"usage": [{"user_id": "x"}]}},
        {"version": 1, "records": {"providers:llm": ["openai"]}},
        {"version": 1, "records": {"providers:llm": {"openai": "sk-1"}}},
        {"version": 1, "records": {"providers:llm": {"openai": {"api_key": 123}}}},
        {"version": 1, "records": {"providers:llm": {"openai": {"api_key": "  "}}}},
        {"version": 1, "records": {"providers:llm": {"openai": {"api_key": "sk-1", "base_url": 8080}}}},
        {"version": 1, "records": {"providers:llm": {"openai": {"api_key": "sk-1", "password": "x"}}}},
        {"version": 1, "records": {"active:llm": {"x": 1}}},
        {"version": 1, "records": {"active:video": ["runway"]}},
    ],
)
def test_import_rejects_bad_documents(store, document):
    with pytest.raises(ValidationError):
        import_state("alice", document, store)


def test_clear_state(store, fixed_now):
    seed(store, "alice", fixed_now)
    removed = clear_state("alice", store)
    assert removed == 6
    assert export_state("alice", store)["records"] == {}


def test_rejected_provider_records_leave_state_untouched(store):
    ProviderRegistry("alice", store).set_credentials("llm", "openai", "sk-alice")
    document = {"version": 1, "records": {"providers:llm": {"openai": {"api_key": 123}}, "active:llm": "openai"}}

    with pytest.raises(ValidationError) as exc_info:
        import_state("alice", document, store)

    assert exc_info.value.details["provider_id"] == "openai"
    assert ProviderRegistry("alice", store).resolve("llm").api_key == "sk-alice"


def test_import_accepts_optional_credential_fields_and_null_active(store):
    document = {
        "version": 1,
        "records": {
            "providers:llm": {"ollama": {"api_key": "local", "base_url": "http://gpu:11434/v1", "default_model": "qwen2.5"}},
            "active:llm": None,
        },
    }

    import_state("alice", document, store)

    selection = ProviderRegistry("alice", store).resolve("llm")
    assert selection.provider_id == "ollama"
    assert selection.credentials["default_model"] == "qwen2.5"
