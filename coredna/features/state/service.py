"""
coredna/features/state/service.py

Per-user state export / import.

The exported document is opaque to callers: a versioned snapshot of every
record in the user's namespace (provider credentials, active selections,
usage events, credit balance). Importing it into an empty namespace
reproduces the same admission and resolution decisions.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from coredna.core.errors import ValidationError
from coredna.core.store import KeyValueStore, get_store
from coredna.features.credits.balance import CREDITS_KEY
from coredna.features.providers.registry import CREDENTIAL_FIELDS, user_namespace
from coredna.features.usage.ledger import USAGE_KEY
from coredna.models.tier import Category
from coredna.models.usage_event import UsageEvent

logger = logging.getLogger(__name__)

STATE_VERSION = 1

_ALLOWED_PREFIXES = tuple(f"providers:{c.value}" for c in Category) + tuple(f"active:{c.value}" for c in Category)


def _known_key(key: str) -> bool:
    return key in (USAGE_KEY, CREDITS_KEY) or key in _ALLOWED_PREFIXES


def export_state(user_id: str, store: Optional[KeyValueStore] = None) -> Dict[str, Any]:
    """Snapshot every record for a user. Contains API keys: treat as a secret."""
    store = store or get_store()
    namespace = user_namespace(user_id)
    records = {key: store.get(namespace, key) for key in store.keys(namespace)}
    logger.info("[state] export", extra={"user_id": user_id, "records": len(records)})
    return {
        "version": STATE_VERSION,
        "user_id": user_id,
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "records": records,
    }


def _check_providers(key: str, value: Any) -> None:
    """`{provider_id: {api_key, base_url?, default_model?}}` with string values and a non-empty key."""
    if not isinstance(value, dict):
        raise ValidationError(f"'{key}' must map provider ids to credentials", details={"key": key})
    for provider_id, creds in value.items():
        details = {"key": key, "provider_id": provider_id}
        if not isinstance(creds, dict):
            raise ValidationError("Provider credentials must be an object", details=details)
        api_key = creds.get("api_key")
        if not isinstance(api_key, str) or not api_key.strip():
            raise ValidationError("Provider credentials need a non-empty api_key", details=details)
        for field, field_value in creds.items():
            if field not in CREDENTIAL_FIELDS or not isinstance(field_value, str):
                raise ValidationError("Invalid provider credential field", details={**details, "field": field})


def _validate(document: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(document, dict):
        raise ValidationError("State document must be a JSON object")
    if document.get("version") != STATE_VERSION:
        raise ValidationError(
            "Unsupported state document version",
            details={"version": document.get("version"), "supported": STATE_VERSION},
        )
    records = document.get("records")
    if not isinstance(records, dict):
        raise ValidationError("State document is missing 'records'")

    unknown = sorted(key for key in records if not _known_key(key))
    if unknown:
        raise ValidationError("State document contains unknown records", details={"keys": unknown})

    for key, value in records.items():
        if key.startswith("providers:"):
            _check_providers(key, value)
        elif key.startswith("active:") and value is not None and not isinstance(value, str):
            raise ValidationError(f"'{key}' must be a provider id or null", details={"key": key})

    usage = records.get(USAGE_KEY)
    if usage is not None:
        if not isinstance(usage, list):
            raise ValidationError("'usage' must be a list of events")
        for record in usage:
            try:
                UsageEvent.from_record(record)
            except Exception as exc:
                raise ValidationError("Invalid usage event in state document", details={"error": str(exc)}) from exc

    credits = records.get(CREDITS_KEY)
    if credits is not None and (isinstance(credits, bool) or not isinstance(credits, int) or credits < 0):
        raise ValidationError("'credits' must be a non-negative integer")
    return records


def clear_state(user_id: str, store: Optional[KeyValueStore] = None) -> int:
    """Delete every record for a user. Returns the number of records removed."""
    store = store or get_store()
    namespace = user_namespace(user_id)
    keys = store.keys(namespace)
    for key in keys:
        store.delete(namespace, key)
    logger.info("[state] cleared", extra={"user_id": user_id, "records": len(keys)})
    return len(keys)


def import_state(user_id: str, document: Dict[str, Any], store: Optional[KeyValueStore] = None) -> int:
    """
    Replace a user's records with the contents of an exported document.

    The document is validated completely before anything is written.
    Usage events are re-keyed to the importing user.
    """
    store = store or get_store()
    records = _validate(document)

    clear_state(user_id, store)
    namespace = user_namespace(user_id)
    for key, value in records.items():
        if key == USAGE_KEY:
            value = [{**record, "user_id": user_id} for record in value]
        store.set(namespace, key, value)

    logger.info("[state] import", extra={"user_id": user_id, "records": len(records)})
    return len(records)
