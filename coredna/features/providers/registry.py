"""
coredna/features/providers/registry.py

Per-user provider registry.

Handles:
- Credential storage per (category, provider)
- Active provider selection per category
- Resolution: active configured provider, else first configured, else error

Resolution never looks at the tier; the quota gate owns tier checks.
"""

import logging
from typing import Dict, List, Optional, Union

from coredna.core.errors import NoProviderConfiguredError, ValidationError
from coredna.core.store import KeyValueStore, get_store
from coredna.features.providers.catalog import catalog_for, min_tier_for
from coredna.models.provider import ProviderConfig, ProviderSelection
from coredna.models.tier import Category, coerce_category

logger = logging.getLogger(__name__)

# Fields a stored credential record may carry.
CREDENTIAL_FIELDS = ("api_key", "base_url", "default_model")


def user_namespace(user_id: str) -> str:
    return f"user:{user_id}"


def providers_key(category: Category) -> str:
    return f"providers:{category.value}"


def active_key(category: Category) -> str:
    return f"active:{category.value}"


def _has_key(credentials: Optional[Dict[str, str]]) -> bool:
    if not credentials:
        return False
    return bool(str(credentials.get("api_key") or "").strip())


class ProviderRegistry:
    """View over one user's provider records in the store."""

    def __init__(self, user_id: str, store: Optional[KeyValueStore] = None):
        if not user_id:
            raise ValidationError("user_id is required")
        self.user_id = user_id
        self.store = store or get_store()
        self.namespace = user_namespace(user_id)

    def _stored(self, category: Category) -> Dict[str, Dict[str, str]]:
        return self.store.get(self.namespace, providers_key(category), {}) or {}

    def configured_providers(self, category: Union[Category, str]) -> List[str]:
        """Provider ids with a non-empty credential, in insertion order."""
        cat = coerce_category(category)
        return [pid for pid, creds in self._stored(cat).items() if _has_key(creds)]

    def has_providers(self, category: Union[Category, str]) -> bool:
        return bool(self.configured_providers(category))

    def active_provider(self, category: Union[Category, str]) -> Optional[str]:
        return self.store.get(self.namespace, active_key(coerce_category(category)))

    def credentials_for(self, category: Union[Category, str], provider_id: str) -> Optional[Dict[str, str]]:
        creds = self._stored(coerce_category(category)).get(provider_id)
        return dict(creds) if _has_key(creds) else None

    def resolve(self, category: Union[Category, str]) -> ProviderSelection:
        """
        Pick the provider that services a request in this category.

        Raises:
            NoProviderConfiguredError: no provider in the category has a credential
        """
        cat = coerce_category(category)
        stored = self._stored(cat)

        active = self.store.get(self.namespace, active_key(cat))
        if active and _has_key(stored.get(active)):
            return ProviderSelection(provider_id=active, category=cat, credentials=stored[active])

        for pid, creds in stored.items():
            if _has_key(creds):
                return ProviderSelection(provider_id=pid, category=cat, credentials=creds)

        raise NoProviderConfiguredError(cat.value)

    def set_credentials(
        self,
        category: Union[Category, str],
        provider_id: str,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        make_active: bool = False,
    ) -> ProviderConfig:
        cat = coerce_category(category)
        provider_id = (provider_id or "").strip()
        if not provider_id:
            raise ValidationError("provider_id is required")
        if not (api_key or "").strip():
            raise ValidationError("api_key must not be empty", details={"provider_id": provider_id})

        creds = {"api_key": api_key.strip()}
        if base_url:
            creds["base_url"] = base_url
        if default_model:
            creds["default_model"] = default_model

        stored = self._stored(cat)
        stored[provider_id] = creds
        self.store.set(self.namespace, providers_key(cat), stored)

        if make_active or not self.active_provider(cat):
            self.store.set(self.namespace, active_key(cat), provider_id)

        logger.info(
            "[providers] credentials stored",
            extra={"user_id": self.user_id, "category": cat.value, "engine": provider_id},
        )
        return self._config_row(cat, provider_id, stored)

    def remove_credentials(self, category: Union[Category, str], provider_id: str) -> Optional[str]:
        """
        Drop a provider's credential.

        If it was the active provider, the selection moves to the first
        remaining configured provider (or is cleared). Returns the new active id.
        """
        cat = coerce_category(category)
        stored = self._stored(cat)
        stored.pop(provider_id, None)
        self.store.set(self.namespace, providers_key(cat), stored)

        active = self.active_provider(cat)
        if active == provider_id or (active and not _has_key(stored.get(active))):
            remaining = [pid for pid, creds in stored.items() if _has_key(creds)]
            if remaining:
                active = remaining[0]
                self.store.set(self.namespace, active_key(cat), active)
            else:
                active = None
                self.store.delete(self.namespace, active_key(cat))

        logger.info(
            "[providers] credentials removed",
            extra={"user_id": self.user_id, "category": cat.value, "engine": provider_id},
        )
        return active

    def set_active(self, category: Union[Category, str], provider_id: str) -> None:
        cat = coerce_category(category)
        if not _has_key(self._stored(cat).get(provider_id)):
            raise ValidationError(
                f"Provider '{provider_id}' has no API key configured",
                details={"category": cat.value, "provider_id": provider_id},
                hint="Add an API key for this provider before selecting it.",
            )
        self.store.set(self.namespace, active_key(cat), provider_id)

    def _config_row(self, cat: Category, provider_id: str, stored: Dict[str, Dict[str, str]], name: Optional[str] = None) -> ProviderConfig:
        return ProviderConfig(
            id=provider_id,
            category=cat,
            name=name or provider_id,
            configured=_has_key(stored.get(provider_id)),
            active=self.active_provider(cat) == provider_id,
            min_tier=min_tier_for(cat, provider_id),
        )

    def list_providers(self, category: Union[Category, str]) -> List[ProviderConfig]:
        """Catalog providers merged with stored credentials (custom ids appended)."""
        cat = coerce_category(category)
        stored = self._stored(cat)
        active = self.active_provider(cat)

        rows = []
        seen = set()
        for entry in catalog_for(cat):
            seen.add(entry.id)
            rows.append(
                ProviderConfig(
                    id=entry.id,
                    category=cat,
                    name=entry.name,
                    configured=_has_key(stored.get(entry.id)),
                    active=active == entry.id,
                    min_tier=entry.min_tier,
                )
            )
        for pid in stored:
            if pid not in seen:
                rows.append(self._config_row(cat, pid, stored))
        return rows
