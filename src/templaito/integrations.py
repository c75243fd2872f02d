"""Integration credential vault: validate, store, refresh and disconnect ESP credentials."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from templaito.clients import get_client
from templaito.crypto import SecretBox
from templaito.errors import (
    ESPError,
    IntegrationNotConnected,
    IntegrationValidationFailure,
)
from templaito.models import IntegrationProvider, IntegrationStatus
from templaito.orm import ClientIntegration, utcnow
from templaito.squalomail import SqualoMailClient

logger = logging.getLogger(__name__)

PROVIDER = IntegrationProvider.SQUALOMAIL.value


def sanitize_integration(integration: ClientIntegration | None) -> dict | None:
    """Public view of an integration. Encrypted credentials never appear in it."""
    if integration is None:
        return None
    return {
        "id": integration.id,
        "clientId": integration.client_id,
        "provider": integration.provider,
        "status": integration.status,
        "metadata": integration.meta or None,
        "lastSyncedAt": integration.last_synced_at,
        "createdAt": integration.created_at,
        "updatedAt": integration.updated_at,
    }


class IntegrationVault:
    def __init__(self, session: Session, esp: SqualoMailClient, secret_box: SecretBox):
        self.session = session
        self.esp = esp
        self.secret_box = secret_box

    def get(self, client_id: int) -> ClientIntegration | None:
        get_client(self.session, client_id)
        return self.session.scalar(
            select(ClientIntegration).where(
                ClientIntegration.client_id == client_id,
                ClientIntegration.provider == PROVIDER,
            )
        )

    def _require_connected(self, client_id: int) -> ClientIntegration:
        integration = self.get(client_id)
        if integration is None or not integration.is_connected:
            raise IntegrationNotConnected(client_id)
        return integration

    def connect(self, client_id: int, api_key: str) -> dict:
        """Validate ``api_key`` with the ESP and store it (or the ESP token) encrypted.

        Nothing is written unless validation succeeds.
        """
        api_key = (api_key or "").strip()
        if not api_key:
            raise IntegrationValidationFailure("SqualoMail API key is required")
        get_client(self.session, client_id)

        try:
            validation = self.esp.validate_api_key(api_key)
        except ESPError as e:
            logger.warning("SqualoMail key validation failed for client %s: %s", client_id, e)
            raise IntegrationValidationFailure("Failed to validate SqualoMail API key") from e

        encrypted = self.secret_box.encrypt(validation.get("token") or api_key)

        integration = self.get(client_id)
        if integration is None:
            integration = ClientIntegration(client_id=client_id, provider=PROVIDER)
            self.session.add(integration)
        integration.status = IntegrationStatus.CONNECTED.value
        integration.encrypted_credentials = encrypted
        integration.meta = {
            "account": validation.get("account"),
            "lists": validation.get("lists"),
        }
        integration.last_synced_at = utcnow()
        self.session.commit()
        logger.info("SqualoMail connected for client %s", client_id)
        return sanitize_integration(integration)

    def refresh(self, client_id: int) -> dict:
        """Re-fetch account and mailing lists, keeping other metadata (e.g. utmMedium)."""
        integration = self._require_connected(client_id)
        api_key = self.secret_box.decrypt(integration.encrypted_credentials)
        if not api_key:
            raise IntegrationNotConnected(client_id)

        fetched = self.esp.fetch_lists(api_key)
        meta = integration.meta
        meta["lists"] = fetched.get("lists")
        meta["account"] = fetched.get("account")
        integration.meta = meta
        integration.last_synced_at = utcnow()
        self.session.commit()
        return sanitize_integration(integration)

    def disconnect(self, client_id: int) -> None:
        """Forget the credential but keep the row."""
        integration = self.get(client_id)
        if integration is None:
            return
        integration.status = IntegrationStatus.DISCONNECTED.value
        integration.encrypted_credentials = None
        integration.meta = None
        integration.last_synced_at = utcnow()
        self.session.commit()
        logger.info("SqualoMail disconnected for client %s", client_id)

    def update_settings(self, client_id: int, utm_medium: str | None) -> dict:
        """Set or clear ``utmMedium``. Blank values clear it."""
        integration = self.get(client_id)
        if integration is None:
            raise IntegrationNotConnected(client_id)
        meta = integration.meta
        utm_medium = (utm_medium or "").strip()
        if utm_medium:
            meta["utmMedium"] = utm_medium
        else:
            meta.pop("utmMedium", None)
        integration.meta = meta
        self.session.commit()
        return sanitize_integration(integration)

    def api_key_for(self, client_id: int) -> str:
        """Decrypted credential for ESP calls. Never returned across the API."""
        integration = self._require_connected(client_id)
        api_key = self.secret_box.decrypt(integration.encrypted_credentials)
        if not api_key:
            raise IntegrationNotConnected(client_id)
        return api_key
