"""SQLAlchemy ORM models for tenants, integrations, campaigns, prompts and usage."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from templaito.models import (
    CampaignStatus,
    DesignEngine,
    IntegrationProvider,
    IntegrationStatus,
    PromptStatus,
    TemplateKind,
    TemplateType,
)


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String, unique=True)
    name: Mapped[str | None] = mapped_column(String)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[str | None] = mapped_column(String, default=utcnow)


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String)
    user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"))
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[str | None] = mapped_column(String, default=utcnow)
    updated_at: Mapped[str | None] = mapped_column(String, default=utcnow, onupdate=utcnow)

    country_configs: Mapped[list[ClientCountryConfig]] = relationship(back_populates="client")
    integrations: Mapped[list[ClientIntegration]] = relationship(back_populates="client")
    campaigns: Mapped[list[Campaign]] = relationship(back_populates="client")


class Country(Base):
    __tablename__ = "countries"

    code: Mapped[str] = mapped_column(String(2), primary_key=True)
    name: Mapped[str] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ClientCountryConfig(Base):
    __tablename__ = "client_country_configs"
    __table_args__ = (UniqueConstraint("client_id", "country_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"))
    country_code: Mapped[str] = mapped_column(String(2), ForeignKey("countries.code"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    mailing_list_id: Mapped[str | None] = mapped_column(String)
    mailing_list_name: Mapped[str | None] = mapped_column(String)
    sender_email: Mapped[str | None] = mapped_column(String)
    sender_name: Mapped[str | None] = mapped_column(String)
    last_synced_at: Mapped[str | None] = mapped_column(String)
    created_at: Mapped[str | None] = mapped_column(String, default=utcnow)
    updated_at: Mapped[str | None] = mapped_column(String, default=utcnow, onupdate=utcnow)

    client: Mapped[Client] = relationship(back_populates="country_configs")
    country: Mapped[Country | None] = relationship()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "clientId": self.client_id,
            "countryCode": self.country_code,
            "isActive": self.is_active,
            "mailingListId": self.mailing_list_id,
            "mailingListName": self.mailing_list_name,
            "senderEmail": self.sender_email,
            "senderName": self.sender_name,
            "lastSyncedAt": self.last_synced_at,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "country": (
                {"code": self.country.code, "name": self.country.name, "isActive": self.country.is_active}
                if self.country is not None else None
            ),
        }


class ClientIntegration(Base):
    __tablename__ = "client_integrations"
    __table_args__ = (UniqueConstraint("client_id", "provider"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"))
    provider: Mapped[str] = mapped_column(String, default=IntegrationProvider.SQUALOMAIL.value)
    status: Mapped[str] = mapped_column(String, default=IntegrationStatus.DISCONNECTED.value)
    encrypted_credentials: Mapped[str | None] = mapped_column(Text)
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[str | None] = mapped_column("metadata", Text)
    last_synced_at: Mapped[str | None] = mapped_column(String)
    created_at: Mapped[str | None] = mapped_column(String, default=utcnow)
    updated_at: Mapped[str | None] = mapped_column(String, default=utcnow, onupdate=utcnow)

    client: Mapped[Client] = relationship(back_populates="integrations")

    @property
    def meta(self) -> dict:
        if not self.metadata_json:
            return {}
        try:
            data = json.loads(self.metadata_json)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    @meta.setter
    def meta(self, value: dict | None) -> None:
        self.metadata_json = json.dumps(value) if value is not None else None

    @property
    def is_connected(self) -> bool:
        return self.status == IntegrationStatus.CONNECTED.value and bool(self.encrypted_credentials)


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"))
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text)
    subject: Mapped[str | None] = mapped_column(String)
    preheader: Mapped[str | None] = mapped_column(String)
    base_country: Mapped[str | None] = mapped_column(String(2))
    status: Mapped[str] = mapped_column(String, default=CampaignStatus.DRAFT.value)
    scheduled_at: Mapped[str | None] = mapped_column(String)
    sent_at: Mapped[str | None] = mapped_column(String)
    created_at: Mapped[str | None] = mapped_column(String, default=utcnow)
    updated_at: Mapped[str | None] = mapped_column(String, default=utcnow, onupdate=utcnow)

    client: Mapped[Client] = relationship(back_populates="campaigns")
    targets: Mapped[list[CampaignCountryTarget]] = relationship(
        back_populates="campaign", cascade="all, delete-orphan", order_by="CampaignCountryTarget.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "clientId": self.client_id,
            "name": self.name,
            "description": self.description,
            "subject": self.subject,
            "preheader": self.preheader,
            "baseCountry": self.base_country,
            "status": self.status,
            "scheduledAt": self.scheduled_at,
            "sentAt": self.sent_at,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "targets": [t.to_dict() for t in self.targets],
        }


class CampaignCountryTarget(Base):
    __tablename__ = "campaign_country_targets"
    __table_args__ = (UniqueConstraint("campaign_id", "country_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(Integer, ForeignKey("campaigns.id"))
    country_code: Mapped[str] = mapped_column(String(2))
    mailing_list_id: Mapped[str | None] = mapped_column(String)
    external_id: Mapped[str | None] = mapped_column(String)
    created_at: Mapped[str | None] = mapped_column(String, default=utcnow)

    campaign: Mapped[Campaign] = relationship(back_populates="targets")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "countryCode": self.country_code,
            "mailingListId": self.mailing_list_id,
            "externalId": self.external_id,
        }


class Prompt(Base):
    __tablename__ = "prompts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    system_prompt: Mapped[str] = mapped_column(Text, default="")
    user_prompt: Mapped[str] = mapped_column(Text, default="")
    design_engine: Mapped[str] = mapped_column(String, default=DesignEngine.CLAUDE.value)
    template_type: Mapped[str] = mapped_column(String, default=TemplateKind.SINGLE_PRODUCT.value)
    status: Mapped[str] = mapped_column(String, default=PromptStatus.DRAFT.value)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    version: Mapped[str] = mapped_column(String, default="1.0.0")
    created_at: Mapped[str | None] = mapped_column(String, default=utcnow)
    updated_at: Mapped[str | None] = mapped_column(String, default=utcnow, onupdate=utcnow)

    def to_template_type(self) -> TemplateType:
        return TemplateType(
            id=self.id,
            name=self.name,
            description=self.description or "",
            system_prompt=self.system_prompt or "",
            user_prompt=self.user_prompt or "",
            design_engine=self.design_engine,
            template_type=self.template_type,
            status=self.status,
            is_default=bool(self.is_default),
            version=self.version or "1.0.0",
        )


class TemplateGeneration(Base):
    """Append-only usage record, one per generation attempt."""

    __tablename__ = "template_generations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prompt_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("prompts.id"))
    user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"))
    was_successful: Mapped[bool] = mapped_column(Boolean, default=False)
    generation_time: Mapped[int | None] = mapped_column(Integer)  # ms
    input_url: Mapped[str | None] = mapped_column(Text)
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[str | None] = mapped_column(String, default=utcnow)
