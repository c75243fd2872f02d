"""Exception hierarchy shared by every pipeline stage."""

from __future__ import annotations


class TemplaitoError(Exception):
    """Base class for all errors raised by templaito."""


class ConfigurationError(TemplaitoError):
    """A required setting (key, URL, token) is missing or malformed."""


class ClientNotFound(TemplaitoError):
    def __init__(self, client_id):
        super().__init__(f"Client {client_id} not found")
        self.client_id = client_id


class OperationCancelled(TemplaitoError):
    """The initiating request was aborted before this unit of work ran."""


# --- Scraping ---

class ScrapeFailure(TemplaitoError):
    """A single product URL could not be scraped. Recoverable: the URL is dropped."""

    def __init__(self, url: str, reason: str = ""):
        super().__init__(f"Failed to scrape {url}: {reason}" if reason else f"Failed to scrape {url}")
        self.url = url
        self.reason = reason


class NoUsableProductData(TemplaitoError):
    """No country produced any product data, so there is no base country."""

    def __init__(self, countries: list[str] | None = None):
        countries = countries or []
        detail = ", ".join(countries) if countries else "no countries with URLs"
        super().__init__(f"No usable product data could be scraped ({detail})")
        self.countries = countries


# --- AI generation ---

class ProviderError(TemplaitoError):
    """Transport-level failure talking to an AI provider."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class GenerationFailure(TemplaitoError):
    """Base for content/design failures.

    ``reason`` is ``"provider"`` when the AI call itself failed and
    ``"unparseable"`` when the call succeeded but its output could not be used.
    Callers retry with another engine in the first case and report a bug in
    the second.
    """

    PROVIDER = "provider"
    UNPARSEABLE = "unparseable"

    stage = "generation"

    def __init__(self, message: str, reason: str, engine: str = "", raw_response: str | None = None):
        super().__init__(message)
        self.reason = reason
        self.engine = engine
        self.raw_response = raw_response

    @property
    def is_provider_error(self) -> bool:
        return self.reason == self.PROVIDER

    @property
    def is_unparseable(self) -> bool:
        return self.reason == self.UNPARSEABLE


class ContentGenerationFailure(GenerationFailure):
    stage = "content"


class DesignGenerationFailure(GenerationFailure):
    stage = "design"


# --- ESP / integrations ---

class ESPError(TemplaitoError):
    """Transport-level failure talking to the ESP backend."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class IntegrationValidationFailure(TemplaitoError):
    """The ESP rejected the supplied credentials, or could not be reached to check them."""


class IntegrationDecryptionFailure(TemplaitoError):
    """Stored credentials could not be decrypted (tampered, corrupted, or key missing)."""


class IntegrationNotConnected(TemplaitoError):
    def __init__(self, client_id):
        super().__init__(f"SqualoMail integration is not connected for client {client_id}")
        self.client_id = client_id


class PublishPartialFailure(TemplaitoError):
    """One or more countries failed to publish. Carries the full per-country result."""

    def __init__(self, result):
        failed = [r.country_code for r in result.per_country_results if r.error]
        super().__init__(f"Publishing failed for: {', '.join(failed)}")
        self.result = result
        self.failed_countries = failed


class MetricsUnavailable(TemplaitoError):
    """The ESP has no report data yet. Treated as "not tracked", never surfaced."""


class InvalidRequest(TemplaitoError):
    """Caller input failed validation; nothing was changed."""
