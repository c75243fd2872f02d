"""HTTP client for the SqualoMail backend proxy."""

from __future__ import annotations

import logging

import httpx

from templaito.errors import ConfigurationError, ESPError, MetricsUnavailable

logger = logging.getLogger(__name__)

_PREFIX = "/integrations/squalomail"


class SqualoMailClient:
    """Thin JSON-over-HTTPS client. Every call carries the service bearer token.

    ``transport`` is passed straight to httpx (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        service_token: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.service_token = service_token or ""
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config=None) -> SqualoMailClient:
        if config is None:
            from templaito.config import load_config
            config = load_config()
        return cls(config.esp.backend_url, config.esp.service_token, timeout=config.esp.timeout_seconds)

    def _post(self, path: str, payload: dict) -> dict:
        if not self.base_url:
            raise ConfigurationError("TEMPLAITO_BACKEND_URL environment variable is not set")
        if not self.service_token:
            raise ConfigurationError("TEMPLAITO_SERVICE_TOKEN environment variable is not set")

        headers = {"Authorization": f"Bearer {self.service_token}"}
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(f"{_PREFIX}{path}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error("SqualoMail backend unreachable (%s): %s", path, e)
            raise ESPError(f"SqualoMail backend request failed: {e}") from e

        if resp.is_error:
            raise ESPError(
                f"SqualoMail backend request failed with {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            raise ESPError("SqualoMail backend returned invalid JSON", status_code=resp.status_code) from e
        return data if isinstance(data, dict) else {}

    def validate_api_key(self, api_key: str) -> dict:
        """Returns ``{"token"?, "account"?, "lists"?}``."""
        return self._post("/validate", {"apiKey": api_key})

    def fetch_lists(self, api_key: str) -> dict:
        """Returns ``{"account"?, "lists"?}``."""
        return self._post("/lists", {"apiKey": api_key})

    def create_newsletter(
        self,
        api_key: str,
        *,
        country_code: str,
        mailing_list_id: str,
        subject: str,
        preheader: str,
        html: str,
        sender_email: str | None = None,
        sender_name: str | None = None,
        send_date: str | None = None,
    ) -> str:
        """Create (and schedule, if ``send_date``) one newsletter. Returns its ESP id."""
        data = self._post("/newsletters", {
            "apiKey": api_key,
            "countryCode": country_code,
            "mailingListId": mailing_list_id,
            "subject": subject,
            "preheader": preheader,
            "html": html,
            "senderEmail": sender_email,
            "senderName": sender_name,
            "sendDate": send_date,
        })
        newsletter_id = data.get("newsletterId") or data.get("id")
        if newsletter_id is None or str(newsletter_id).strip() == "":
            raise ESPError("SqualoMail did not return a newsletter id")
        return str(newsletter_id)

    def fetch_report_metrics(self, api_key: str, newsletter_ids: list[str]) -> dict[str, dict]:
        """Raw per-newsletter report counters keyed by newsletter id.

        Raises MetricsUnavailable when the ESP has no reports yet.
        """
        try:
            data = self._post("/metrics", {"apiKey": api_key, "newsletterIds": list(newsletter_ids)})
        except ESPError as e:
            if e.status_code == 404:
                raise MetricsUnavailable(str(e)) from e
            raise
        metrics = data.get("metrics")
        return metrics if isinstance(metrics, dict) else {}
