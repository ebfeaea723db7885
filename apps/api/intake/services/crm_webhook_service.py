"""Outbound CRM webhook (Zoho Flow contact intake).

One POST per created client, mapped onto the receiver's contact fields.
Delivery is fire-and-forget from the caller's point of view; failures are
raised as MirrorError for the dispatcher to log.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

import anyio
import httpx

from intake.core.config import Settings, settings as default_settings
from intake.core.exceptions import MirrorError
from intake.utils.normalization import split_full_name

logger = logging.getLogger(__name__)

WEBHOOK_SOURCE = "Web Form"
PLACE_OF_CONTACT = "Website"


def _clean(value: str | None) -> str:
    return (value or "").strip().replace("\n", "")


def build_contact_payload(client: Mapping[str, Any], now: datetime | None = None) -> dict[str, str]:
    """Map a client snapshot onto the receiver's contact schema."""
    now = now or datetime.now(timezone.utc)
    full_name = client.get("client_full_name") or ""
    first_name, last_name = split_full_name(full_name)
    company = client.get("company_name") or "Individual"
    phone = client.get("phone_number") or ""
    address = client.get("project_address") or ""

    return {
        "Email": client.get("email") or "",
        "Organization": company,
        "Company name": company,
        "Customer display name": full_name or "New Client",
        "First name": first_name or "New",
        "Last name": last_name or "Client",
        "Phone": phone,
        "Billing address - Phone": phone,
        "Billing address - Address": address,
        "Shipping address - Phone": phone,
        "Shipping address - Address": address,
        "Remark": client.get("technical_description") or "New lead from website",
        "Customer subtype": client.get("customer_type") or "Residential",
        "Service Type": client.get("service_type") or "",
        "Price": "0",
        "Source": WEBHOOK_SOURCE,
        "Place of contact": PLACE_OF_CONTACT,
        "Is portal enabled?": "true",
        "Registration Date": now.isoformat(),
        "Client ID": client.get("client_id") or "",
    }


class CrmWebhookClient:
    """Posts new-client payloads to the configured CRM webhook."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or default_settings
        self._transport = transport

    @property
    def webhook_url(self) -> str:
        return _clean(self.config.CRM_WEBHOOK_URL)

    @property
    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.config.CRM_WEBHOOK_USER_AGENT,
        }
        secret = _clean(self.config.CRM_WEBHOOK_SECRET)
        if secret:
            headers["X-Webhook-Secret"] = secret
        return headers

    async def send_new_client(self, client: Mapping[str, Any]) -> int:
        """POST the contact payload. Returns the response status code."""
        if not self.is_configured:
            raise MirrorError("CRM webhook URL not configured")

        payload = build_contact_payload(client)
        timeout = self.config.OUTBOUND_TIMEOUT_SECONDS
        try:
            with anyio.fail_after(timeout):
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as http:
                    response = await http.post(self.webhook_url, json=payload, headers=self._headers())
                    response.raise_for_status()
        except TimeoutError as exc:
            raise MirrorError(f"CRM webhook timed out after {timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise MirrorError(
                f"CRM webhook returned {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise MirrorError(f"CRM webhook request failed: {exc}") from exc

        logger.info(
            "CRM webhook delivered client_id=%s status=%s",
            client.get("client_id"),
            response.status_code,
        )
        return response.status_code
