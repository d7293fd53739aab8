import os
import threading
import time
from pathlib import Path
from typing import Dict, Any, Optional, List, Callable

import httpx
from loguru import logger

from graph.errors import CrmUpdateError, CommunicationError


class ZohoTokenProvider:
    """
    Owns the Zoho OAuth access token for the process.

    The token is fetched lazily with the refresh-token grant and refreshed
    once ``expires_in`` has elapsed, minus a safety margin.
    """

    EXPIRY_MARGIN = 60

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.client_id = os.getenv("ZOHO_CLIENT_ID")
        self.client_secret = os.getenv("ZOHO_CLIENT_SECRET")
        self.refresh_token = os.getenv("ZOHO_REFRESH_TOKEN")
        self.accounts_url = os.getenv("ZOHO_ACCOUNTS_URL", "https://accounts.zoho.com").rstrip("/")
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at = 0.0

        if not self.configured:
            logger.warning("Missing Zoho credentials, using mock mode")

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def get_token(self) -> Optional[str]:
        """Return a valid access token, or None when no credentials are configured."""
        if not self.configured:
            return None

        with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token
            return self._refresh()

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def _refresh(self) -> str:
        with httpx.Client(timeout=20) as client:
            response = client.post(
                f"{self.accounts_url}/oauth/v2/token",
                params={
                    "refresh_token": self.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                },
            )
            response.raise_for_status()
            data = response.json()

        token = data.get("access_token")
        if not token:
            # Zoho answers 200 with {"error": "invalid_code"} on bad credentials
            raise httpx.HTTPError(f"Zoho token refresh failed: {data.get('error', data)}")

        self._token = token
        self._expires_at = self._clock() + max(int(data.get("expires_in", 3600)) - self.EXPIRY_MARGIN, 0)
        logger.info("[Zoho] Access token refreshed")
        return token


class ZohoCRM:
    """Zoho CRM integration: deal updates, invoice mail and maintenance listing."""

    def __init__(self, tokens: Optional[ZohoTokenProvider] = None):
        self.tokens = tokens or ZohoTokenProvider()
        self.base_url = os.getenv("ZOHO_API_URL", "https://www.zohoapis.com/crm/v2").rstrip("/")
        self.from_email = os.getenv("ZOHO_FROM_EMAIL", "billing@theclaireai.com")
        self.from_name = os.getenv("ZOHO_FROM_NAME", os.getenv("BRAND_NAME", "ClaireAI"))

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send an authenticated request, refreshing the token once on 401."""
        response = None
        for attempt in range(2):
            token = self.tokens.get_token()
            with httpx.Client(timeout=30) as client:
                response = client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers={"Authorization": f"Zoho-oauthtoken {token}"},
                    **kwargs,
                )
            if response.status_code != 401 or attempt:
                break
            logger.warning("[Zoho] Access token rejected, refreshing")
            self.tokens.invalidate()

        response.raise_for_status()
        return response

    def update_deal(self, deal_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write fields back to a deal record.

        Raises:
            CrmUpdateError: if Zoho rejects the update
        """
        if not deal_id:
            raise CrmUpdateError("Cannot update Zoho without a deal id")

        logger.info(f"[Zoho CRM] Updating deal {deal_id}: {list(fields.keys())}")
        if not self.tokens.configured:
            logger.info(f"Mock mode: would update Zoho deal {deal_id} with {fields}")
            return {"status": "mock_success"}

        try:
            response = self._request("PUT", f"/Deals/{deal_id}", json={"data": [fields]})
            logger.info(f"[Zoho CRM] Update success for deal {deal_id}")
            return response.json()
        except httpx.HTTPStatusError as e:
            raise CrmUpdateError(f"Zoho update failed ({e.response.status_code}): {e.response.text}") from e
        except httpx.HTTPError as e:
            raise CrmUpdateError(f"Zoho update failed: {e}") from e

    def upload_attachment(self, file_path: str) -> str:
        """Upload a file to the Zoho Files API and return its encrypted id."""
        path = Path(file_path)
        if not path.is_file():
            raise CommunicationError(f"Attachment not found: {file_path}")

        with path.open("rb") as fh:
            response = self._request("POST", "/files", files={"file": (path.name, fh, "application/pdf")})

        body = response.json()
        try:
            file_id = body["data"][0]["details"]["id"]
        except (KeyError, IndexError, TypeError):
            raise CommunicationError(f"Zoho file upload returned no id: {body}")

        logger.info(f"[Zoho CRM] Uploaded {path.name} -> {file_id}")
        return file_id

    def send_invoice_email(
        self,
        deal_id: str,
        to_email: str,
        subject: str,
        html: str,
        attachment_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a transactional email from the deal record, with the PDF attached.

        Returns:
            Raw send_mail acknowledgement from Zoho

        Raises:
            CommunicationError: carrying the upstream status and body text
        """
        if not to_email:
            raise CommunicationError("No client email available for invoice delivery")

        logger.info(f"[Zoho CRM] Sending '{subject}' to {to_email} (deal {deal_id})")
        if not self.tokens.configured:
            logger.info(f"Mock mode: would email {to_email} with attachment {attachment_path}")
            return {"status": "mock_success"}

        try:
            email = {
                "from": {"user_name": self.from_name, "email": self.from_email},
                "to": [{"email": to_email}],
                "subject": subject,
                "content": html,
                "mail_format": "html",
            }
            if attachment_path:
                email["attachments"] = [{"id": self.upload_attachment(attachment_path)}]

            response = self._request("POST", f"/Deals/{deal_id}/actions/send_mail", json={"data": [email]})
            receipt = response.json()
            logger.info(f"[Zoho CRM] Invoice email sent: {receipt}")
            return receipt
        except httpx.HTTPStatusError as e:
            raise CommunicationError(
                f"Zoho email failed ({e.response.status_code}): {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise CommunicationError(f"Zoho email failed: {e}") from e

    def list_recent_deals(self, limit: int = 200) -> List[Dict[str, Any]]:
        """List the most recently created deals."""
        if not self.tokens.configured:
            logger.info("Mock mode: no Zoho deals to list")
            return []

        response = self._request(
            "GET",
            "/Deals",
            params={"per_page": limit, "sort_by": "Created_Time", "sort_order": "desc"},
        )
        # Zoho returns 204 with no body for an empty module
        if response.status_code == 204 or not response.content:
            return []
        return response.json().get("data", [])

    def delete_deal(self, deal_id: str) -> Dict[str, Any]:
        if not self.tokens.configured:
            logger.info(f"Mock mode: would delete Zoho deal {deal_id}")
            return {"status": "mock_success"}

        response = self._request("DELETE", f"/Deals/{deal_id}")
        logger.info(f"[Zoho CRM] Deleted deal {deal_id}")
        return response.json()


# Global Zoho client instance
zoho_crm = ZohoCRM()


def update_deal(deal_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Update a deal using the global Zoho client."""
    return zoho_crm.update_deal(deal_id, fields)


def send_invoice_email(deal_id: str, to_email: str, subject: str, html: str,
                       attachment_path: Optional[str] = None) -> Dict[str, Any]:
    """Send an invoice email using the global Zoho client."""
    return zoho_crm.send_invoice_email(deal_id, to_email, subject, html, attachment_path)


def list_recent_deals() -> List[Dict[str, Any]]:
    return zoho_crm.list_recent_deals()


def delete_deal(deal_id: str) -> Dict[str, Any]:
    return zoho_crm.delete_deal(deal_id)
