"""Async Evolution API client for tenant self-hosted WhatsApp gateways.

SECURITY: The base URL always goes through the SSRF guard before the first
request. The API key is sent as the ``apikey`` header and never logged.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from http import HTTPStatus
from urllib.parse import quote

import httpx
import structlog

from automai.utils.url_safety import ensure_resolves_public, validate_base_url

logger = structlog.get_logger()

_NETWORK_ERROR = 0


def _map_http_status(status_code: int) -> int:
    """Map an upstream status code to the status returned to our caller."""
    if status_code in (401, 403):
        return HTTPStatus.UNAUTHORIZED
    if status_code == 404:
        return HTTPStatus.NOT_FOUND
    if 400 <= status_code < 500:
        return HTTPStatus.BAD_REQUEST
    return HTTPStatus.INTERNAL_SERVER_ERROR


def _segment(value: str) -> str:
    """Quote a path segment so instance names cannot alter the request path."""
    return quote(value, safe="")


def _error_key(status_code: int) -> str:
    if status_code in (401, 403):
        return "whatsapp.invalid_credentials"
    if status_code == 404:
        return "whatsapp.external_deleted"
    if status_code == _NETWORK_ERROR or status_code >= 500:
        return "whatsapp.network_error"
    return "whatsapp.transient_error"


class EvolutionApiError(Exception):
    """Evolution API call failed.

    Args:
        message: Description safe to return to the caller.
        status_code: Upstream HTTP status, or 0 for network errors.
    """

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.http_status = int(_map_http_status(status_code))
        self.error_key = _error_key(status_code)

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error_key": self.error_key,
            "message": self.message,
        }

    @classmethod
    def from_httpx_error(cls, exc: httpx.HTTPError) -> EvolutionApiError:
        """Build an error from an httpx exception, keeping the upstream status."""
        if isinstance(exc, httpx.HTTPStatusError):
            message = "Evolution API error"
            try:
                body = exc.response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("message"), str):
                message = body["message"]
            return cls(message, exc.response.status_code)
        return cls("Network error connecting to Evolution API", _NETWORK_ERROR)


@dataclass(frozen=True)
class AccountInfo:
    """WhatsApp account behind an Evolution instance."""

    phone_number: str
    display_name: str
    status: str  # "connected" | "disconnected"


class EvolutionClient:
    """Async client for one tenant's Evolution API gateway.

    Args:
        base_url: Tenant-supplied gateway URL. Validated by the SSRF guard.
        api_key: Evolution API key. Treated as a secret.
        timeout: HTTP request timeout in seconds.
        allow_http: Accept a plain ``http`` gateway URL.
        resolve_dns: Also reject hosts that resolve to blocked addresses.
            Checked in a worker thread before every request, and by
            ``ensure_public_resolution()`` on demand.

    Raises:
        InvalidBaseUrlError: The base URL is malformed or uses a bad scheme.
        PrivateAddressBlockedError: The base URL targets an internal address.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        allow_http: bool = False,
        resolve_dns: bool = False,
    ) -> None:
        self._base_url = validate_base_url(base_url, allow_http=allow_http)
        self._api_key = api_key
        self._timeout = timeout
        self._resolve_dns = resolve_dns
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"apikey": self._api_key, "Accept": "application/json"},
                timeout=self._timeout,
                follow_redirects=False,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> EvolutionClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def ensure_public_resolution(self) -> None:
        """Re-resolve the gateway host off the event loop. No-op unless resolve_dns is set.

        Raises:
            InvalidBaseUrlError: The host does not resolve.
            PrivateAddressBlockedError: The host resolves to a blocked address.
        """
        if self._resolve_dns:
            await asyncio.to_thread(ensure_resolves_public, self._base_url)

    async def _request(self, method: str, path: str, json: dict | None = None) -> object:
        """Send a request and return the decoded JSON body."""
        await self.ensure_public_resolution()

        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            await logger.awarning(
                "evolution_request_failed",
                path=path,
                status_code=exc.response.status_code,
            )
            raise EvolutionApiError.from_httpx_error(exc) from exc
        except httpx.RequestError as exc:
            await logger.awarning(
                "evolution_request_error",
                path=path,
                error_type=type(exc).__name__,
            )
            raise EvolutionApiError.from_httpx_error(exc) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise EvolutionApiError(
                "Invalid response from Evolution API", HTTPStatus.BAD_GATEWAY
            ) from exc

    async def connection_state(self, instance: str) -> str | None:
        """Return the connection state of an instance ("open", "close", ...)."""
        data = await self._request("GET", f"/instance/connectionState/{_segment(instance)}")
        if not isinstance(data, dict):
            return None
        nested = data.get("instance")
        if isinstance(nested, dict) and nested.get("state"):
            return nested["state"]
        return data.get("state")

    async def validate_credentials(self, instance: str) -> bool:
        """Check that the API key works and the instance is connected.

        Unknown instance, rejected key and unreachable gateway all return
        False. Other upstream failures propagate.
        """
        if not self._api_key or not instance:
            await logger.awarning(
                "evolution_credentials_incomplete",
                has_api_key=bool(self._api_key),
                has_instance=bool(instance),
            )
            return False

        try:
            state = await self.connection_state(instance)
        except EvolutionApiError as exc:
            if exc.status_code in (_NETWORK_ERROR, 401, 403, 404):
                return False
            raise

        await logger.adebug("evolution_connection_state", instance=instance, state=state)
        return state == "open"

    async def get_account_info(self, instance: str) -> AccountInfo:
        """Fetch phone number, display name and status for an instance.

        Raises:
            EvolutionApiError: Request failed, or the instance does not exist.
        """
        data = await self._request("GET", "/instance/fetchInstances")
        if not isinstance(data, list):
            raise EvolutionApiError(
                "Invalid response from Evolution API", HTTPStatus.BAD_GATEWAY
            )

        match = None
        for item in data:
            if not isinstance(item, dict):
                continue
            wrapped = item.get("instance") if isinstance(item.get("instance"), dict) else {}
            if item.get("name") == instance or wrapped.get("instanceName") == instance:
                match = item
                break

        if match is None:
            available = [
                name
                for name in (
                    i.get("name") or (i.get("instance") or {}).get("instanceName")
                    for i in data
                    if isinstance(i, dict)
                )
                if name
            ]
            raise EvolutionApiError(
                f"Instance '{instance}' not found. "
                f"Available instances: {', '.join(available) if available else 'none'}",
                HTTPStatus.NOT_FOUND,
            )

        return _parse_account(match, instance)

    async def get_qr_code(self, instance: str) -> str | None:
        """Return the pairing QR code as a data URI or raw string, if any."""
        try:
            data = await self._request("GET", f"/instance/connect/{_segment(instance)}")
        except EvolutionApiError:
            return None

        qrcode = data.get("qrcode") if isinstance(data, dict) else None
        if isinstance(qrcode, dict) and qrcode.get("base64"):
            return f"data:image/png;base64,{qrcode['base64']}"
        if isinstance(qrcode, str) and qrcode:
            return qrcode
        return None

    async def send_text(self, instance: str, to: str, text: str) -> None:
        """Send a plain text message through the instance."""
        await self._request(
            "POST",
            f"/message/sendText/{_segment(instance)}",
            json={"number": to, "text": text},
        )
        await logger.ainfo("evolution_message_sent", instance=instance)


def _parse_account(item: dict, instance: str) -> AccountInfo:
    """Read either fetchInstances payload shape into an AccountInfo."""
    phone = ""
    display_name = instance
    status = "disconnected"

    if item.get("name"):
        display_name = item["name"]
        status = "connected" if item.get("connectionStatus") == "open" else "disconnected"
        if item.get("ownerJid"):
            phone = str(item["ownerJid"]).split("@")[0]
        elif item.get("number"):
            phone = str(item["number"])
    elif isinstance(item.get("instance"), dict):
        wrapped = item["instance"]
        display_name = wrapped.get("instanceName") or instance
        status = "connected" if wrapped.get("state") == "open" else "disconnected"
        if wrapped.get("jid"):
            phone = str(wrapped["jid"]).split("@")[0]

    return AccountInfo(
        phone_number=f"+{phone}" if phone else "",
        display_name=display_name,
        status=status,
    )
