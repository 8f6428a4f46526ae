"""Evolution API gateway endpoints behind the "connect my WhatsApp gateway" form.

- POST /whatsapp/evolution/validate-url: canonicalize a base URL, no outbound call
- POST /whatsapp/evolution/connect: validate, then optionally test the credentials

Whether plain http is accepted is a server setting, never a request field.
Annotations stay evaluated here: the slowapi wrapper has its own module globals,
so FastAPI could not resolve string annotations on the limited endpoint.
"""

import structlog
from fastapi import APIRouter, Depends, Request

from automai.api.dependencies import get_settings
from automai.api.rate_limit import CONNECT_LIMIT, limiter
from automai.api.schemas import (
    AccountInfoResponse,
    ConnectEvolutionRequest,
    ConnectEvolutionResponse,
    ValidateUrlRequest,
    ValidateUrlResponse,
)
from automai.config import Settings
from automai.integrations.evolution import EvolutionApiError, EvolutionClient
from automai.utils.url_safety import validate_base_url

logger = structlog.get_logger()

router = APIRouter(prefix="/whatsapp/evolution")


@router.post("/validate-url", response_model=ValidateUrlResponse)
async def validate_url(
    body: ValidateUrlRequest,
    settings: Settings = Depends(get_settings),
) -> ValidateUrlResponse:
    """Return the canonical base URL, or a 400 naming the rejection kind."""
    base_url = validate_base_url(body.base_url, allow_http=settings.evolution_allow_http)
    return ValidateUrlResponse(base_url=base_url)


@router.post("/connect", response_model=ConnectEvolutionResponse)
@limiter.limit(CONNECT_LIMIT)
async def connect_evolution(
    request: Request,
    body: ConnectEvolutionRequest,
    settings: Settings = Depends(get_settings),
) -> ConnectEvolutionResponse:
    """Validate a tenant's gateway settings and optionally test them live.

    The client constructor runs the SSRF guard, so no request is ever sent
    to a rejected URL. Without a base_url the default gateway is used.
    """
    client = EvolutionClient(
        body.base_url or settings.evolution_api_default_url,
        body.api_key,
        timeout=settings.httpx_timeout_seconds,
        allow_http=settings.evolution_allow_http,
        resolve_dns=settings.evolution_resolve_dns,
    )
    await client.ensure_public_resolution()

    if not body.test_connection:
        return ConnectEvolutionResponse(
            base_url=client.base_url,
            instance_name=body.instance_name,
            connection_tested=False,
        )

    async with client:
        if not await client.validate_credentials(body.instance_name):
            await logger.awarning("evolution_credentials_rejected", instance=body.instance_name)
            raise EvolutionApiError(
                "Credentials are not valid. Check the API key, base URL and instance name.",
                401,
            )
        account = await client.get_account_info(body.instance_name)

    await logger.ainfo(
        "evolution_gateway_connected",
        instance=body.instance_name,
        status=account.status,
    )
    return ConnectEvolutionResponse(
        base_url=client.base_url,
        instance_name=body.instance_name,
        connection_tested=True,
        account=AccountInfoResponse(
            phone_number=account.phone_number,
            display_name=account.display_name,
            status=account.status,
        ),
    )
