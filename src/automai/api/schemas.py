"""Pydantic request/response schemas for the gateway endpoints.

Base URLs are accepted as plain strings here. The SSRF guard runs in the route
so that its two error kinds reach the caller with their own error keys instead
of a generic 422.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LivenessResponse(BaseModel):
    """Liveness probe response."""

    status: str


class ValidateUrlRequest(BaseModel):
    """POST /whatsapp/evolution/validate-url request body."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(max_length=2048)


class ValidateUrlResponse(BaseModel):
    """Canonical form of an accepted base URL."""

    success: bool = True
    base_url: str


class ConnectEvolutionRequest(BaseModel):
    """POST /whatsapp/evolution/connect request body.

    An omitted or empty base_url means the platform's default gateway.
    """

    model_config = ConfigDict(extra="forbid")

    base_url: str | None = Field(default=None, max_length=2048)
    api_key: str = Field(min_length=1, max_length=512)
    instance_name: str = Field(min_length=1, max_length=255)
    test_connection: bool = False


class AccountInfoResponse(BaseModel):
    phone_number: str
    display_name: str
    status: str


class ConnectEvolutionResponse(BaseModel):
    """Result of a connect request. account is set when the connection was tested."""

    success: bool = True
    base_url: str
    instance_name: str
    connection_tested: bool
    account: AccountInfoResponse | None = None
