"""
Passkey API Routes

Thin FastAPI adapter over PasskeyService. Handles JSON bodies and error
mapping only; all ceremony logic lives in the service.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from passkey.errors import NotFoundError, PasskeyError
from passkey.service import PasskeyService

logger = structlog.get_logger(__name__)


# ==================== Request Models ====================

class OptionsRequest(BaseModel):
    """Request to start a ceremony."""
    username: Optional[str] = Field(default=None, description="Account name")
    display_name: Optional[str] = Field(default=None, description="Shown by the authenticator")


def _split_username(body: dict[str, Any], default: Optional[str]) -> tuple[Optional[str], dict[str, Any]]:
    """Separate the adapter's username field from the PublicKeyCredential JSON."""
    response = dict(body)
    username = response.pop("username", None)
    return (username or default), response


# ==================== Route Setup Functions ====================

def setup_error_handlers(app: FastAPI) -> None:
    """Map ceremony errors to HTTP responses."""

    @app.exception_handler(PasskeyError)
    async def passkey_error_handler(request: Request, exc: PasskeyError):
        status_code = 404 if isinstance(exc, NotFoundError) else 400
        logger.info(
            "Request rejected",
            path=request.url.path,
            error=exc.code,
            status_code=status_code,
        )
        return JSONResponse(status_code=status_code, content=exc.to_dict())


def setup_routes(app: FastAPI, service: PasskeyService) -> None:
    """Setup all routes for the passkey API."""
    default_username = service.config.ceremony.default_username

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"healthy": True, "status": await service.status()}

    # ==================== Registration ====================

    @app.post("/register/options")
    async def register_options(request: Optional[OptionsRequest] = None):
        """Generate registration (credential creation) options."""
        request = request or OptionsRequest()
        options = await service.begin_registration(
            request.username or default_username,
            request.display_name,
        )
        return options.to_json()

    @app.post("/register/verify")
    async def register_verify(body: dict[str, Any] = Body(...)):
        """Verify a registration (attestation) response."""
        username, response = _split_username(body, default_username)
        result = await service.finish_registration(username, response)
        return result.to_json()

    # ==================== Authentication ====================

    @app.post("/assertion/options")
    async def assertion_options(request: Optional[OptionsRequest] = None):
        """Generate assertion options; omit username for discoverable login."""
        request = request or OptionsRequest()
        options = await service.begin_authentication(request.username)
        return options.to_json()

    @app.post("/assertion/verify")
    async def assertion_verify(body: dict[str, Any] = Body(...)):
        """Verify an assertion (login) response."""
        username, response = _split_username(body, None)
        result = await service.finish_authentication(username, response)
        return result.to_json()

    # ==================== Queries ====================

    @app.get("/users/{username}/credentials")
    async def user_credentials(username: str):
        """List a user's registered credentials."""
        return {
            "username": username,
            "credentials": await service.list_user_credentials(username),
        }
