"""Authentication routes."""

from fastapi import APIRouter, Request

from tillpoint.api.deps import Auth, client_ip
from tillpoint.core.rate_limit import limiter
from tillpoint.schemas.auth import LoginRequest, StaffResponse, TokenResponse

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")
def login(request: Request, login_request: LoginRequest, auth: Auth):
    """Exchange a staff code and PIN for a session token."""
    result = auth.login(login_request.staff_code, login_request.pin, client_ip(request))
    return TokenResponse(
        access_token=result.access_token,
        token_type=result.token_type,
        staff=StaffResponse.model_validate(result.staff),
    )
