"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; returns token pair + user (201)
  POST /api/v1/auth/login      -- password login; returns token pair + user
  POST /api/v1/auth/refresh    -- refresh token -> new token pair
  GET  /api/v1/auth/me         -- current user info (requires auth)

Handlers are thin: read the store and secret from app.state, call the flow,
and either serialize the AuthResult or raise the HTTPException for the
AuthFailure. No auth decisions are made here.

Security:
  Login returns the same 401 body for wrong username and wrong password.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import AuthResponse, LoginRequest, MeResponse, RefreshRequest, RegisterRequest, TokenResponse
from auth import flows
from auth.dependencies import failure_to_http, get_current_identity
from auth.errors import AuthFailure
from auth.flows import AuthResult
from auth.models import Identity
from auth.store import UserStore

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  public -- the refresh token is the credential
# - GET  /api/v1/auth/me:       requires access token (get_current_identity)
router = APIRouter()


def _unwrap(outcome: AuthResult | AuthFailure) -> AuthResult:
    if isinstance(outcome, AuthFailure):
        raise failure_to_http(outcome)
    return outcome


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        message=result.message,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=result.expires_in,
        user=result.user,
    )


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Create a new account and log it in.

    409 names the field that collided ("Username already taken" /
    "Email already registered").
    """
    user_store: UserStore = request.app.state.user_store
    result = _unwrap(flows.register(user_store, request.app.state.jwt_secret, body.username, body.email, body.password))
    response.headers["Cache-Control"] = "no-store"
    return _auth_response(result)


@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with username and password."""
    user_store: UserStore = request.app.state.user_store
    result = _unwrap(flows.login(user_store, request.app.state.jwt_secret, body.username, body.password))
    response.headers["Cache-Control"] = "no-store"
    return _auth_response(result)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenResponse:
    """Exchange a refresh token for a fresh access/refresh pair."""
    result = _unwrap(flows.refresh(request.app.state.jwt_secret, body.refresh_token))
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse(
        message=result.message,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=result.expires_in,
    )


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return the full record of the user the access token belongs to."""
    user_store: UserStore = request.app.state.user_store
    result = _unwrap(flows.who_am_i(user_store, identity))
    return MeResponse(user=result.user)
