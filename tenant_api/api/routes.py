"""HTTP route definitions for authentication and organisation management."""

from __future__ import annotations

import logging
import re
from typing import Annotated

import jwt
from fastapi import APIRouter, Depends, Header, Query, Request, Response, status
from prometheus_client import Counter
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..config import Settings
from ..domain.auth_service import AuthService
from ..domain.contracts import CreateOrganisationInput, Principal, UpdateOrganisationInput
from ..domain.errors import ErrorKind, ServiceError
from ..domain.organisation import OrganisationStatus, OrganisationView
from ..domain.organisation_service import OrganisationService
from ..domain.user import UserStatus
from ..security.rate_limiter import RateLimiter, login_rate_key
from ..security.tokens import TokenSigner

logger = logging.getLogger(__name__)

LOGIN_ATTEMPTS = Counter(
    "tenant_api_login_attempts_total",
    "Login attempts by outcome.",
    ["outcome"],
)

EMAIL_PATTERN = re.compile(
    r"[a-z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)*",
    re.IGNORECASE,
)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
organisations_router = APIRouter(prefix="/organisations", tags=["organisations"])


def _check_email_syntax(value: str) -> str:
    if not EMAIL_PATTERN.fullmatch(value.strip()):
        raise ValueError("value is not a valid email address")
    return value


LoginEmail = Annotated[str, AfterValidator(_check_email_syntax)]


class ApiModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(ApiModel):
    """Credentials submitted to ``POST /auth/login``."""

    model_config = ConfigDict(extra="forbid")

    email: LoginEmail
    password: str = Field(..., min_length=1)


class UserResponse(ApiModel):
    id: str
    email: str
    status: UserStatus
    org_id: str | None
    role_id: str | None
    designation_id: str | None
    mobile_number: str | None
    last_login_at: str


class LoginResponse(ApiModel):
    """Token pair issued for a new session along with the authenticated user."""

    access_token: str
    refresh_token: str
    user: UserResponse


class OrganisationResponse(ApiModel):
    """Serialised representation of an organisation."""

    id: str
    name: str
    slug: str
    status: OrganisationStatus
    created_at: str
    updated_at: str

    @classmethod
    def from_view(cls, view: OrganisationView) -> "OrganisationResponse":
        return cls(
            id=view.id,
            name=view.name,
            slug=view.slug,
            status=OrganisationStatus(view.status),
            created_at=view.created_at,
            updated_at=view.updated_at,
        )


class OrganisationListResponse(ApiModel):
    data: list[OrganisationResponse]
    count: int


class CreateOrganisationRequest(ApiModel):
    """Payload accepted when creating an organisation."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    status: OrganisationStatus | None = None


class UpdateOrganisationRequest(ApiModel):
    """Partial update; omitted fields are left untouched and explicit nulls are rejected."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1)
    slug: str | None = Field(default=None, min_length=1)
    status: OrganisationStatus | None = None

    @field_validator("name", "slug", "status")
    @classmethod
    def reject_explicit_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value


def get_settings_state(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_auth_service(request: Request) -> AuthService:
    """Resolve the `AuthService` stored on the FastAPI application state."""
    service: AuthService = request.app.state.auth_service
    return service


def get_organisation_service(request: Request) -> OrganisationService:
    """Resolve the `OrganisationService` stored on the FastAPI application state."""
    service: OrganisationService = request.app.state.organisation_service
    return service


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter: RateLimiter = request.app.state.rate_limiter
    return limiter


def require_principal(
    request: Request,
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings_state),
) -> Principal:
    """Verify the bearer access token and return the caller it identifies."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise ServiceError(ErrorKind.unauthorized, "Missing bearer token")

    signer: TokenSigner = request.app.state.token_signer
    try:
        claims = signer.verify(token.strip(), settings.jwt_access_secret, token_type="access")
    except jwt.PyJWTError as exc:
        logger.info("rejected access token on %s: %s", request.url.path, exc)
        raise ServiceError(ErrorKind.unauthorized, "Invalid or expired access token") from exc

    return Principal(
        user_id=claims["sub"],
        email=claims.get("email", ""),
        session_id=claims.get("session_id", ""),
        org_id=claims.get("org_id"),
        role_id=claims.get("role_id"),
        designation_id=claims.get("designation_id"),
    )


@auth_router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> LoginResponse:
    """Authenticate with email and password and receive an access/refresh token pair."""
    if not limiter.allow(login_rate_key(payload.email)):
        LOGIN_ATTEMPTS.labels(outcome="rate_limited").inc()
        raise ServiceError(ErrorKind.rate_limited, "Too many login attempts, try again later")

    try:
        result = service.login(payload.email, payload.password)
    except ServiceError as exc:
        LOGIN_ATTEMPTS.labels(outcome=exc.kind.value).inc()
        raise

    LOGIN_ATTEMPTS.labels(outcome="success").inc()
    user = result.user
    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=UserResponse(
            id=user.id,
            email=user.email,
            status=UserStatus(user.status),
            org_id=user.org_id,
            role_id=user.role_id,
            designation_id=user.designation_id,
            mobile_number=user.mobile_number,
            last_login_at=user.last_login_at,
        ),
    )


@organisations_router.get("", response_model=OrganisationListResponse)
def list_organisations(
    status_filter: OrganisationStatus | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_principal),
    service: OrganisationService = Depends(get_organisation_service),
) -> OrganisationListResponse:
    """List organisations, newest first, optionally filtered by status."""
    views = service.list(status_filter, actor=principal)
    items = [OrganisationResponse.from_view(view) for view in views]
    return OrganisationListResponse(data=items, count=len(items))


@organisations_router.get("/{organisation_id}", response_model=OrganisationResponse)
def get_organisation(
    organisation_id: str,
    principal: Principal = Depends(require_principal),
    service: OrganisationService = Depends(get_organisation_service),
) -> OrganisationResponse:
    return OrganisationResponse.from_view(service.get_by_id(organisation_id, actor=principal))


@organisations_router.post(
    "", response_model=OrganisationResponse, status_code=status.HTTP_201_CREATED
)
def create_organisation(
    payload: CreateOrganisationRequest,
    principal: Principal = Depends(require_principal),
    service: OrganisationService = Depends(get_organisation_service),
) -> OrganisationResponse:
    view = service.create(
        CreateOrganisationInput(name=payload.name, slug=payload.slug, status=payload.status),
        actor=principal,
    )
    return OrganisationResponse.from_view(view)


@organisations_router.patch("/{organisation_id}", response_model=OrganisationResponse)
def update_organisation(
    organisation_id: str,
    payload: UpdateOrganisationRequest,
    principal: Principal = Depends(require_principal),
    service: OrganisationService = Depends(get_organisation_service),
) -> OrganisationResponse:
    view = service.update(
        organisation_id,
        UpdateOrganisationInput(name=payload.name, slug=payload.slug, status=payload.status),
        actor=principal,
    )
    return OrganisationResponse.from_view(view)


@organisations_router.delete("/{organisation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_organisation(
    organisation_id: str,
    principal: Principal = Depends(require_principal),
    service: OrganisationService = Depends(get_organisation_service),
) -> Response:
    service.delete(organisation_id, actor=principal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


router = APIRouter()
router.include_router(auth_router)
router.include_router(organisations_router)
