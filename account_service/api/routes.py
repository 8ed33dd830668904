"""HTTP route definitions for the account service."""

from __future__ import annotations

import logging

from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field

from ..domain.account import Account, AccountFilter, AccountStatus, AccountType
from ..domain.contracts import (
    AccountBaseUpdate,
    AccountRoleUpdate,
    AccountStatusUpdate,
    IdentityHint,
    PasswordChange,
)
from ..domain.service import AccountService
from ..errors import (
    AccountError,
    AuthenticationFailed,
    ConflictError,
    DependencyError,
    DependencyTimeout,
    NotFoundError,
    PreconditionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` aggregate."""

    account_id: str
    username: str
    email: str
    role: str
    account_type: AccountType
    status: AccountStatus
    first_name: str
    last_name: str
    tags: list[str]
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            account_id=account.account_id,
            username=account.username,
            email=account.email,
            role=account.role,
            account_type=account.account_type,
            status=account.status,
            first_name=account.first_name,
            last_name=account.last_name,
            tags=list(account.tags),
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class AccountListResponse(BaseModel):
    items: list[AccountResponse]
    total: int


class CreateAccountRequest(BaseModel):
    """Payload accepted when creating an account."""

    username: str
    email: str
    role: str = ""
    account_type: AccountType = AccountType.NONE
    status: AccountStatus = AccountStatus.NONE
    first_name: str = ""
    last_name: str = ""
    tags: list[str] = Field(default_factory=list)


class UpdateBaseRequest(BaseModel):
    tags: list[str] = Field(default_factory=list)
    first_name: str = ""
    last_name: str = ""


class UpdateStatusRequest(BaseModel):
    status: AccountStatus


class UpdateRoleRequest(BaseModel):
    role: str


class ChangePasswordRequest(BaseModel):
    password: str = Field(..., repr=False)


class AuthenticateRequest(BaseModel):
    """Login payload; the username is used when both identifiers are given."""

    username: str = ""
    email: str = ""
    password: str = Field(..., repr=False)


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_actor_id(actor_id: str = Header(default="", alias="X-Actor-ID")) -> str:
    """Return the requesting identity used for the audit trail."""
    return actor_id


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: CreateAccountRequest,
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> AccountResponse:
    """Create an account after validation and uniqueness checks."""
    draft = Account(
        username=payload.username,
        email=payload.email,
        role=payload.role,
        account_type=payload.account_type,
        status=payload.status,
        first_name=payload.first_name,
        last_name=payload.last_name,
        tags=list(payload.tags),
    )
    try:
        account = service.create_account(draft, actor_id=actor_id)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.get("/accounts", response_model=AccountListResponse)
def find_accounts(
    username: str | None = Query(default=None),
    email: str | None = Query(default=None),
    account_status: AccountStatus | None = Query(default=None, alias="status"),
    role: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> AccountListResponse:
    """Return accounts matching at least one filter field."""
    account_filter = AccountFilter(
        username=username,
        email=email,
        status=account_status,
        role=role,
        limit=limit,
        offset=offset,
    )
    try:
        result = service.find_accounts(account_filter, actor_id=actor_id)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountListResponse(
        items=[AccountResponse.from_domain(account) for account in result.accounts],
        total=result.total,
    )


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> AccountResponse:
    try:
        account = service.get_account(account_id, actor_id=actor_id)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.patch("/accounts/{account_id}/base", response_model=AccountResponse)
def update_account_base(
    account_id: str,
    payload: UpdateBaseRequest,
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> AccountResponse:
    update = AccountBaseUpdate(
        account_id=account_id,
        tags=list(payload.tags),
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    try:
        account = service.update_account_base(update, actor_id=actor_id)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.patch("/accounts/{account_id}/status", response_model=AccountResponse)
def update_account_status(
    account_id: str,
    payload: UpdateStatusRequest,
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> AccountResponse:
    try:
        account = service.update_account_status(
            AccountStatusUpdate(account_id=account_id, status=payload.status), actor_id=actor_id
        )
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.patch("/accounts/{account_id}/role", response_model=AccountResponse)
def update_account_role(
    account_id: str,
    payload: UpdateRoleRequest,
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> AccountResponse:
    try:
        account = service.update_account_role(
            AccountRoleUpdate(account_id=account_id, role=payload.role), actor_id=actor_id
        )
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.delete("/accounts/{account_id}", response_model=AccountResponse)
def delete_account(
    account_id: str,
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> AccountResponse:
    """Delete an account together with its credential and cached credential."""
    try:
        account = service.get_account(account_id, actor_id=actor_id)
        deleted = service.delete_account(account, actor_id=actor_id)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(deleted)


@router.put("/accounts/{account_id}/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    account_id: str,
    payload: ChangePasswordRequest,
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> Response:
    try:
        service.change_password(
            PasswordChange(account_id=account_id, password=payload.password), actor_id=actor_id
        )
    except AccountError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/authenticate", response_model=AccountResponse)
def authenticate(
    payload: AuthenticateRequest,
    service: AccountService = Depends(get_service),
    actor_id: str = Depends(get_actor_id),
) -> AccountResponse:
    """Verify a password and return the matching account."""
    try:
        account = service.authenticate(
            IdentityHint(username=payload.username, email=payload.email),
            payload.password,
            actor_id=actor_id,
        )
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


def _http_error(exc: AccountError) -> HTTPException:
    if isinstance(exc, ValidationError):
        violation = exc.violation
        return HTTPException(
            status_code=422,
            detail={"field": violation.field, "code": violation.code.value, "message": violation.message},
        )
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PreconditionError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, AuthenticationFailed):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, DependencyTimeout):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="dependency timed out")
    if isinstance(exc, DependencyError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="dependency unavailable")
    logger.error("unexpected account error: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="request failed")
