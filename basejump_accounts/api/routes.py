"""HTTP route definitions for the accounts service."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from ..domain.account import Account, AccountRole, Membership
from ..domain.contracts import CallerContext, CreateAccountInput
from ..domain.errors import (
    AccountPermissionError,
    AccountsError,
    DuplicateAccountError,
    DuplicateMembershipError,
    DuplicateSlugError,
    NotFoundError,
)
from ..domain.lifecycle import AccountLifecycle
from ..domain.policy import PolicyGate
from ..security.tokens import caller_from_claims, decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` aggregate."""

    id: str
    name: str | None
    slug: str | None
    personal_account: bool
    primary_owner_user_id: str
    public_metadata: dict[str, Any]
    private_metadata: dict[str, Any]
    created_at: datetime | None
    updated_at: datetime | None
    created_by: str | None
    updated_by: str | None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            id=account.id,
            name=account.name,
            slug=account.slug,
            personal_account=account.personal_account,
            primary_owner_user_id=account.primary_owner_user_id,
            public_metadata=account.public_metadata,
            private_metadata=account.private_metadata,
            created_at=account.created_at,
            updated_at=account.updated_at,
            created_by=account.created_by,
            updated_by=account.updated_by,
        )


class CreateAccountRequest(BaseModel):
    """Payload accepted when creating a team account."""

    name: str | None = None
    slug: str
    primary_owner_user_id: str | None = None
    public_metadata: dict[str, Any] = Field(default_factory=dict)
    private_metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateAccountRequest(BaseModel):
    """Partial update; only fields present in the body are applied."""

    name: str | None = None
    slug: str | None = None
    personal_account: bool | None = None
    primary_owner_user_id: str | None = None
    public_metadata: dict[str, Any] | None = None
    private_metadata: dict[str, Any] | None = None


class MembershipResponse(BaseModel):
    user_id: str
    account_id: str
    account_role: AccountRole

    @classmethod
    def from_domain(cls, membership: Membership) -> "MembershipResponse":
        return cls(
            user_id=membership.user_id,
            account_id=membership.account_id,
            account_role=membership.account_role,
        )


class AddMemberRequest(BaseModel):
    user_id: str
    account_role: AccountRole = AccountRole.member


class UpdateMemberRequest(BaseModel):
    account_role: AccountRole


class CurrentRoleResponse(BaseModel):
    """Caller's standing on an account."""

    account_id: str
    account_role: AccountRole | None
    is_primary_owner: bool
    is_personal_account: bool


class UserRegisteredEvent(BaseModel):
    """Registration event forwarded by the identity provider."""

    user_id: str
    email: str | None = None


def get_policy(request: Request) -> PolicyGate:
    """Resolve the `PolicyGate` stored on the FastAPI application state."""
    policy: PolicyGate = request.app.state.policy_gate
    return policy


def get_lifecycle(request: Request) -> AccountLifecycle:
    lifecycle: AccountLifecycle = request.app.state.account_lifecycle
    return lifecycle


def get_caller(authorization: str | None = Header(default=None)) -> CallerContext:
    """Derive the caller context from an optional bearer token."""
    if not authorization:
        return CallerContext.anonymous()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid authorization header")
    try:
        claims = decode_access_token(token)
    except jwt.PyJWTError as exc:
        logger.info("rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token") from exc
    return caller_from_claims(claims)


def require_caller(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    if not caller.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication required")
    return caller


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: CreateAccountRequest,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> AccountResponse:
    """Create a team account; the caller becomes its owner when they are the primary owner."""
    try:
        account = policy.create_account(
            caller,
            CreateAccountInput(
                name=payload.name,
                slug=payload.slug,
                primary_owner_user_id=payload.primary_owner_user_id,
                public_metadata=payload.public_metadata,
                private_metadata=payload.private_metadata,
            ),
        )
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.get("/accounts", response_model=list[AccountResponse])
def list_accounts(
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> list[AccountResponse]:
    """List the accounts the caller belongs to."""
    return [AccountResponse.from_domain(account) for account in policy.list_accounts(caller)]


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> AccountResponse:
    try:
        account = policy.get_account(caller, account_id)
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.patch("/accounts/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: str,
    payload: UpdateAccountRequest,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> AccountResponse:
    try:
        account = policy.update_account(caller, account_id, payload.model_dump(exclude_unset=True))
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    account_id: str,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> Response:
    try:
        policy.delete_account(caller, account_id)
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/accounts/{account_id}/role", response_model=CurrentRoleResponse)
def current_role(
    account_id: str,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> CurrentRoleResponse:
    """Return the caller's role on the account, mirroring ``current_user_account_role``."""
    try:
        account = policy.get_account(caller, account_id)
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return CurrentRoleResponse(
        account_id=account.id,
        account_role=policy.current_role(caller, account_id),
        is_primary_owner=account.primary_owner_user_id == caller.user_id,
        is_personal_account=account.personal_account,
    )


@router.get("/accounts/{account_id}/members", response_model=list[MembershipResponse])
def list_members(
    account_id: str,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> list[MembershipResponse]:
    try:
        members = policy.list_members(caller, account_id)
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return [MembershipResponse.from_domain(member) for member in members]


@router.post(
    "/accounts/{account_id}/members",
    response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_member(
    account_id: str,
    payload: AddMemberRequest,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> MembershipResponse:
    try:
        membership = policy.add_member(caller, account_id, payload.user_id, payload.account_role)
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return MembershipResponse.from_domain(membership)


@router.patch("/accounts/{account_id}/members/{user_id}", response_model=MembershipResponse)
def update_member(
    account_id: str,
    user_id: str,
    payload: UpdateMemberRequest,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> MembershipResponse:
    try:
        membership = policy.update_member(caller, account_id, user_id, payload.account_role)
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return MembershipResponse.from_domain(membership)


@router.delete("/accounts/{account_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    account_id: str,
    user_id: str,
    caller: CallerContext = Depends(require_caller),
    policy: PolicyGate = Depends(get_policy),
) -> Response:
    try:
        policy.remove_member(caller, account_id, user_id)
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/hooks/user-registered",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
)
def user_registered(
    event: UserRegisteredEvent,
    caller: CallerContext = Depends(require_caller),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
) -> AccountResponse:
    """Provision the personal account for a newly registered user."""
    if not caller.privileged:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="service role required")
    try:
        account = lifecycle.on_user_registered(event.user_id, event.email)
    except AccountsError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return AccountResponse.from_domain(account)


def _http_error_from_domain_error(exc: AccountsError) -> HTTPException:
    status_code = status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, AccountPermissionError):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, (DuplicateSlugError, DuplicateAccountError, DuplicateMembershipError)):
        status_code = status.HTTP_409_CONFLICT
    return HTTPException(status_code=status_code, detail=str(exc))
