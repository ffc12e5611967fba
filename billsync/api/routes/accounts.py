"""Linked account endpoints."""

from fastapi import APIRouter, Depends, Response

from billsync.accounts import AccountNotFoundError
from billsync.api.dependencies import get_components, get_user_id
from billsync.api.schemas import LinkAccountRequest
from billsync.models.bill import LinkedAccount, LinkedAccountResponse
from billsync.orchestrator import AppComponents

router = APIRouter(prefix="/accounts", tags=["accounts"])


async def _owned_account(
    account_id: str,
    user_id: str,
    components: AppComponents,
) -> LinkedAccount:
    """Another user's account is reported as missing."""
    account = await components.account_flow.get_linked_account(account_id)
    if account.user_id != user_id:
        raise AccountNotFoundError(account_id)
    return account


@router.post("", response_model=LinkedAccountResponse, status_code=201)
async def link_account(
    request: LinkAccountRequest,
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    account = await components.account_flow.link_account(
        user_id=user_id,
        provider_id=request.provider_id,
        account_id=request.account_id,
        credentials=request.credentials,
    )
    return LinkedAccountResponse.from_account(account)


@router.get("", response_model=list[LinkedAccountResponse])
async def list_accounts(
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    accounts = await components.account_flow.get_linked_accounts(user_id)
    return [LinkedAccountResponse.from_account(account) for account in accounts]


@router.get("/{account_id}", response_model=LinkedAccountResponse)
async def get_account(
    account_id: str,
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    account = await _owned_account(account_id, user_id, components)
    return LinkedAccountResponse.from_account(account)


@router.delete("/{account_id}", status_code=204)
async def unlink_account(
    account_id: str,
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    await _owned_account(account_id, user_id, components)
    await components.account_flow.unlink_account(account_id)
    return Response(status_code=204)


@router.post("/{account_id}/status", response_model=LinkedAccountResponse)
async def refresh_account_status(
    account_id: str,
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    await _owned_account(account_id, user_id, components)
    account = await components.account_flow.refresh_account_status(account_id)
    return LinkedAccountResponse.from_account(account)
