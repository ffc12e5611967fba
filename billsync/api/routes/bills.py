"""Bill endpoints: live fetch, stored summary and refresh."""

from fastapi import APIRouter, Depends

from billsync.api.dependencies import get_components, get_user_id
from billsync.api.schemas import MessageResponse
from billsync.models.bill import BillSummary
from billsync.orchestrator import AppComponents

router = APIRouter(prefix="/bills", tags=["bills"])


@router.get("", response_model=BillSummary)
async def get_bills(
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    return await components.fetch_orchestrator.fetch_bills(user_id)


@router.get("/summary", response_model=BillSummary)
async def get_bill_summary(
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    return await components.summary_reader.get_bill_summary(user_id)


@router.get("/provider/{provider_id}", response_model=BillSummary)
async def get_bills_by_provider(
    provider_id: str,
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    return await components.fetch_orchestrator.fetch_bills_by_provider(user_id, provider_id)


@router.post("/refresh", response_model=MessageResponse)
async def refresh_bills(
    user_id: str = Depends(get_user_id),
    components: AppComponents = Depends(get_components),
):
    await components.refresh_orchestrator.refresh_bills(user_id)
    return MessageResponse(message="Bill refresh completed")
