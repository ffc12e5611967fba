"""Provider catalog endpoints."""

import structlog
from fastapi import APIRouter, Depends, Response

from billsync.api.dependencies import get_components
from billsync.api.schemas import CreateProviderRequest, UpdateProviderRequest
from billsync.models.bill import Provider
from billsync.orchestrator import AppComponents
from billsync.services.providers import ProviderNotFoundError
from billsync.services.storage import DuplicateError

router = APIRouter(prefix="/providers", tags=["providers"])

logger = structlog.get_logger(__name__)


@router.post("", response_model=Provider, status_code=201)
async def create_provider(
    request: CreateProviderRequest,
    components: AppComponents = Depends(get_components),
):
    provider = await components.repository.create_provider(
        Provider(**request.model_dump())
    )
    components.register_provider(provider)
    return provider


@router.get("", response_model=list[Provider])
async def list_providers(components: AppComponents = Depends(get_components)):
    return await components.repository.list_providers()


@router.get("/{provider_id}", response_model=Provider)
async def get_provider(
    provider_id: str,
    components: AppComponents = Depends(get_components),
):
    provider = await components.repository.get_provider_by_id(provider_id)
    if provider is None:
        raise ProviderNotFoundError(provider_id)
    return provider


@router.put("/{provider_id}", response_model=Provider)
async def update_provider(
    provider_id: str,
    request: UpdateProviderRequest,
    components: AppComponents = Depends(get_components),
):
    """
    Partial update of a catalog entry.

    The adapter is rebuilt so a changed api_endpoint takes effect on the
    next fetch. Cached bills are left to expire on their own TTL.
    """
    repository = components.repository
    provider = await repository.get_provider_by_id(provider_id)
    if provider is None:
        raise ProviderNotFoundError(provider_id)

    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes and changes["name"] != provider.name:
        holder = await repository.get_provider_by_name(changes["name"])
        if holder is not None and holder.id != provider_id:
            raise DuplicateError(f"Provider name already taken: {changes['name']}")

    updated = await repository.update_provider(
        Provider.model_validate({**provider.model_dump(), **changes})
    )
    components.replace_provider(updated)
    logger.info("provider_updated", provider_id=provider_id, fields=sorted(changes))
    return updated


@router.delete("/{provider_id}", status_code=204)
async def delete_provider(
    provider_id: str,
    components: AppComponents = Depends(get_components),
):
    """
    Remove a provider from the catalog and drop its adapter.

    Accounts still linked to it fail their next fetch with
    ProviderNotFoundError until they are unlinked.
    """
    if not await components.repository.delete_provider(provider_id):
        raise ProviderNotFoundError(provider_id)
    components.unregister_provider(provider_id)
    logger.info("provider_deleted", provider_id=provider_id)
    return Response(status_code=204)
