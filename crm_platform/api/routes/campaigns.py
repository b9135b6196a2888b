"""
Campaign API routes.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from crm_platform.api.dependencies import ServiceContainer, get_dispatcher, get_services
from crm_platform.api.middleware.error_handler import NotFoundException
from crm_platform.models.campaigns import CampaignStatus
from crm_platform.models.communication_log import DeliveryStatus
from crm_platform.schemas.campaigns import (
    CampaignCreate,
    CampaignRead,
    CampaignStats,
    CommunicationLogRead,
    LaunchResponse,
)
from crm_platform.services.campaign_dispatcher import CampaignDispatcher


router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


@router.get("", response_model=List[CampaignRead])
def list_campaigns(
    user_id: Optional[int] = Query(None, alias="userId", description="Filter by owner"),
    campaign_status: Optional[CampaignStatus] = Query(None, alias="status"),
    services: ServiceContainer = Depends(get_services),
):
    """List campaigns, newest first."""
    return services.store.list_campaigns(user_id=user_id, status=campaign_status)


@router.post("", response_model=CampaignRead, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    payload: CampaignCreate,
    dispatcher: CampaignDispatcher = Depends(get_dispatcher),
):
    """
    Create a campaign.

    With launch=true (the default) the campaign is launched immediately and
    returned as active; deliveries continue in the background.
    """
    return await dispatcher.create_campaign(payload)


@router.get("/{campaign_id}", response_model=CampaignRead)
def get_campaign(
    campaign_id: int,
    services: ServiceContainer = Depends(get_services),
):
    campaign = services.store.get_campaign(campaign_id)
    if campaign is None:
        raise NotFoundException("Campaign", campaign_id)
    return campaign


@router.post("/{campaign_id}/launch", response_model=LaunchResponse)
async def launch_campaign(
    campaign_id: int,
    dispatcher: CampaignDispatcher = Depends(get_dispatcher),
):
    """
    Launch a draft campaign.

    Returns 404 for an unknown campaign and 409 when it is not a draft.
    """
    result = await dispatcher.launch(campaign_id)
    return LaunchResponse(
        campaign=CampaignRead.model_validate(result.campaign),
        audience_size=result.audience_size,
        message_ids=result.message_ids,
    )


@router.get("/{campaign_id}/logs", response_model=List[CommunicationLogRead])
def list_campaign_logs(
    campaign_id: int,
    log_status: Optional[DeliveryStatus] = Query(None, alias="status"),
    services: ServiceContainer = Depends(get_services),
):
    """Communication log rows of one campaign."""
    if services.store.get_campaign(campaign_id) is None:
        raise NotFoundException("Campaign", campaign_id)
    return services.store.list_logs(campaign_id, status=log_status)


@router.get("/{campaign_id}/stats", response_model=CampaignStats)
async def get_campaign_stats(
    campaign_id: int,
    services: ServiceContainer = Depends(get_services),
):
    """Recompute and return the campaign's delivery aggregates."""
    return await services.analytics.campaign_stats(campaign_id)
