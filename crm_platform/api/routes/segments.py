"""
Segment API routes: CRUD, live audience preview and natural-language rule generation.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from crm_platform.ai.rule_generator import RuleGenerationError, RuleGenerator
from crm_platform.api.dependencies import get_rule_generator, get_segment_service
from crm_platform.api.middleware.error_handler import AppException, ServiceUnavailableException
from crm_platform.lib.logging import get_logger
from crm_platform.schemas.segments import (
    AudiencePreviewRequest,
    AudiencePreviewResponse,
    RuleGenerationRequest,
    RuleGenerationResponse,
    SegmentCreate,
    SegmentRead,
    SegmentUpdate,
)
from crm_platform.services.segment_service import SegmentService

logger = get_logger(__name__)


router = APIRouter(prefix="/api/segments", tags=["segments"])


@router.get("", response_model=List[SegmentRead])
def list_segments(
    user_id: Optional[int] = Query(None, alias="userId", description="Filter by owner"),
    segments: SegmentService = Depends(get_segment_service),
):
    return segments.list_segments(user_id=user_id)


@router.post("", response_model=SegmentRead, status_code=status.HTTP_201_CREATED)
def create_segment(
    payload: SegmentCreate,
    segments: SegmentService = Depends(get_segment_service),
):
    """Create a segment; audienceSize is the live count at creation time."""
    return segments.create_segment(payload)


@router.post("/preview", response_model=AudiencePreviewResponse)
def preview_audience(
    payload: AudiencePreviewRequest,
    segments: SegmentService = Depends(get_segment_service),
):
    """Count the customers an unsaved rule chain selects right now."""
    return AudiencePreviewResponse(audience_size=segments.preview_audience(payload.rules))


@router.post("/ai-generate", response_model=RuleGenerationResponse)
def generate_rules(
    payload: RuleGenerationRequest,
    generator: RuleGenerator = Depends(get_rule_generator),
):
    """
    Turn a natural-language audience description into a rule chain.

    Returns 503 when no rule generator is configured and 502 when the
    generator fails.
    """
    if not generator.is_available():
        raise ServiceUnavailableException("Rule generation is not configured")

    try:
        rules = generator.generate_rules(payload.query)
    except RuleGenerationError as e:
        logger.warning(f"Rule generation failed: {e}")
        raise AppException(
            "Failed to generate segment rules from natural language query",
            status_code=status.HTTP_502_BAD_GATEWAY,
        ) from e

    return RuleGenerationResponse(rules=rules)


@router.get("/{segment_id}", response_model=SegmentRead)
def get_segment(
    segment_id: int,
    segments: SegmentService = Depends(get_segment_service),
):
    return segments.get_segment(segment_id)


@router.patch("/{segment_id}", response_model=SegmentRead)
def update_segment(
    segment_id: int,
    payload: SegmentUpdate,
    segments: SegmentService = Depends(get_segment_service),
):
    """Partial update; the audience snapshot is refreshed when rules change."""
    return segments.update_segment(segment_id, payload)


@router.delete("/{segment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_segment(
    segment_id: int,
    segments: SegmentService = Depends(get_segment_service),
):
    """Delete a segment. Returns 409 while a campaign refers to it."""
    segments.delete_segment(segment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
