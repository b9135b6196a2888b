"""
Segment service - CRUD over segments with an audience size snapshot.

audience_size is computed when a segment is written and is NOT kept in
sync with later customer changes; previews and launches always count live.
"""
from typing import List, Optional

from crm_platform.api.middleware.error_handler import ConflictException, NotFoundException
from crm_platform.lib.logging import get_logger
from crm_platform.models.segments import Segment
from crm_platform.schemas.segments import (
    SegmentCreate,
    SegmentRule,
    SegmentUpdate,
    normalize_rules,
    rules_from_json,
    rules_to_json,
)
from crm_platform.services.audience_service import AudienceSelector
from crm_platform.stores.base import CrmStore

logger = get_logger(__name__)


class SegmentService:
    """Service for defining and maintaining audience segments."""

    def __init__(self, store: CrmStore, selector: Optional[AudienceSelector] = None):
        self.store = store
        self.selector = selector or AudienceSelector(store)

    def create_segment(self, payload: SegmentCreate) -> Segment:
        """
        Create a segment, normalizing its rules and snapshotting audience size.

        Args:
            payload: Segment definition

        Returns:
            Persisted segment
        """
        rules = normalize_rules(payload.rules)
        audience_size = self.selector.count(rules)

        segment = self.store.create_segment(
            Segment(
                name=payload.name,
                description=payload.description,
                rules=rules_to_json(rules),
                audience_size=audience_size,
                user_id=payload.user_id,
            )
        )
        logger.info(
            f"Segment {segment.id} created with {len(rules)} rules, audience {audience_size}",
            extra={"segment_id": segment.id},
        )
        return segment

    def get_segment(self, segment_id: int) -> Segment:
        segment = self.store.get_segment(segment_id)
        if segment is None:
            raise NotFoundException("Segment", segment_id)
        return segment

    def list_segments(self, user_id: Optional[int] = None) -> List[Segment]:
        return self.store.list_segments(user_id=user_id)

    def update_segment(self, segment_id: int, payload: SegmentUpdate) -> Segment:
        """Apply a partial update; the audience snapshot is refreshed when rules change."""
        self.get_segment(segment_id)

        changes = payload.model_dump(exclude_unset=True, exclude={"rules"})
        if payload.rules is not None:
            rules = normalize_rules(payload.rules)
            changes["rules"] = rules_to_json(rules)
            changes["audience_size"] = self.selector.count(rules)

        segment = self.store.update_segment(segment_id, **changes)
        if segment is None:
            raise NotFoundException("Segment", segment_id)
        logger.info(f"Segment {segment_id} updated: {sorted(changes)}")
        return segment

    def delete_segment(self, segment_id: int) -> None:
        """Delete a segment no campaign refers to."""
        self.get_segment(segment_id)

        campaigns = self.store.list_campaigns(segment_id=segment_id)
        if campaigns:
            raise ConflictException(
                f"Segment {segment_id} is used by {len(campaigns)} campaign(s)",
                details={"campaign_ids": [c.id for c in campaigns]},
            )

        self.store.delete_segment(segment_id)
        logger.info(f"Segment {segment_id} deleted")

    def preview_audience(self, rules: List[SegmentRule]) -> int:
        """Live audience count for an unsaved rule chain."""
        return self.selector.count(normalize_rules(rules))

    def segment_rules(self, segment: Segment) -> List[SegmentRule]:
        return rules_from_json(segment.rules)
