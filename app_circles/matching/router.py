"""
FastAPI router for matching endpoints.

Provides endpoints to run matching and to approve, resend and delete the
groups it creates. Access control is applied by the host application.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from common.utils import success_response, list_response
from common.utils.exceptions import ValidationException
from app_circles.matching.dependencies import get_matching_service, get_lifecycle_service
from app_circles.matching.services.lifecycle_service import GroupLifecycleService
from app_circles.matching.services.matching_service import MatchingService
from app_circles.schemas.group import Group, GroupStatus
from app_circles.schemas.matching import BucketError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matching", tags=["matching"])


def _format_group(group: Group) -> dict:
    """Format group for response."""
    return {
        "id": group.id,
        "name": group.name,
        "city": group.location.city,
        "regionCode": group.location.region_code,
        "lifeStage": group.life_stage.value,
        "memberIds": group.member_ids,
        "status": group.status.value,
        "notifiedMemberIds": group.notified_member_ids,
        "version": group.version,
        "createdAt": group.created_at,
        "approvedAt": group.approved_at,
        "notifiedAt": group.notified_at,
        "deletedAt": group.deleted_at,
    }


def _format_bucket_error(error: BucketError) -> dict:
    return {
        "city": error.city,
        "regionCode": error.region_code,
        "lifeStage": error.life_stage.value,
        "message": error.message,
    }


@router.post("/run")
async def run_matching(
    matching_service: Annotated[MatchingService, Depends(get_matching_service)],
    city: Optional[str] = Query(None, description="Only match users in this city"),
    region_code: Optional[str] = Query(None, description="Region code of the city filter"),
):
    """Run the matching algorithm over the eligible pool."""
    if bool(city) != bool(region_code):
        raise ValidationException(
            message="city and region_code must be given together",
            code="INVALID_LOCATION_FILTER",
        )

    summary = await matching_service.run(city=city, region_code=region_code)

    return success_response({
        "groupsCreated": [_format_group(g) for g in summary.groups_created],
        "usersMatched": summary.users_matched,
        "usersUnmatched": summary.users_unmatched,
        "perBucketErrors": [_format_bucket_error(e) for e in summary.per_bucket_errors],
    }, message=summary.summary)


@router.get("/groups")
async def list_groups(
    lifecycle_service: Annotated[GroupLifecycleService, Depends(get_lifecycle_service)],
    status: Optional[GroupStatus] = Query(None, description="Filter by group status"),
    limit: int = Query(100, ge=1, le=500),
):
    """List groups, newest first."""
    groups = await lifecycle_service.list_groups(status=status, limit=limit)
    return list_response([_format_group(g) for g in groups])


@router.get("/groups/{group_id}")
async def get_group(
    group_id: str,
    lifecycle_service: Annotated[GroupLifecycleService, Depends(get_lifecycle_service)],
):
    """Get group by ID."""
    group = await lifecycle_service.get_group(group_id)
    return success_response(_format_group(group))


@router.post("/groups/{group_id}/approve")
async def approve_group(
    group_id: str,
    lifecycle_service: Annotated[GroupLifecycleService, Depends(get_lifecycle_service)],
):
    """Approve a pending group and email its members."""
    result = await lifecycle_service.approve(group_id)
    return success_response({
        "groupId": result.group_id,
        "status": result.status.value,
        "notified": result.notified,
        "failed": result.failed,
    }, message=f"Emails sent to {len(result.notified)} members")


@router.post("/groups/{group_id}/resend")
async def resend_introductions(
    group_id: str,
    lifecycle_service: Annotated[GroupLifecycleService, Depends(get_lifecycle_service)],
):
    """Retry introductions for members of an active group who were not reached."""
    result = await lifecycle_service.resend(group_id)
    return success_response({
        "groupId": result.group_id,
        "status": result.status.value,
        "notified": result.notified,
        "failed": result.failed,
    }, message=f"Emails sent to {len(result.notified)} members")


@router.delete("/groups/{group_id}")
async def delete_group(
    group_id: str,
    lifecycle_service: Annotated[GroupLifecycleService, Depends(get_lifecycle_service)],
):
    """Delete a group and return its members to the matching pool."""
    result = await lifecycle_service.delete(group_id)
    return success_response({
        "groupId": result.group_id,
        "returnedToPool": result.returned_to_pool,
        "skipped": result.skipped,
    }, message=f"Group deleted, {len(result.returned_to_pool)} members returned to pool")
