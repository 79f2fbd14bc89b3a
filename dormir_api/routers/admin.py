import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional
from dormir_api.auth.firebase_auth import get_current_user_id, require_admin
from dormir_api.core.errors import AppError
from dormir_api.core.moderation import ModerationEngine, get_moderation_engine
from dormir_api.models.modification import (
    ApproveRequest,
    ModerationStats,
    ModificationStatus,
    ModificationType,
    PendingModification,
    RejectRequest,
)
from dormir_api.models.poi import Comment
from dormir_api.models.user import UserInDB

router = APIRouter(prefix="/admin", tags=["Moderation"])
logger = logging.getLogger(__name__)


# Open to every authenticated user, declared before the admin-only routes
@router.get("/user/contributions", response_model=List[PendingModification])
async def get_user_contributions(current_user_id: str = Depends(get_current_user_id),
                                 engine: ModerationEngine = Depends(get_moderation_engine)):
    try:
        return await engine.list_user_contributions(current_user_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to retrieve contributions for %s", current_user_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to retrieve contributions: {e}")


@router.get("/pending", response_model=List[PendingModification])
async def get_pending_modifications(type: Optional[ModificationType] = None,
                                    status_filter: ModificationStatus = Query("pending", alias="status"),
                                    admin: UserInDB = Depends(require_admin),
                                    engine: ModerationEngine = Depends(get_moderation_engine)):
    try:
        return await engine.list_pending(type=type, status=status_filter)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to retrieve pending modifications")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to retrieve modifications: {e}")


@router.get("/stats", response_model=ModerationStats)
async def get_moderation_stats(admin: UserInDB = Depends(require_admin),
                               engine: ModerationEngine = Depends(get_moderation_engine)):
    try:
        return await engine.stats()
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to compute moderation stats")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to retrieve stats: {e}")


@router.post("/pending/{modification_id}/approve", response_model=PendingModification)
async def approve_modification(modification_id: str, body: Optional[ApproveRequest] = None,
                               admin: UserInDB = Depends(require_admin),
                               engine: ModerationEngine = Depends(get_moderation_engine)):
    selected_fields = body.selected_fields if body else None
    try:
        return await engine.approve(modification_id, admin.id, selected_fields)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to approve modification %s", modification_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to approve modification: {e}")


@router.post("/pending/{modification_id}/reject", response_model=PendingModification)
async def reject_modification(modification_id: str, body: Optional[RejectRequest] = None,
                              admin: UserInDB = Depends(require_admin),
                              engine: ModerationEngine = Depends(get_moderation_engine)):
    reason = body.reason if body else None
    try:
        return await engine.reject(modification_id, admin.id, reason)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to reject modification %s", modification_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to reject modification: {e}")


@router.delete("/pois/{poi_id}/comments/{comment_id}", response_model=Comment)
async def delete_comment(poi_id: str, comment_id: str,
                         admin: UserInDB = Depends(require_admin),
                         engine: ModerationEngine = Depends(get_moderation_engine)):
    try:
        return await engine.delete_comment(poi_id, comment_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to delete comment %s from POI %s", comment_id, poi_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete comment: {e}")
