import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional
from dormir_api.auth.firebase_auth import get_current_user_id
from dormir_api.core.errors import AppError, NotFoundError
from dormir_api.db.store import FirestoreStore, get_store
from dormir_api.models.modification import (
    CommentCreate,
    EditPoiRequest,
    ExpositionRequest,
    PendingModification,
    PhotoCreate,
)
from dormir_api.models.poi import (
    BookmarkToggle,
    LikeToggle,
    Massif,
    POICategory,
    POICreate,
    POIInDB,
    POIStats,
    POIStatus,
)

router = APIRouter(prefix="/pois", tags=["POIs"])
logger = logging.getLogger(__name__)


async def _ensure_poi(store: FirestoreStore, poi_id: str) -> POIInDB:
    poi = await store.get_poi(poi_id)
    if poi is None:
        raise NotFoundError("POI not found")
    return poi


@router.get("/", response_model=List[POIInDB])
async def get_all_pois(category: Optional[POICategory] = None,
                       massif: Optional[Massif] = None,
                       search: Optional[str] = None,
                       status_filter: POIStatus = Query("approved", alias="status"),
                       store: FirestoreStore = Depends(get_store)):
    try:
        return await store.list_pois(status=status_filter, category=category, massif=massif, search=search)
    except Exception as e:
        logger.exception("Failed to retrieve POIs")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to retrieve POIs: {e}")


@router.get("/stats", response_model=POIStats)
async def get_poi_stats(store: FirestoreStore = Depends(get_store)):
    try:
        return await store.poi_stats()
    except Exception as e:
        logger.exception("Failed to compute POI stats")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to retrieve stats: {e}")


@router.get("/user/bookmarks", response_model=List[POIInDB])
async def get_user_bookmarks(current_user_id: str = Depends(get_current_user_id),
                             store: FirestoreStore = Depends(get_store)):
    try:
        return await store.bookmarked_pois(current_user_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to retrieve bookmarks for %s", current_user_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to retrieve bookmarks: {e}")


@router.get("/{poi_id}", response_model=POIInDB)
async def get_poi(poi_id: str, store: FirestoreStore = Depends(get_store)):
    try:
        return await _ensure_poi(store, poi_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to retrieve POI %s", poi_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to retrieve POI: {e}")


@router.post("/", response_model=PendingModification, status_code=status.HTTP_201_CREATED)
async def create_poi(poi: POICreate, current_user_id: str = Depends(get_current_user_id),
                     store: FirestoreStore = Depends(get_store)):
    """Propose a new POI. It becomes visible once an administrator approves it."""
    try:
        data = {**poi.model_dump(), "created_by": current_user_id}
        return await store.create_modification("new_poi", current_user_id, data)
    except Exception as e:
        logger.exception("Failed to submit POI proposal")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create POI: {e}")


@router.post("/{poi_id}/like", response_model=LikeToggle)
async def toggle_like(poi_id: str, current_user_id: str = Depends(get_current_user_id),
                      store: FirestoreStore = Depends(get_store)):
    try:
        return await store.toggle_like(poi_id, current_user_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to toggle like on %s", poi_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to toggle like: {e}")


@router.post("/{poi_id}/bookmark", response_model=BookmarkToggle)
async def toggle_bookmark(poi_id: str, current_user_id: str = Depends(get_current_user_id),
                          store: FirestoreStore = Depends(get_store)):
    try:
        return await store.toggle_bookmark(current_user_id, poi_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to toggle bookmark on %s", poi_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to toggle bookmark: {e}")


@router.post("/{poi_id}/comments", response_model=PendingModification, status_code=status.HTTP_201_CREATED)
async def add_comment(poi_id: str, comment: CommentCreate, current_user_id: str = Depends(get_current_user_id),
                      store: FirestoreStore = Depends(get_store)):
    try:
        await _ensure_poi(store, poi_id)
        user = await store.get_user(current_user_id)
        data = {"text": comment.text, "author": user.name if user else None}
        return await store.create_modification("comment", current_user_id, data, poi_id=poi_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to submit comment on %s", poi_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to add comment: {e}")


@router.post("/{poi_id}/photos", response_model=PendingModification, status_code=status.HTTP_201_CREATED)
async def add_photo(poi_id: str, photo: PhotoCreate, current_user_id: str = Depends(get_current_user_id),
                    store: FirestoreStore = Depends(get_store)):
    try:
        await _ensure_poi(store, poi_id)
        data = {"photo_url": str(photo.photo_url)}
        return await store.create_modification("photo", current_user_id, data, poi_id=poi_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to submit photo on %s", poi_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to add photo: {e}")


@router.patch("/{poi_id}/edit", response_model=PendingModification, status_code=status.HTTP_201_CREATED)
async def suggest_edit(poi_id: str, body: EditPoiRequest, current_user_id: str = Depends(get_current_user_id),
                       store: FirestoreStore = Depends(get_store)):
    try:
        await _ensure_poi(store, poi_id)
        changes = body.changes.model_dump(exclude_unset=True)
        return await store.create_modification("edit_poi", current_user_id, changes, poi_id=poi_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to submit edit on %s", poi_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to suggest edit: {e}")


# Legacy clients still send the exposition on its own
@router.patch("/{poi_id}/exposition", response_model=PendingModification, status_code=status.HTTP_201_CREATED)
async def suggest_exposition(poi_id: str, body: ExpositionRequest, current_user_id: str = Depends(get_current_user_id),
                             store: FirestoreStore = Depends(get_store)):
    try:
        await _ensure_poi(store, poi_id)
        data = {"sun_exposition": body.sun_exposition}
        return await store.create_modification("edit_poi", current_user_id, data, poi_id=poi_id)
    except AppError as e:
        raise e.to_http()
    except Exception as e:
        logger.exception("Failed to submit exposition on %s", poi_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to suggest exposition: {e}")
