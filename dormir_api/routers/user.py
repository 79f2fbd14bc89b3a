import logging
from fastapi import APIRouter, Depends, HTTPException, status
from dormir_api.auth.firebase_auth import get_current_user, get_current_user_id
from dormir_api.db.store import FirestoreStore, get_store
from dormir_api.models.user import UserCreate, UserInDB, UserUpdate

router = APIRouter(prefix="/users", tags=["Users"])
logger = logging.getLogger(__name__)


@router.post("/", response_model=UserInDB, status_code=status.HTTP_201_CREATED)
async def create_user(user: UserCreate, current_user_id: str = Depends(get_current_user_id),
                      store: FirestoreStore = Depends(get_store)):
    """Create the profile of the signed-in Firebase user. New profiles always get the "user" role."""
    try:
        if await store.get_user(current_user_id) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User with this ID already exists.")
        data = user.model_dump()
        data["email"] = str(data["email"]).lower()
        return await store.create_user(current_user_id, data)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to create user %s", current_user_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create user: {e}")


@router.get("/me", response_model=UserInDB)
async def get_me(current_user: UserInDB = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserInDB)
async def update_me(user: UserUpdate, current_user: UserInDB = Depends(get_current_user),
                    store: FirestoreStore = Depends(get_store)):
    try:
        update_data = user.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in update_data:
            update_data["email"] = str(update_data["email"]).lower()
        if not update_data:
            return current_user
        return await store.update_user(current_user.id, update_data)
    except Exception as e:
        logger.exception("Failed to update user %s", current_user.id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update user: {e}")
