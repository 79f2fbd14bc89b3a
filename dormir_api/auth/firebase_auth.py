# dormir-la-haut-api/dormir_api/auth/firebase_auth.py
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth
from google.auth.exceptions import TransportError
from dormir_api.core.errors import AuthorizationError, NotFoundError
from dormir_api.db.store import FirestoreStore, get_store
from dormir_api.models.user import UserInDB

logger = logging.getLogger(__name__)

oauth2_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(token: HTTPAuthorizationCredentials = Depends(oauth2_scheme)) -> str:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No authentication token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        decoded_token = auth.verify_id_token(token.credentials)
        return decoded_token["uid"]
    except auth.ExpiredIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired"
        )
    except auth.RevokedIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token revoked"
        )
    except auth.InvalidIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    except TransportError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not verify token (network error)"
        )
    except Exception as e:
        logger.warning("Token verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )


async def get_current_user(current_user_id: str = Depends(get_current_user_id),
                           store: FirestoreStore = Depends(get_store)) -> UserInDB:
    user = await store.get_user(current_user_id)
    if user is None:
        raise NotFoundError("User not found").to_http()
    return user


async def require_admin(current_user_id: str = Depends(get_current_user_id),
                        store: FirestoreStore = Depends(get_store)) -> UserInDB:
    user = await store.get_user(current_user_id)
    if user is None or not user.is_admin:
        raise AuthorizationError("Administrator access required").to_http()
    return user
