# dormir-la-haut-api/dormir_api/db/store.py
"""
Firestore-backed persistence for POIs, pending modifications, users and the
notification outbox.

Every read-modify-write on a document runs inside a Firestore transaction:
Firestore retries the callback when another writer committed in between, so
two reviewers racing on the same modification cannot both see it pending.
"""
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging

from fastapi import HTTPException, status
from google.cloud import firestore
from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter

from dormir_api.config import db
from dormir_api.core.errors import NotFoundError
from dormir_api.db.utils import convert_doc_to_model
from dormir_api.models.modification import (
    MODIFICATION_TYPES,
    ContributorSummary,
    PendingModification,
    PoiSummary,
    TypeCount,
    pending_modification_adapter,
)
from dormir_api.models.notification import NotificationInDB, NotificationIntent
from dormir_api.models.poi import BookmarkToggle, Comment, CountBucket, LikeToggle, POIInDB, POIStats
from dormir_api.models.user import UserInDB

logger = logging.getLogger(__name__)

POIS = "pois"
MODIFICATIONS = "pending_modifications"
USERS = "users"
NOTIFICATIONS = "notifications"

# Fields written when a modification reaches a terminal status.
REVIEW_FIELDS = ("status", "reviewed_by", "reviewed_at", "rejection_reason", "applied", "updated_at")


@dataclass
class PoiWrite:
    """A POI document write. poi_id None creates a new POI from data."""
    poi_id: Optional[str]
    data: Dict[str, Any]


@dataclass
class ReviewDecision:
    modification: PendingModification
    poi_write: Optional[PoiWrite] = None
    notification: Optional[NotificationIntent] = None
    # filled in by the store on commit
    created_poi_id: Optional[str] = None
    notification_id: Optional[str] = None


ReviewCallback = Callable[[PendingModification, Optional[POIInDB]], ReviewDecision]


class FirestoreStore:
    def __init__(self, client):
        self.db = client

    # POIs
    async def get_poi(self, poi_id: str) -> Optional[POIInDB]:
        doc = await self.db.collection(POIS).document(poi_id).get()
        if not doc.exists:
            return None
        return convert_doc_to_model(doc.id, doc.to_dict(), POIInDB)

    async def list_pois(self, status: str = "approved", category: Optional[str] = None,
                        massif: Optional[str] = None, search: Optional[str] = None) -> List[POIInDB]:
        query = self.db.collection(POIS).where(filter=FieldFilter("status", "==", status))
        if category:
            query = query.where(filter=FieldFilter("category", "==", category))
        if massif:
            query = query.where(filter=FieldFilter("massif", "==", massif))
        query = query.order_by("created_at", direction=firestore.Query.DESCENDING)

        pois = [convert_doc_to_model(doc.id, doc.to_dict(), POIInDB) async for doc in query.stream()]

        # Firestore has no substring match
        if search:
            needle = search.lower()
            pois = [p for p in pois if needle in p.name.lower() or needle in p.description.lower()]
        return pois

    async def poi_stats(self) -> POIStats:
        query = self.db.collection(POIS).where(filter=FieldFilter("status", "==", "approved"))
        categories, massifs = Counter(), Counter()
        async for doc in query.select(["category", "massif"]).stream():
            data = doc.to_dict()
            categories[data.get("category")] += 1
            massifs[data.get("massif")] += 1
        return POIStats(
            total=sum(categories.values()),
            by_category=[CountBucket(key=k, count=c) for k, c in categories.items()],
            by_massif=[CountBucket(key=k, count=c) for k, c in massifs.most_common()],
        )

    async def toggle_like(self, poi_id: str, user_id: str) -> LikeToggle:
        poi_ref = self.db.collection(POIS).document(poi_id)

        @firestore.async_transactional
        async def _toggle(transaction):
            snapshot = await poi_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("POI not found")
            liked_by = list(snapshot.to_dict().get("liked_by") or [])
            is_liked = user_id not in liked_by
            if is_liked:
                liked_by.append(user_id)
            else:
                liked_by.remove(user_id)
            # likes is always the size of liked_by, written together
            transaction.update(poi_ref, {"liked_by": liked_by, "likes": len(liked_by), "updated_at": SERVER_TIMESTAMP})
            return LikeToggle(likes=len(liked_by), is_liked=is_liked)

        return await _toggle(self.db.transaction())

    async def delete_comment(self, poi_id: str, comment_id: str) -> Comment:
        poi_ref = self.db.collection(POIS).document(poi_id)

        @firestore.async_transactional
        async def _delete(transaction):
            snapshot = await poi_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("POI not found")
            comments = list(snapshot.to_dict().get("comments") or [])
            index = next((i for i, c in enumerate(comments) if c.get("id") == comment_id), None)
            if index is None:
                raise NotFoundError("Comment not found")
            deleted = comments.pop(index)
            transaction.update(poi_ref, {"comments": comments, "updated_at": SERVER_TIMESTAMP})
            return Comment.model_validate(deleted)

        return await _delete(self.db.transaction())

    async def poi_summaries(self, poi_ids: Iterable[str]) -> Dict[str, PoiSummary]:
        refs = [self.db.collection(POIS).document(poi_id) for poi_id in poi_ids]
        if not refs:
            return {}
        return {
            doc.id: PoiSummary.model_validate(doc.to_dict())
            async for doc in self.db.get_all(refs, field_paths=["name", "category"])
            if doc.exists
        }

    # Pending modifications
    async def create_modification(self, type: str, user_id: str, data: Dict[str, Any],
                                  poi_id: Optional[str] = None) -> PendingModification:
        doc = {
            "type": type,
            "user_id": user_id,
            "data": data,
            "status": "pending",
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }
        if poi_id is not None:
            doc["poi_id"] = poi_id
        doc_ref = self.db.collection(MODIFICATIONS).document()
        await doc_ref.set(doc)
        created = await doc_ref.get()
        return convert_doc_to_model(created.id, created.to_dict(), pending_modification_adapter)

    async def get_modification(self, modification_id: str) -> Optional[PendingModification]:
        doc = await self.db.collection(MODIFICATIONS).document(modification_id).get()
        if not doc.exists:
            return None
        return convert_doc_to_model(doc.id, doc.to_dict(), pending_modification_adapter)

    async def find_modifications(self, status: Optional[str] = None, type: Optional[str] = None,
                                 user_id: Optional[str] = None) -> List[PendingModification]:
        query = self.db.collection(MODIFICATIONS)
        if status:
            query = query.where(filter=FieldFilter("status", "==", status))
        if type:
            query = query.where(filter=FieldFilter("type", "==", type))
        if user_id:
            query = query.where(filter=FieldFilter("user_id", "==", user_id))
        query = query.order_by("created_at", direction=firestore.Query.DESCENDING)
        return [
            convert_doc_to_model(doc.id, doc.to_dict(), pending_modification_adapter)
            async for doc in query.stream()
        ]

    async def count_modifications(self, status: str, type: Optional[str] = None) -> int:
        query = self.db.collection(MODIFICATIONS).where(filter=FieldFilter("status", "==", status))
        if type:
            query = query.where(filter=FieldFilter("type", "==", type))
        results = await query.count(alias="total").get()
        return int(results[0][0].value) if results else 0

    async def count_pending_by_type(self) -> List[TypeCount]:
        counts = []
        for type in MODIFICATION_TYPES:
            count = await self.count_modifications("pending", type)
            if count:
                counts.append(TypeCount(type=type, count=count))
        return counts

    async def commit_review(self, modification_id: str, decide: ReviewCallback) -> ReviewDecision:
        """
        Atomically review one modification.

        Reads the modification and its target POI, asks ``decide`` for the
        write set, then commits the POI write, the terminal fields and the
        notification intent together. ``decide`` may raise to abort; nothing
        is written in that case.
        """
        mod_ref = self.db.collection(MODIFICATIONS).document(modification_id)

        @firestore.async_transactional
        async def _review(transaction):
            snapshot = await mod_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("Modification not found")
            modification = convert_doc_to_model(snapshot.id, snapshot.to_dict(), pending_modification_adapter)

            poi = None
            if modification.poi_id:
                poi_snapshot = await self.db.collection(POIS).document(modification.poi_id).get(transaction=transaction)
                if poi_snapshot.exists:
                    poi = convert_doc_to_model(poi_snapshot.id, poi_snapshot.to_dict(), POIInDB)

            decision = decide(modification, poi)

            write = decision.poi_write
            if write is not None:
                if write.poi_id is None:
                    poi_ref = self.db.collection(POIS).document()
                    transaction.set(poi_ref, write.data)
                    decision.created_poi_id = poi_ref.id
                else:
                    transaction.update(self.db.collection(POIS).document(write.poi_id), write.data)

            reviewed = decision.modification
            transaction.update(mod_ref, {field: getattr(reviewed, field) for field in REVIEW_FIELDS})

            if decision.notification is not None:
                notification_ref = self.db.collection(NOTIFICATIONS).document()
                transaction.set(notification_ref, {**decision.notification.model_dump(), "created_at": SERVER_TIMESTAMP})
                decision.notification_id = notification_ref.id
            return decision

        return await _review(self.db.transaction())

    # Users
    async def get_user(self, user_id: str) -> Optional[UserInDB]:
        doc = await self.db.collection(USERS).document(user_id).get()
        if not doc.exists:
            return None
        return convert_doc_to_model(doc.id, doc.to_dict(), UserInDB)

    async def user_summaries(self, user_ids: Iterable[str]) -> Dict[str, ContributorSummary]:
        refs = [self.db.collection(USERS).document(user_id) for user_id in user_ids]
        if not refs:
            return {}
        return {
            doc.id: ContributorSummary.model_validate(doc.to_dict())
            async for doc in self.db.get_all(refs, field_paths=["name", "email"])
            if doc.exists
        }

    async def create_user(self, user_id: str, data: Dict[str, Any]) -> UserInDB:
        user_ref = self.db.collection(USERS).document(user_id)
        await user_ref.set({**data, "role": "user", "bookmarks": [], "created_at": SERVER_TIMESTAMP})
        created = await user_ref.get()
        return convert_doc_to_model(created.id, created.to_dict(), UserInDB)

    async def update_user(self, user_id: str, data: Dict[str, Any]) -> UserInDB:
        user_ref = self.db.collection(USERS).document(user_id)
        await user_ref.update({**data, "updated_at": SERVER_TIMESTAMP})
        updated = await user_ref.get()
        return convert_doc_to_model(updated.id, updated.to_dict(), UserInDB)

    async def toggle_bookmark(self, user_id: str, poi_id: str) -> BookmarkToggle:
        user_ref = self.db.collection(USERS).document(user_id)
        poi_ref = self.db.collection(POIS).document(poi_id)

        @firestore.async_transactional
        async def _toggle(transaction):
            user_snapshot = await user_ref.get(transaction=transaction)
            if not user_snapshot.exists:
                raise NotFoundError("User not found")
            poi_snapshot = await poi_ref.get(transaction=transaction)
            if not poi_snapshot.exists:
                raise NotFoundError("POI not found")
            bookmarks = list(user_snapshot.to_dict().get("bookmarks") or [])
            is_bookmarked = poi_id not in bookmarks
            if is_bookmarked:
                bookmarks.append(poi_id)
            else:
                bookmarks.remove(poi_id)
            transaction.update(user_ref, {"bookmarks": bookmarks, "updated_at": SERVER_TIMESTAMP})
            return BookmarkToggle(is_bookmarked=is_bookmarked, bookmarks_count=len(bookmarks))

        return await _toggle(self.db.transaction())

    async def bookmarked_pois(self, user_id: str) -> List[POIInDB]:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        refs = [self.db.collection(POIS).document(poi_id) for poi_id in user.bookmarks]
        if not refs:
            return []
        return [
            convert_doc_to_model(doc.id, doc.to_dict(), POIInDB)
            async for doc in self.db.get_all(refs)
            if doc.exists
        ]

    # Notification outbox
    async def get_notification(self, notification_id: str) -> Optional[NotificationInDB]:
        doc = await self.db.collection(NOTIFICATIONS).document(notification_id).get()
        if not doc.exists:
            return None
        return convert_doc_to_model(doc.id, doc.to_dict(), NotificationInDB)

    async def update_notification(self, notification_id: str, fields: Dict[str, Any]) -> None:
        await self.db.collection(NOTIFICATIONS).document(notification_id).update({**fields, "updated_at": SERVER_TIMESTAMP})

    async def undelivered_notifications(self, max_attempts: int) -> List[NotificationInDB]:
        query = self.db.collection(NOTIFICATIONS).where(filter=FieldFilter("status", "in", ["queued", "failed"]))
        notifications = [convert_doc_to_model(doc.id, doc.to_dict(), NotificationInDB) async for doc in query.stream()]
        return [n for n in notifications if n.attempts < max_attempts]


def get_store() -> FirestoreStore:
    if db is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Firestore not initialized.")
    return FirestoreStore(db)
