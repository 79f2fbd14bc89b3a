import copy
import itertools
import os
from collections import Counter
from datetime import datetime, timedelta, timezone

# no Firebase project, no Brevo account in tests
for var in ("GOOGLE_APPLICATION_CREDENTIALS", "FIREBASE_SERVICE_ACCOUNT_JSON", "BREVO_API_KEY"):
    os.environ.pop(var, None)

import pytest
import pytest_asyncio
from fastapi import Depends, HTTPException, status
from httpx import ASGITransport, AsyncClient

from dormir_api.auth.firebase_auth import get_current_user_id, oauth2_scheme
from dormir_api.core.email import EmailSender, get_email_sender
from dormir_api.core.errors import NotFoundError
from dormir_api.core.moderation import ModerationEngine
from dormir_api.core.notifications import NotificationDispatcher
from dormir_api.db.store import REVIEW_FIELDS, get_store
from dormir_api.db.utils import convert_doc_to_model
from dormir_api.main import app
from dormir_api.models.modification import (
    MODIFICATION_TYPES,
    ContributorSummary,
    PoiSummary,
    TypeCount,
    pending_modification_adapter,
)
from dormir_api.models.notification import NotificationInDB
from dormir_api.models.poi import BookmarkToggle, Comment, CountBucket, LikeToggle, POIInDB, POIStats
from dormir_api.models.user import UserInDB

ADMIN_ID = "admin-1"
USER_ID = "user-1"

CABANE = {
    "name": "Cabane Test",
    "category": "Cabane",
    "massif": "Vanoise",
    "coordinates": {"lat": 45.3, "lng": 6.7},
    "description": "A test cabin in the mountains.",
    "altitude": 2200,
}


class InMemoryStore:
    """Dictionary-backed stand-in for FirestoreStore; documents are stored as plain dicts."""

    def __init__(self):
        self.pois = {}
        self.modifications = {}
        self.users = {}
        self.notifications = {}
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    def _new_id(self, prefix):
        return f"{prefix}-{next(self._ids)}"

    def _stamp(self):
        return datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=next(self._clock))

    # seeding helpers
    def add_user(self, user_id, name="Test User", email=None, role="user", bookmarks=None):
        self.users[user_id] = {
            "name": name,
            "email": email or f"{user_id}@example.com",
            "role": role,
            "bookmarks": list(bookmarks or []),
            "created_at": self._stamp(),
        }
        return convert_doc_to_model(user_id, self.users[user_id], UserInDB)

    def add_poi(self, **overrides):
        poi_id = overrides.pop("id", None) or self._new_id("poi")
        now = self._stamp()
        doc = {**copy.deepcopy(CABANE), "status": "approved", "likes": 0, "liked_by": [], "comments": [],
               "photos": [], "created_by": USER_ID, "created_at": now, "updated_at": now}
        doc.update(overrides)
        self.pois[poi_id] = doc
        return convert_doc_to_model(poi_id, doc, POIInDB)

    def add_modification(self, type, data, user_id=USER_ID, poi_id=None, status="pending"):
        mod_id = self._new_id("mod")
        now = self._stamp()
        doc = {"type": type, "user_id": user_id, "data": copy.deepcopy(data), "status": status,
               "created_at": now, "updated_at": now}
        if poi_id is not None:
            doc["poi_id"] = poi_id
        self.modifications[mod_id] = doc
        return convert_doc_to_model(mod_id, doc, pending_modification_adapter)

    # POIs
    async def get_poi(self, poi_id):
        doc = self.pois.get(poi_id)
        return convert_doc_to_model(poi_id, doc, POIInDB) if doc is not None else None

    async def list_pois(self, status="approved", category=None, massif=None, search=None):
        pois = [convert_doc_to_model(i, d, POIInDB) for i, d in self.pois.items() if d["status"] == status]
        if category:
            pois = [p for p in pois if p.category == category]
        if massif:
            pois = [p for p in pois if p.massif == massif]
        if search:
            needle = search.lower()
            pois = [p for p in pois if needle in p.name.lower() or needle in p.description.lower()]
        return sorted(pois, key=lambda p: p.created_at, reverse=True)

    async def poi_stats(self):
        approved = [d for d in self.pois.values() if d["status"] == "approved"]
        categories = Counter(d["category"] for d in approved)
        massifs = Counter(d["massif"] for d in approved)
        return POIStats(
            total=len(approved),
            by_category=[CountBucket(key=k, count=c) for k, c in categories.items()],
            by_massif=[CountBucket(key=k, count=c) for k, c in massifs.most_common()],
        )

    async def toggle_like(self, poi_id, user_id):
        doc = self.pois.get(poi_id)
        if doc is None:
            raise NotFoundError("POI not found")
        liked_by = list(doc.get("liked_by") or [])
        is_liked = user_id not in liked_by
        if is_liked:
            liked_by.append(user_id)
        else:
            liked_by.remove(user_id)
        doc.update(liked_by=liked_by, likes=len(liked_by))
        return LikeToggle(likes=len(liked_by), is_liked=is_liked)

    async def delete_comment(self, poi_id, comment_id):
        doc = self.pois.get(poi_id)
        if doc is None:
            raise NotFoundError("POI not found")
        comments = doc.get("comments") or []
        index = next((i for i, c in enumerate(comments) if c.get("id") == comment_id), None)
        if index is None:
            raise NotFoundError("Comment not found")
        return Comment.model_validate(comments.pop(index))

    async def poi_summaries(self, poi_ids):
        return {i: PoiSummary.model_validate(self.pois[i]) for i in poi_ids if i in self.pois}

    async def user_summaries(self, user_ids):
        return {i: ContributorSummary.model_validate(self.users[i]) for i in user_ids if i in self.users}

    # pending modifications
    async def create_modification(self, type, user_id, data, poi_id=None):
        return self.add_modification(type, data, user_id=user_id, poi_id=poi_id)

    async def get_modification(self, modification_id):
        doc = self.modifications.get(modification_id)
        return convert_doc_to_model(modification_id, doc, pending_modification_adapter) if doc is not None else None

    async def find_modifications(self, status=None, type=None, user_id=None):
        found = []
        for mod_id, doc in self.modifications.items():
            if status and doc["status"] != status:
                continue
            if type and doc["type"] != type:
                continue
            if user_id and doc["user_id"] != user_id:
                continue
            found.append(convert_doc_to_model(mod_id, doc, pending_modification_adapter))
        return sorted(found, key=lambda m: m.created_at, reverse=True)

    async def count_modifications(self, status, type=None):
        return sum(
            1 for d in self.modifications.values()
            if d["status"] == status and (type is None or d["type"] == type)
        )

    async def count_pending_by_type(self):
        counts = []
        for type in MODIFICATION_TYPES:
            count = await self.count_modifications("pending", type)
            if count:
                counts.append(TypeCount(type=type, count=count))
        return counts

    async def commit_review(self, modification_id, decide):
        doc = self.modifications.get(modification_id)
        if doc is None:
            raise NotFoundError("Modification not found")
        modification = convert_doc_to_model(modification_id, doc, pending_modification_adapter)
        poi = None
        if modification.poi_id and modification.poi_id in self.pois:
            poi = convert_doc_to_model(modification.poi_id, self.pois[modification.poi_id], POIInDB)

        decision = decide(modification, poi)

        write = decision.poi_write
        if write is not None:
            if write.poi_id is None:
                poi_id = self._new_id("poi")
                self.pois[poi_id] = copy.deepcopy(write.data)
                decision.created_poi_id = poi_id
            else:
                self.pois[write.poi_id].update(copy.deepcopy(write.data))
        doc.update({field: getattr(decision.modification, field) for field in REVIEW_FIELDS})
        if decision.notification is not None:
            notification_id = self._new_id("notif")
            self.notifications[notification_id] = {**decision.notification.model_dump(), "created_at": self._stamp()}
            decision.notification_id = notification_id
        return decision

    # users
    async def get_user(self, user_id):
        doc = self.users.get(user_id)
        return convert_doc_to_model(user_id, doc, UserInDB) if doc is not None else None

    async def create_user(self, user_id, data):
        self.users[user_id] = {**data, "role": "user", "bookmarks": [], "created_at": self._stamp()}
        return await self.get_user(user_id)

    async def update_user(self, user_id, data):
        self.users[user_id].update(data)
        return await self.get_user(user_id)

    async def toggle_bookmark(self, user_id, poi_id):
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if poi_id not in self.pois:
            raise NotFoundError("POI not found")
        bookmarks = user["bookmarks"]
        is_bookmarked = poi_id not in bookmarks
        if is_bookmarked:
            bookmarks.append(poi_id)
        else:
            bookmarks.remove(poi_id)
        return BookmarkToggle(is_bookmarked=is_bookmarked, bookmarks_count=len(bookmarks))

    async def bookmarked_pois(self, user_id):
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return [convert_doc_to_model(i, self.pois[i], POIInDB) for i in user["bookmarks"] if i in self.pois]

    # notification outbox
    async def get_notification(self, notification_id):
        doc = self.notifications.get(notification_id)
        return convert_doc_to_model(notification_id, doc, NotificationInDB) if doc is not None else None

    async def update_notification(self, notification_id, fields):
        self.notifications[notification_id].update(fields)

    async def undelivered_notifications(self, max_attempts):
        return [
            convert_doc_to_model(i, d, NotificationInDB)
            for i, d in self.notifications.items()
            if d["status"] in ("queued", "failed") and d["attempts"] < max_attempts
        ]


class RecordingEmailSender(EmailSender):
    """Records the moderation emails instead of calling Brevo."""

    def __init__(self, result=True, error=None):
        super().__init__(api_key=None)
        self.result = result
        self.error = error
        self.sent = []

    async def send_modification_approved_email(self, email, user_name, modification_type, poi_name=None):
        return self._record("approved", email, user_name, modification_type, poi_name=poi_name)

    async def send_modification_rejected_email(self, email, user_name, modification_type, reason, poi_name=None):
        return self._record("rejected", email, user_name, modification_type, reason=reason, poi_name=poi_name)

    def _record(self, outcome, email, user_name, modification_type, **extra):
        if self.error is not None:
            raise self.error
        self.sent.append({"outcome": outcome, "email": email, "name": user_name, "type": modification_type, **extra})
        return self.result


@pytest.fixture
def store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_user(ADMIN_ID, name="Test Admin", role="admin")
    store.add_user(USER_ID, name="Alice")
    return store


@pytest.fixture
def sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def engine(store, sender) -> ModerationEngine:
    return ModerationEngine(store, NotificationDispatcher(store, sender))


async def _token_as_user_id(token=Depends(oauth2_scheme)) -> str:
    # tests authenticate with "Authorization: Bearer <user id>"
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No authentication token provided")
    return token.credentials


@pytest_asyncio.fixture
async def client(store, sender):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_email_sender] = lambda: sender
    app.dependency_overrides[get_current_user_id] = _token_as_user_id
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {user_id}"}
