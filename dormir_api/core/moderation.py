# dormir-la-haut-api/dormir_api/core/moderation.py
"""
Moderation of user contributions.

A pending modification moves exactly once from ``pending`` to ``approved`` or
``rejected``. Approving also materialises the contribution into the POI
collection; how depends on the modification type (see ``MATERIALIZERS``).

The decision is computed by plain functions and handed to
``store.commit_review``, which reads the records and commits the POI write,
the terminal status and the notification intent in one transaction. The
contributor is emailed after the commit, best-effort.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends

from dormir_api.core.email import EmailSender, get_email_sender
from dormir_api.core.errors import AppError, ConflictError, DependencyError, ValidationError
from dormir_api.core.notifications import NotificationDispatcher
from dormir_api.db.store import FirestoreStore, PoiWrite, ReviewDecision, get_store
from dormir_api.models.modification import (
    DEFAULT_COMMENT_AUTHOR,
    DEFAULT_REJECTION_REASON,
    MODIFICATION_TYPES,
    REQUIRED_EDIT_FIELDS,
    ModerationStats,
    PendingModification,
)
from dormir_api.models.notification import NotificationIntent
from dormir_api.models.poi import MAX_PHOTOS, Comment, POIInDB

logger = logging.getLogger(__name__)

MODIFICATION_STATUSES = ("pending", "approved", "rejected")

Materializer = Callable[[PendingModification, Optional[POIInDB], Optional[List[str]], datetime], Optional[PoiWrite]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_pending(modification: PendingModification) -> None:
    if modification.status != "pending":
        raise ConflictError("Modification already processed")


def effective_patch(changes: Dict[str, Any], selected_fields: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    The part of an edit proposal an administrator accepted.

    No selection (None or empty) accepts every proposed change. Selected
    fields that were never proposed are ignored.
    """
    if not selected_fields:
        return dict(changes)
    return {field: changes[field] for field in selected_fields if field in changes}


def _materialize_new_poi(modification, poi, selected_fields, now):
    payload = modification.data
    data = payload.model_dump()
    data.update(
        created_by=payload.created_by or modification.user_id,
        status="approved",
        likes=0,
        liked_by=[],
        comments=[],
        created_at=now,
        updated_at=now,
    )
    return PoiWrite(poi_id=None, data=data)


def _materialize_comment(modification, poi, selected_fields, now):
    if poi is None:
        return None
    # the comment id is the modification id, so a comment is never added twice
    if any(c.id == modification.id for c in poi.comments):
        return None
    comment = Comment(
        id=modification.id,
        author=modification.data.author or DEFAULT_COMMENT_AUTHOR,
        user_id=modification.user_id,
        text=modification.data.text,
        date=now,
    )
    comments = [c.model_dump() for c in poi.comments] + [comment.model_dump()]
    return PoiWrite(poi_id=poi.id, data={"comments": comments, "updated_at": now})


def _materialize_photo(modification, poi, selected_fields, now):
    if poi is None:
        return None
    photo_url = modification.data.photo_url
    if photo_url in poi.photos:
        return None
    if len(poi.photos) >= MAX_PHOTOS:
        raise ValidationError(f"POI already has the maximum of {MAX_PHOTOS} photos")
    return PoiWrite(poi_id=poi.id, data={"photos": poi.photos + [photo_url], "updated_at": now})


def _materialize_edit(modification, poi, selected_fields, now):
    if poi is None:
        return None
    patch = effective_patch(modification.data.changes(), selected_fields)
    # records queued before null checks existed may still carry them
    patch = {k: v for k, v in patch.items() if v is not None or k not in REQUIRED_EDIT_FIELDS}
    if selected_fields:
        logger.info("Selective approval of %s: %s", modification.id, ", ".join(selected_fields))
    if not patch:
        return None
    return PoiWrite(poi_id=poi.id, data={**patch, "updated_at": now})


MATERIALIZERS: Dict[str, Materializer] = {
    "new_poi": _materialize_new_poi,
    "comment": _materialize_comment,
    "photo": _materialize_photo,
    "edit_poi": _materialize_edit,
}


def _poi_name(modification: PendingModification, poi: Optional[POIInDB]) -> Optional[str]:
    if modification.type == "new_poi":
        return modification.data.name
    return poi.name if poi is not None else None


def decide_approval(modification: PendingModification, poi: Optional[POIInDB], reviewer_id: str,
                    selected_fields: Optional[List[str]] = None, now: Optional[datetime] = None) -> ReviewDecision:
    ensure_pending(modification)
    now = now or _now()
    poi_write = MATERIALIZERS[modification.type](modification, poi, selected_fields, now)
    # a comment, photo or edit whose POI disappeared is approved without effect
    applied = modification.type == "new_poi" or poi is not None
    reviewed = modification.model_copy(update={
        "status": "approved",
        "reviewed_by": reviewer_id,
        "reviewed_at": now,
        "applied": applied,
        "updated_at": now,
    })
    notification = NotificationIntent(
        user_id=modification.user_id,
        outcome="approved",
        modification_id=modification.id,
        modification_type=modification.type,
        poi_name=_poi_name(modification, poi),
    )
    return ReviewDecision(modification=reviewed, poi_write=poi_write, notification=notification)


def decide_rejection(modification: PendingModification, poi: Optional[POIInDB], reviewer_id: str,
                     reason: Optional[str] = None, now: Optional[datetime] = None) -> ReviewDecision:
    ensure_pending(modification)
    now = now or _now()
    rejection_reason = reason or DEFAULT_REJECTION_REASON
    reviewed = modification.model_copy(update={
        "status": "rejected",
        "reviewed_by": reviewer_id,
        "reviewed_at": now,
        "rejection_reason": rejection_reason,
        "updated_at": now,
    })
    notification = NotificationIntent(
        user_id=modification.user_id,
        outcome="rejected",
        modification_id=modification.id,
        modification_type=modification.type,
        poi_name=_poi_name(modification, poi),
        reason=rejection_reason,
    )
    return ReviewDecision(modification=reviewed, notification=notification)


class ModerationEngine:
    def __init__(self, store: FirestoreStore, notifier: NotificationDispatcher):
        self.store = store
        self.notifier = notifier

    async def approve(self, modification_id: str, reviewer_id: str,
                      selected_fields: Optional[List[str]] = None) -> PendingModification:
        if selected_fields is not None and (
            not isinstance(selected_fields, list) or not all(isinstance(f, str) for f in selected_fields)
        ):
            raise ValidationError("selected_fields must be a list of field names")

        decision = await self._commit(
            modification_id,
            lambda modification, poi: decide_approval(modification, poi, reviewer_id, selected_fields),
            "approve",
        )
        modification = decision.modification
        if not modification.applied:
            logger.warning(
                "Modification %s approved but POI %s no longer exists, nothing was applied",
                modification.id, modification.poi_id,
            )
        logger.info("Modification %s (%s) approved by %s", modification.id, modification.type, reviewer_id)
        await self._notify(decision)
        return modification

    async def reject(self, modification_id: str, reviewer_id: str, reason: Optional[str] = None) -> PendingModification:
        if reason is not None and len(reason) > 500:
            raise ValidationError("Rejection reason cannot exceed 500 characters")

        decision = await self._commit(
            modification_id,
            lambda modification, poi: decide_rejection(modification, poi, reviewer_id, reason),
            "reject",
        )
        modification = decision.modification
        logger.info(
            "Modification %s (%s) rejected by %s: %s",
            modification.id, modification.type, reviewer_id, modification.rejection_reason,
        )
        await self._notify(decision)
        return modification

    async def _commit(self, modification_id, decide, action: str) -> ReviewDecision:
        try:
            return await self.store.commit_review(modification_id, decide)
        except AppError:
            raise
        except Exception as e:
            logger.exception("Failed to %s modification %s", action, modification_id)
            raise DependencyError(f"Failed to {action} modification") from e

    async def _notify(self, decision: ReviewDecision) -> None:
        # the decision is already committed; a failed email never undoes it
        if decision.notification_id is None:
            return
        try:
            await self.notifier.deliver(decision.notification_id)
        except Exception:
            logger.exception("Notification %s could not be delivered", decision.notification_id)

    async def list_pending(self, type: Optional[str] = None, status: str = "pending") -> List[PendingModification]:
        if type is not None and type not in MODIFICATION_TYPES:
            raise ValidationError(f"Unknown modification type: {type}")
        if status not in MODIFICATION_STATUSES:
            raise ValidationError(f"Unknown modification status: {status}")
        modifications = await self.store.find_modifications(status=status, type=type)
        return await self._with_summaries(modifications, include_user=True)

    async def list_user_contributions(self, user_id: str) -> List[PendingModification]:
        modifications = await self.store.find_modifications(user_id=user_id)
        return await self._with_summaries(modifications, include_user=False)

    async def _with_summaries(self, modifications: List[PendingModification],
                              include_user: bool) -> List[PendingModification]:
        """Attach the submitter's name and email and the target POI's name and category."""
        poi_ids = {m.poi_id for m in modifications if m.poi_id}
        pois = await self.store.poi_summaries(poi_ids) if poi_ids else {}
        users = {}
        if include_user:
            users = await self.store.user_summaries({m.user_id for m in modifications})

        return [
            m.model_copy(update={"user": users.get(m.user_id), "poi": pois.get(m.poi_id)})
            for m in modifications
        ]

    async def stats(self) -> ModerationStats:
        pending = await self.store.count_modifications("pending")
        approved = await self.store.count_modifications("approved")
        rejected = await self.store.count_modifications("rejected")
        return ModerationStats(
            pending=pending,
            approved=approved,
            rejected=rejected,
            total=pending + approved + rejected,
            by_type=await self.store.count_pending_by_type(),
        )

    async def delete_comment(self, poi_id: str, comment_id: str) -> Comment:
        comment = await self.store.delete_comment(poi_id, comment_id)
        logger.info("Comment %s deleted from POI %s", comment_id, poi_id)
        return comment


def get_moderation_engine(store: FirestoreStore = Depends(get_store),
                          sender: EmailSender = Depends(get_email_sender)) -> ModerationEngine:
    return ModerationEngine(store, NotificationDispatcher(store, sender))
