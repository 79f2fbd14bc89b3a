# dormir-la-haut-api/dormir_api/models/notification.py
from typing import Literal, Optional
from datetime import datetime
from pydantic import BaseModel
from dormir_api.models.modification import ModificationType

NotificationOutcome = Literal["approved", "rejected"]
NotificationStatus = Literal["queued", "sent", "failed"]


class NotificationIntent(BaseModel):
    """A moderation outcome the contributor still has to be told about."""
    user_id: str
    outcome: NotificationOutcome
    modification_id: str
    modification_type: ModificationType
    poi_name: Optional[str] = None
    reason: Optional[str] = None
    status: NotificationStatus = "queued"
    attempts: int = 0
    last_error: Optional[str] = None
    sent_at: Optional[datetime] = None


from dormir_api.models.base import DocumentInDB

class NotificationInDB(DocumentInDB, NotificationIntent):
    pass
