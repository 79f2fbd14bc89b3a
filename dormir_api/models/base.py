# dormir-la-haut-api/dormir_api/models/base.py
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class DocumentInDB(BaseModel):
    id: str = Field(..., description="Firestore document ID")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
