# dormir-la-haut-api/dormir_api/models/poi.py
from typing import List, Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

POICategory = Literal["Bivouac", "Cabane", "Refuge"]
Massif = Literal[
    "Mont Blanc", "Vanoise", "Écrins", "Queyras", "Mercantour",
    "Vercors", "Chartreuse", "Bauges", "Aravis", "Belledonne",
]
SunExposition = Literal[
    "Nord", "Sud", "Est", "Ouest", "Nord-Est", "Nord-Ouest", "Sud-Est", "Sud-Ouest",
]
POIStatus = Literal["approved", "pending", "rejected"]

MAX_PHOTOS = 10

# "Spot" was renamed to "Bivouac"; older documents still carry it.
LEGACY_CATEGORIES = {"Spot": "Bivouac"}


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Comment(BaseModel):
    id: str
    author: str
    user_id: str
    text: str = Field(..., max_length=1000)
    date: datetime


class POIBase(BaseModel):
    name: str
    category: POICategory
    massif: Massif
    coordinates: Coordinates
    description: str
    altitude: int = Field(..., ge=0, le=9000)
    sun_exposition: Optional[SunExposition] = None
    photos: List[str] = Field(default_factory=list, max_length=MAX_PHOTOS)

    @field_validator("category", mode="before")
    @classmethod
    def rename_legacy_category(cls, v):
        return LEGACY_CATEGORIES.get(v, v)


class POICreate(POIBase):
    """Fields a user submits when proposing a new place."""
    name: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=2000)

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


from dormir_api.models.base import DocumentInDB

class POIInDB(DocumentInDB, POIBase):
    likes: int = Field(0, ge=0)
    liked_by: List[str] = []
    comments: List[Comment] = []
    created_by: Optional[str] = None
    status: POIStatus = "pending"


class CountBucket(BaseModel):
    key: str
    count: int


class POIStats(BaseModel):
    total: int
    by_category: List[CountBucket] = []
    by_massif: List[CountBucket] = []


class LikeToggle(BaseModel):
    likes: int
    is_liked: bool


class BookmarkToggle(BaseModel):
    is_bookmarked: bool
    bookmarks_count: int
