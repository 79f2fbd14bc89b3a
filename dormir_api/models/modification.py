# dormir-la-haut-api/dormir_api/models/modification.py
"""
Pending modifications: user contributions waiting for an administrator.

Each record is tagged by its ``type`` and carries the payload shape that
belongs to that type, so a comment can never be read as a POI edit:

- new_poi:  a full place proposal, no target POI yet
- comment:  a comment for an existing POI
- photo:    a photo URL for an existing POI
- edit_poi: a partial set of field changes for an existing POI
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, field_validator, model_validator
from dormir_api.models.poi import LEGACY_CATEGORIES, POIBase, POICategory, SunExposition

ModificationType = Literal["new_poi", "comment", "photo", "edit_poi"]
ModificationStatus = Literal["pending", "approved", "rejected"]

MODIFICATION_TYPES = ("new_poi", "comment", "photo", "edit_poi")
DEFAULT_REJECTION_REASON = "Non conforme"
DEFAULT_COMMENT_AUTHOR = "Utilisateur"

# Fields a contributor may propose to change on an existing POI.
EDITABLE_FIELDS = ("name", "altitude", "sun_exposition", "description")
# Editable fields the POI cannot hold as null.
REQUIRED_EDIT_FIELDS = ("name", "altitude", "description")


# Payloads, as stored in the "data" field of a modification
class NewPoiPayload(POIBase):
    created_by: Optional[str] = None


class CommentPayload(BaseModel):
    text: str
    author: Optional[str] = None


class PhotoPayload(BaseModel):
    photo_url: str


class EditPoiPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    altitude: Optional[int] = None
    sun_exposition: Optional[SunExposition] = None
    description: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# Listing summaries of the records a modification points to
class ContributorSummary(BaseModel):
    name: str
    email: str


class PoiSummary(BaseModel):
    name: str
    category: Optional[POICategory] = None

    @field_validator("category", mode="before")
    @classmethod
    def rename_legacy_category(cls, v):
        return LEGACY_CATEGORIES.get(v, v)


# Stored records
class ModificationBase(BaseModel):
    id: str = Field(..., description="Firestore document ID")
    user_id: str
    status: ModificationStatus = "pending"
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = Field(None, max_length=500)
    applied: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # never stored, filled in for listings
    user: Optional[ContributorSummary] = None
    poi: Optional[PoiSummary] = None


class NewPoiModification(ModificationBase):
    type: Literal["new_poi"] = "new_poi"
    poi_id: None = None
    data: NewPoiPayload


class CommentModification(ModificationBase):
    type: Literal["comment"] = "comment"
    poi_id: str
    data: CommentPayload


class PhotoModification(ModificationBase):
    type: Literal["photo"] = "photo"
    poi_id: str
    data: PhotoPayload


class EditPoiModification(ModificationBase):
    type: Literal["edit_poi"] = "edit_poi"
    poi_id: str
    data: EditPoiPayload


PendingModification = Annotated[
    Union[NewPoiModification, CommentModification, PhotoModification, EditPoiModification],
    Field(discriminator="type"),
]

pending_modification_adapter = TypeAdapter(PendingModification)


# Request bodies
class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=1000)

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class PhotoCreate(BaseModel):
    photo_url: HttpUrl


class EditPoiChanges(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=3, max_length=100)
    altitude: Optional[int] = Field(None, ge=0, le=9000)
    sun_exposition: Optional[SunExposition] = None
    description: Optional[str] = Field(None, min_length=10, max_length=2000)

    @field_validator(*REQUIRED_EDIT_FIELDS)
    @classmethod
    def reject_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("No changes provided")
        return self


class EditPoiRequest(BaseModel):
    changes: EditPoiChanges


class ExpositionRequest(BaseModel):
    sun_exposition: SunExposition


class ApproveRequest(BaseModel):
    selected_fields: Optional[List[str]] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class TypeCount(BaseModel):
    type: ModificationType
    count: int


class ModerationStats(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total: int = 0
    by_type: List[TypeCount] = []
