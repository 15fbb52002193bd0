"""
Database Schemas for the Campus Marketplace

Each storage model maps to a MongoDB collection; fields are stored under
their camelCase alias (created_at -> "createdAt").
- User -> "users"
- Listing -> "listings"
- Conversation -> "conversations"
- Message -> "messages"
- SavedListing -> "savedListings"

Request bodies live at the bottom. Their fields are optional so handlers can
report missing fields with the API's own error messages.
"""

from datetime import datetime
from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from database import utcnow

ListingType = Literal["clothes", "textbooks", "tech", "furniture", "tickets", "services", "other"]
LISTING_TYPES = get_args(ListingType)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Profiles created on first successful authentication
class User(CamelModel):
    uid: str = Field(..., description="Identity provider user id")
    first_name: str = Field("", description="Given name")
    last_name: str = Field("", description="Family name")
    profile_picture: str = Field("", description="Profile picture URL")
    email: Optional[EmailStr] = Field(None, description="Email address")
    created_at: datetime = Field(default_factory=utcnow)


# Items for sale, owned by their creator
class Listing(CamelModel):
    title: str = Field(..., max_length=140)
    description: str = Field(..., max_length=5000)
    price: float = Field(..., ge=0)
    type: ListingType
    clothing_type: Optional[str] = None
    condition: Optional[str] = None
    size: Optional[str] = None
    gender: Optional[str] = None
    user_id: str = Field(..., description="Owner user id")
    image_urls: List[str] = Field(default_factory=list)
    is_private: bool = Field(False)
    is_sold: bool = Field(False)
    view_count: int = Field(0, ge=0)
    save_count: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)


# Buyer/seller thread scoped to one listing
class Conversation(CamelModel):
    participants: List[str] = Field(..., min_length=2, max_length=2)
    listing_id: str
    last_message: str = ""
    last_message_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)


class Message(CamelModel):
    conversation_id: str
    sender_id: str
    content: str = Field(..., min_length=1)
    read: bool = Field(False)
    created_at: datetime = Field(default_factory=utcnow)


# One record per (user, listing); existence means "saved"
class SavedListing(CamelModel):
    user_id: str
    listing_id: str
    saved_at: datetime = Field(default_factory=utcnow)


class StartConversationBody(CamelModel):
    listing_id: Optional[str] = None
    recipient_id: Optional[str] = None
    initial_message: Optional[str] = None


class SendMessageBody(CamelModel):
    content: Optional[str] = None


class ToggleSaveBody(CamelModel):
    listing_id: Optional[str] = None


class CreateListingBody(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    type: Optional[str] = None
    clothing_type: Optional[str] = None
    condition: Optional[str] = None
    size: Optional[str] = None
    gender: Optional[str] = None
    image_urls: Optional[List[str]] = None


class UpdateListingBody(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    type: Optional[str] = None
    clothing_type: Optional[str] = None
    condition: Optional[str] = None
    size: Optional[str] = None
    gender: Optional[str] = None
    image_urls: Optional[List[str]] = None
    is_private: Optional[bool] = None
    is_sold: Optional[bool] = None


class AffiliateClickBody(CamelModel):
    affiliate_id: Optional[str] = None


class SchoolAdminBody(CamelModel):
    target_user_id: Optional[str] = None
    action: Optional[str] = None
