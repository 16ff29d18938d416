"""
Pydantic input schemas shared by the data access layer and the API.
Stored records themselves stay schema-less dicts.
"""
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


# ──────────────────────────── Users ───────────────────────────────────────

class UserCreate(BaseModel):
    uid: str = Field(..., min_length=1, max_length=128)
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    email: Optional[str] = Field(None, max_length=254)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    email: Optional[str] = Field(None, max_length=254)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    phone_verified: Optional[bool] = None


# ──────────────────────────── Entries ─────────────────────────────────────

class EntryCreate(BaseModel):
    date: date
    title: Optional[str] = Field(None, max_length=200)
    text: str = Field("", max_length=20000)
    trip_id: Optional[str] = None
    prompt_id: Optional[str] = None
    client_id: Optional[str] = None
    image_url: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    location_name: Optional[str] = None


class EntryUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    text: Optional[str] = Field(None, max_length=20000)
    image_url: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    location_name: Optional[str] = None


# ──────────────────────────── Trips ───────────────────────────────────────

class TripCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    destination: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    cover_image_url: Optional[str] = None


class TripUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    destination: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    cover_image_url: Optional[str] = None


# ──────────────────────────── Social ──────────────────────────────────────

class ReactionCreate(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=16)


class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)
    parent_comment_id: Optional[str] = None
