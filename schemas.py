"""
Database Schemas for the DevCamper API

Each Pydantic model represents a MongoDB collection. The collection name is the lowercase
of the class name. The *Body models validate request payloads before they reach the store.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Union, get_args, get_origin

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["user", "publisher", "admin"]
SelfRole = Literal["user", "publisher"]
Career = Literal["Web Development", "Mobile Development", "UI/UX", "Data Science", "Business", "Other"]
Skill = Literal["beginner", "intermediate", "advanced"]

WEBSITE_PATTERN = r"^https?://[\w\-.]+\.[a-z]{2,}[^\s]*$"

# Never serialized to clients
PRIVATE_USER_FIELDS = ("password", "reset_password_token", "reset_password_expire")


class MongoModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


# Users
class User(MongoModel):
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Unique login email, stored lowercase")
    role: Role = Field("user", description="Access role")
    password: str = Field(..., description="bcrypt hash of the password")
    reset_password_token: Optional[str] = Field(None, description="sha256 of the emailed reset token")
    reset_password_expire: Optional[datetime] = Field(None, description="Reset token expiry")
    created_at: datetime = Field(..., description="Registration time")


# Bootcamps
class GeoLocation(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(..., description="[longitude, latitude]")
    formatted_address: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: Optional[str] = None
    country: Optional[str] = None


class Bootcamp(MongoModel):
    name: str = Field(..., max_length=50)
    slug: str
    description: str = Field(..., max_length=500)
    website: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    location: Optional[GeoLocation] = None
    careers: List[Career]
    average_rating: Optional[float] = Field(None, ge=1, le=10)
    average_cost: Optional[float] = None
    photo: str = "no-photo.jpg"
    housing: bool = False
    job_assistance: bool = False
    job_guarantee: bool = False
    accept_gi: bool = False
    created_at: datetime
    user: ObjectId = Field(..., description="Owner user _id")


# Courses
class Course(MongoModel):
    title: str
    description: str
    weeks: str
    tuition: float
    minimum_skill: Skill
    scholarship_available: bool = False
    created_at: datetime
    bootcamp: ObjectId
    user: ObjectId


# Reviews
class Review(MongoModel):
    title: str = Field(..., max_length=100)
    text: str
    rating: int = Field(..., ge=1, le=10)
    created_at: datetime
    bootcamp: ObjectId
    user: ObjectId


# Auth payloads
class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: SelfRole = "user"


class LoginBody(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UpdateDetailsBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None


class UpdatePasswordBody(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class ForgotPasswordBody(BaseModel):
    email: EmailStr


class ResetPasswordBody(BaseModel):
    password: str = Field(..., min_length=6)


# Resource payloads
class BootcampBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=500)
    website: Optional[str] = Field(None, pattern=WEBSITE_PATTERN)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    address: str = Field(..., min_length=1)
    careers: List[Career] = Field(..., min_length=1)
    housing: bool = False
    job_assistance: bool = False
    job_guarantee: bool = False
    accept_gi: bool = False


class BootcampUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    website: Optional[str] = Field(None, pattern=WEBSITE_PATTERN)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, min_length=1)
    careers: Optional[List[Career]] = Field(None, min_length=1)
    housing: Optional[bool] = None
    job_assistance: Optional[bool] = None
    job_guarantee: Optional[bool] = None
    accept_gi: Optional[bool] = None


class CourseBody(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    weeks: str = Field(..., min_length=1)
    tuition: float = Field(..., ge=0)
    minimum_skill: Skill
    scholarship_available: bool = False


class CourseUpdateBody(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    weeks: Optional[str] = Field(None, min_length=1)
    tuition: Optional[float] = Field(None, ge=0)
    minimum_skill: Optional[Skill] = None
    scholarship_available: Optional[bool] = None


class ReviewBody(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    text: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=10)


class ReviewUpdateBody(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    text: Optional[str] = Field(None, min_length=1)
    rating: Optional[int] = Field(None, ge=1, le=10)


class UserBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = "user"


class UserUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    role: Optional[Role] = None


# Helpers


def field_types(model: type) -> Dict[str, Any]:
    """Map each stored field to the scalar type a query value is cast to."""
    types: Dict[str, Any] = {}
    for name, info in model.model_fields.items():
        annotation = info.annotation
        if get_origin(annotation) is Union:
            args = [arg for arg in get_args(annotation) if arg is not type(None)]
            annotation = args[0] if len(args) == 1 else annotation
        if get_origin(annotation) in (list, List):
            annotation = get_args(annotation)[0]
        types[name] = annotation
    return types


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def strip_fields(doc: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    return {key: value for key, value in doc.items() if key not in fields}


def serialize(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder={ObjectId: str})


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    return serialize(strip_fields(doc, PRIVATE_USER_FIELDS))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
