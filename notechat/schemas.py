from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional


class UserCreate(BaseModel):
    """Payload for creating a new user."""

    name: str = Field(min_length=1)
    uname: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=5)


class LoginRequest(BaseModel):
    """Credentials for password login."""

    email: EmailStr
    password: str


class UserOut(BaseModel):
    """Response schema for user data."""

    id: str
    name: str
    uname: str
    email: EmailStr
    created_at: Optional[datetime] = None


class UserSummary(BaseModel):
    """Identity of a chat participant."""

    id: str
    email: str
    uname: str


class UserList(BaseModel):
    users: List[UserSummary]


class SignupResponse(BaseModel):
    success: bool = True
    token: str


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    uname: str
    id: str


class StatusResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class EmailRequest(BaseModel):
    """Schema for OTP email requests."""

    email: EmailStr


class OtpVerifyRequest(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=1)


class NoteCreate(BaseModel):
    """Schema for creating new note."""

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    tag: Optional[str] = None


class NoteUpdate(BaseModel):
    """Schema for updating note (all fields optional)."""

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    tag: Optional[str] = None


class NoteOut(BaseModel):
    """Schema for returning a note."""

    id: str
    user_id: str
    title: str
    description: str
    tag: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NoteDeleted(BaseModel):
    success: bool = True
    note: NoteOut


class DeletedCount(BaseModel):
    success: bool = True
    deletedCount: int


class UpdatedCount(BaseModel):
    success: bool = True
    updatedCount: int


class MessageCreate(BaseModel):
    """Payload for sending a direct message."""

    receiver_email: EmailStr
    content: str = Field(min_length=1)


class MessageOut(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime
    read_at: Optional[datetime] = None


class MessageWithUsers(MessageOut):
    """Message annotated with both participants."""

    sender: Optional[UserSummary] = None
    receiver: Optional[UserSummary] = None


class MessageEnvelope(BaseModel):
    message: MessageOut


class MessageList(BaseModel):
    messages: List[MessageWithUsers]


class ContactList(BaseModel):
    contacts: List[UserSummary]
