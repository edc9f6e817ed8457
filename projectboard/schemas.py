from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

ProjectStatus = Literal["created", "in-progress", "completed"]
BoardType = Literal["scrum", "kanban"]


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str = "1.0.0"


# === Raw board descriptors ===


class CardIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    assignee: Optional[str] = None
    dueDate: Optional[datetime] = None

    @field_validator("dueDate", mode="before")
    @classmethod
    def blank_due_date(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ColumnIn(BaseModel):
    name: Optional[str] = None
    order: Optional[int] = None
    cards: Optional[list[CardIn]] = None
    defaultCard: Optional[bool] = None


class ColumnPatch(BaseModel):
    name: Optional[str] = None
    order: Optional[int] = None
    cards: Optional[list[CardIn]] = None


# === Projects ===


class ProjectIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    boardType: Optional[BoardType] = None
    currentSprint: Optional[str] = None
    columns: Optional[list[ColumnIn]] = None


class ProjectPatch(ProjectIn):
    pass


class CardOut(BaseModel):
    title: str
    description: str
    status: str
    assignee: Optional[str]
    dueDate: datetime


class ColumnOut(BaseModel):
    name: str
    order: int
    cards: list[CardOut]


class MemberOut(BaseModel):
    user: str
    role: str
    addedBy: str
    joinedAt: datetime


class InviteOut(BaseModel):
    id: str
    email: str
    invitedBy: str
    status: str
    invitedAt: datetime
    acceptedAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None


class ProjectOut(BaseModel):
    id: str
    owner: str
    name: str
    description: str
    status: str
    boardType: str
    currentSprint: str
    columns: list[ColumnOut]
    members: list[MemberOut]
    invites: list[InviteOut]
    createdAt: datetime
    updatedAt: datetime
    version: int


# === Membership ===


class EmailsIn(BaseModel):
    emails: list[Any] = Field(min_length=1)


class PendingInviteOut(BaseModel):
    projectId: str
    projectName: str
    invite: InviteOut


# === Auth & users ===


class EmailIn(BaseModel):
    email: EmailStr


class OtpVerifyIn(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=1)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileIn(BaseModel):
    fullName: str = Field(min_length=1, max_length=140)
    password: str = Field(min_length=1)


class UserOut(BaseModel):
    id: str
    email: str
    fullName: str
