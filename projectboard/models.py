from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .utils import new_uuid, normalize_email, now_utc

PROJECT_STATUSES = ("created", "in-progress", "completed")
BOARD_TYPES = ("scrum", "kanban")

ROLE_OWNER = "owner"
ROLE_COLLABORATOR = "collaborator"

INVITE_PENDING = "pending"
INVITE_ACCEPTED = "accepted"
INVITE_CANCELLED = "cancelled"


# === Board objects, stored as a JSON document on the project row ===


@dataclass
class Card:
    title: str
    description: str
    status: str
    assignee: Optional[str]
    due_date: datetime

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "assignee": self.assignee,
            "dueDate": self.due_date.isoformat(),
        }


@dataclass
class Column:
    name: str
    order: int
    cards: List[Card] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "order": self.order,
            "cards": [card.to_dict() for card in self.cards],
        }


# === Membership objects ===


@dataclass
class Member:
    user: str
    role: str
    added_by: str
    joined_at: datetime


@dataclass
class Invite:
    email: str
    invited_by: str
    id: str = field(default_factory=new_uuid)
    status: str = INVITE_PENDING
    invited_at: datetime = field(default_factory=now_utc)
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def accept(self) -> None:
        self.status = INVITE_ACCEPTED
        self.accepted_at = now_utc()

    def cancel(self) -> None:
        self.status = INVITE_CANCELLED
        self.cancelled_at = now_utc()


# === Aggregate ===


@dataclass
class Project:
    id: str
    owner: str
    name: str
    description: str = ""
    status: str = "created"
    board_type: str = "scrum"
    current_sprint: str = "Scrum 1"
    columns: List[Column] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)
    invites: List[Invite] = field(default_factory=list)
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)
    version: int = 0

    @classmethod
    def create(cls, owner: str, name: str, **fields) -> "Project":
        """Build a new project whose owner is seeded as its only owner member."""
        project = cls(id=new_uuid(), owner=owner, name=name, **fields)
        project.members = [
            Member(user=owner, role=ROLE_OWNER, added_by=owner, joined_at=project.created_at)
        ]
        return project

    def member(self, user_id: str) -> Optional[Member]:
        for member in self.members:
            if member.user == user_id:
                return member
        return None

    def has_access(self, user_id: str) -> bool:
        return self.member(user_id) is not None

    def is_owner(self, user_id: str) -> bool:
        member = self.member(user_id)
        return member is not None and member.role == ROLE_OWNER

    def pending_invite(self, email: str) -> Optional[Invite]:
        email = normalize_email(email)
        for invite in self.invites:
            if invite.status == INVITE_PENDING and invite.email == email:
                return invite
        return None
