from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .board import sanitize_columns
from .db import InviteRecord, MemberRecord, OtpRecord, ProjectRecord, UserRecord, get_db
from .errors import ConflictError, NotFoundError
from .models import INVITE_PENDING, Invite, Member, Project
from .utils import as_utc, new_uuid, normalize_email, now_utc

logger = logging.getLogger(__name__)

CONCURRENT_EDIT_MESSAGE = "Project was modified by another request, please retry"


def _opt_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def invite_from_record(record: InviteRecord) -> Invite:
    return Invite(
        id=record.id,
        email=record.email,
        invited_by=record.invited_by,
        status=record.status,
        invited_at=as_utc(record.invited_at),
        accepted_at=_opt_utc(record.accepted_at),
        cancelled_at=_opt_utc(record.cancelled_at),
    )


def project_from_record(record: ProjectRecord) -> Project:
    return Project(
        id=record.id,
        owner=record.owner_id,
        name=record.name,
        description=record.description or "",
        status=record.status,
        board_type=record.board_type,
        current_sprint=record.current_sprint,
        columns=sanitize_columns(record.columns or []),
        members=[
            Member(
                user=m.user_id,
                role=m.role,
                added_by=m.added_by,
                joined_at=as_utc(m.joined_at),
            )
            for m in record.members
        ],
        invites=[invite_from_record(i) for i in record.invites],
        created_at=as_utc(record.created_at),
        updated_at=as_utc(record.updated_at),
        version=record.version,
    )


class Storage:
    """Session-scoped access to users, OTPs and project aggregates."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # === Users ===
    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.db.get(UserRecord, user_id)

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        return self.db.scalars(
            select(UserRecord).where(UserRecord.email == normalize_email(email))
        ).first()

    def user_id_for_email(self, email: str) -> Optional[str]:
        user = self.find_user_by_email(email)
        return user.id if user else None

    def create_user(self, email: str) -> UserRecord:
        user = UserRecord(id=new_uuid(), email=normalize_email(email), full_name="", password_hash="", token="")
        self.db.add(user)
        self.db.commit()
        logger.info("Created user %s", user.id)
        return user

    def list_users(self) -> List[UserRecord]:
        return list(self.db.scalars(select(UserRecord).order_by(UserRecord.created_at.desc())))

    def save_user(self, user: UserRecord) -> UserRecord:
        self.db.add(user)
        self.db.commit()
        return user

    # === OTPs ===
    def replace_otp(self, email: str, otp_type: str, otp_hash: str, expires_at: datetime) -> OtpRecord:
        email = normalize_email(email)
        self.delete_otps(email, otp_type, commit=False)
        record = OtpRecord(email=email, otp_hash=otp_hash, type=otp_type, expires_at=expires_at)
        self.db.add(record)
        self.db.commit()
        return record

    def latest_otp(self, email: str, otp_type: str) -> Optional[OtpRecord]:
        return self.db.scalars(
            select(OtpRecord)
            .where(OtpRecord.email == normalize_email(email), OtpRecord.type == otp_type)
            .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
        ).first()

    def delete_otps(self, email: str, otp_type: str, commit: bool = True) -> None:
        for record in self.db.scalars(
            select(OtpRecord).where(OtpRecord.email == normalize_email(email), OtpRecord.type == otp_type)
        ).all():
            self.db.delete(record)
        if commit:
            self.db.commit()

    # === Projects ===
    def _accessible(self, user_id: str):
        return (
            select(ProjectRecord)
            .join(MemberRecord, MemberRecord.project_id == ProjectRecord.id)
            .where(MemberRecord.user_id == user_id)
        )

    def add_project(self, project: Project) -> Project:
        record = ProjectRecord(
            id=project.id,
            owner_id=project.owner,
            created_at=project.created_at,
        )
        self.db.add(record)
        self._apply(record, project)
        self.db.commit()
        logger.info("Created project %s for owner %s", project.id, project.owner)
        return project_from_record(record)

    def list_projects_for_user(self, user_id: str) -> List[Project]:
        records = self.db.scalars(
            self._accessible(user_id).order_by(ProjectRecord.created_at.desc())
        )
        return [project_from_record(r) for r in records]

    def get_project(self, project_id: str, user_id: Optional[str] = None) -> Project:
        """Load a project, restricted to members of it when ``user_id`` is given."""
        if user_id is None:
            record = self.db.get(ProjectRecord, project_id)
        else:
            record = self.db.scalars(
                self._accessible(user_id).where(ProjectRecord.id == project_id)
            ).first()
        if record is None:
            raise NotFoundError("Project not found")
        return project_from_record(record)

    def save_project(self, project: Project) -> Project:
        """Write back an aggregate loaded earlier in this session.

        The write is rejected when the stored version moved on since the
        aggregate was read, either before or during the flush.
        """
        record = self.db.get(ProjectRecord, project.id)
        if record is None:
            raise NotFoundError("Project not found")
        if record.version != project.version:
            raise ConflictError(CONCURRENT_EDIT_MESSAGE)
        self._apply(record, project)
        record.updated_at = now_utc()
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConflictError(CONCURRENT_EDIT_MESSAGE)
        return project_from_record(record)

    def _apply(self, record: ProjectRecord, project: Project) -> None:
        record.name = project.name
        record.description = project.description
        record.status = project.status
        record.board_type = project.board_type
        record.current_sprint = project.current_sprint
        record.columns = [column.to_dict() for column in project.columns]

        existing = {m.user_id: m for m in record.members}
        wanted = {m.user for m in project.members}
        for member in project.members:
            row = existing.get(member.user)
            if row is None:
                record.members.append(
                    MemberRecord(
                        user_id=member.user,
                        role=member.role,
                        added_by=member.added_by,
                        joined_at=member.joined_at,
                    )
                )
            else:
                row.role = member.role
        for user_id, row in existing.items():
            if user_id not in wanted:
                record.members.remove(row)

        invites = {i.id: i for i in record.invites}
        for invite in project.invites:
            row = invites.get(invite.id)
            if row is None:
                row = InviteRecord(id=invite.id, email=invite.email, invited_by=invite.invited_by)
                record.invites.append(row)
            row.status = invite.status
            row.invited_at = invite.invited_at
            row.accepted_at = invite.accepted_at
            row.cancelled_at = invite.cancelled_at

    # === Invites ===
    def pending_invites_for_email(self, email: str) -> List[tuple[ProjectRecord, InviteRecord]]:
        rows = self.db.execute(
            select(ProjectRecord, InviteRecord)
            .join(InviteRecord, InviteRecord.project_id == ProjectRecord.id)
            .where(InviteRecord.email == normalize_email(email), InviteRecord.status == INVITE_PENDING)
            .order_by(InviteRecord.invited_at.desc())
        )
        return [(project, invite) for project, invite in rows]


def get_storage(db: Session = Depends(get_db)) -> Storage:
    return Storage(db)
