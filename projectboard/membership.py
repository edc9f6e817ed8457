"""Project membership and invitation transitions.

Each (project, email) pair moves from no relationship to a pending invite and
then to accepted or cancelled. A later invite opens a fresh pending record.
Batch operations never fail as a whole on a bad entry; every entry lands in
exactly one bucket of the returned results.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Protocol, Tuple

from .errors import ForbiddenError, NotFoundError
from .models import ROLE_COLLABORATOR, ROLE_OWNER, Invite, Member, Project
from .utils import normalize_email, now_utc


class UserDirectory(Protocol):
    def user_id_for_email(self, email: str) -> Optional[str]:
        ...


@dataclass
class InviteResults:
    added: List[str] = field(default_factory=list)
    invited: List[str] = field(default_factory=list)
    already_members: List[str] = field(default_factory=list)
    already_invited: List[str] = field(default_factory=list)
    invalid_emails: List[Any] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.invited)

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "invited": self.invited,
            "alreadyMembers": self.already_members,
            "alreadyInvited": self.already_invited,
            "invalidEmails": self.invalid_emails,
        }


@dataclass
class RevokeResults:
    removed: List[str] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    not_removable: List[str] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)
    invalid_emails: List[Any] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.cancelled)

    def to_dict(self) -> dict:
        return {
            "removed": self.removed,
            "cancelled": self.cancelled,
            "notRemovable": self.not_removable,
            "notFound": self.not_found,
            "invalidEmails": self.invalid_emails,
        }


def parse_emails(entries: Iterable[Any]) -> Tuple[List[str], List[Any]]:
    """Split raw entries into unique normalized emails and rejected entries.

    Accepts plain strings and ``{"email": ...}`` objects.
    """
    emails: List[str] = []
    invalid: List[Any] = []
    seen = set()
    for entry in entries:
        raw = entry.get("email") if isinstance(entry, dict) else entry
        if not isinstance(raw, str):
            invalid.append(entry)
            continue
        email = normalize_email(raw)
        if not email or "@" not in email:
            invalid.append(entry)
            continue
        if email in seen:
            continue
        seen.add(email)
        emails.append(email)
    return emails, invalid


def require_owner(project: Project, user_id: str) -> None:
    if not project.is_owner(user_id):
        raise ForbiddenError("Only the project owner can manage members")


def _add_collaborator(project: Project, user_id: str, added_by: str) -> Member:
    member = Member(user=user_id, role=ROLE_COLLABORATOR, added_by=added_by, joined_at=now_utc())
    project.members.append(member)
    return member


def invite_members(
    project: Project, requester_id: str, entries: Iterable[Any], directory: UserDirectory
) -> InviteResults:
    require_owner(project, requester_id)
    emails, invalid = parse_emails(entries)
    results = InviteResults(invalid_emails=invalid)

    for email in emails:
        user_id = directory.user_id_for_email(email)
        if user_id is not None:
            if project.has_access(user_id):
                results.already_members.append(email)
                continue
            # Known accounts join straight away; an outstanding invite is superseded.
            _add_collaborator(project, user_id, requester_id)
            pending = project.pending_invite(email)
            if pending is not None:
                pending.accept()
            results.added.append(email)
            continue

        if project.pending_invite(email) is not None:
            results.already_invited.append(email)
            continue
        project.invites.append(Invite(email=email, invited_by=requester_id))
        results.invited.append(email)

    return results


def accept_invite(project: Project, user_id: str, email: str) -> Invite:
    invite = project.pending_invite(email)
    if invite is None:
        raise NotFoundError("No pending invite found for this project")
    if not project.has_access(user_id):
        _add_collaborator(project, user_id, invite.invited_by)
    invite.accept()
    return invite


def revoke_access(
    project: Project, requester_id: str, entries: Iterable[Any], directory: UserDirectory
) -> RevokeResults:
    require_owner(project, requester_id)
    emails, invalid = parse_emails(entries)
    results = RevokeResults(invalid_emails=invalid)

    for email in emails:
        user_id = directory.user_id_for_email(email)
        member = project.member(user_id) if user_id is not None else None
        if member is not None and member.role == ROLE_OWNER:
            results.not_removable.append(email)
            continue
        if member is not None:
            project.members.remove(member)
            results.removed.append(email)
            continue

        pending = project.pending_invite(email)
        if pending is not None:
            pending.cancel()
            results.cancelled.append(email)
            continue
        results.not_found.append(email)

    return results
