import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query
from fastapi.responses import JSONResponse

from . import mailer
from .auth import (
    OTP_LOGIN,
    OTP_SIGNUP,
    check_secret,
    end_session,
    get_current_user,
    hash_secret,
    issue_otp,
    start_session,
    verify_otp,
)
from .board import build_board, delete_column, insert_column, update_column
from .config import settings
from .db import UserRecord, init_db
from .errors import ForbiddenError, PreconditionFailedError, ValidationError, install_error_handlers
from .membership import accept_invite, invite_members, revoke_access
from .models import Card, Column, Invite, Member, Project
from .schemas import (
    CardOut,
    ColumnIn,
    ColumnOut,
    ColumnPatch,
    EmailIn,
    EmailsIn,
    Health,
    InviteOut,
    LoginIn,
    MemberOut,
    OtpVerifyIn,
    PendingInviteOut,
    ProfileIn,
    ProjectIn,
    ProjectOut,
    ProjectPatch,
    UserOut,
    Version,
)
from .storage import Storage, get_storage, invite_from_record
from .utils import etag_from, normalize_email, send_response

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Projectboard API", version=Version().version, lifespan=lifespan)
install_error_handlers(app)


# === Helpers ===


def card_out(card: Card) -> CardOut:
    return CardOut(
        title=card.title,
        description=card.description,
        status=card.status,
        assignee=card.assignee,
        dueDate=card.due_date,
    )


def column_out(column: Column) -> ColumnOut:
    return ColumnOut(name=column.name, order=column.order, cards=[card_out(c) for c in column.cards])


def member_out(member: Member) -> MemberOut:
    return MemberOut(user=member.user, role=member.role, addedBy=member.added_by, joinedAt=member.joined_at)


def invite_out(invite: Invite) -> InviteOut:
    return InviteOut(
        id=invite.id,
        email=invite.email,
        invitedBy=invite.invited_by,
        status=invite.status,
        invitedAt=invite.invited_at,
        acceptedAt=invite.accepted_at,
        cancelledAt=invite.cancelled_at,
    )


def project_out(project: Project) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        owner=project.owner,
        name=project.name,
        description=project.description,
        status=project.status,
        boardType=project.board_type,
        currentSprint=project.current_sprint,
        columns=[column_out(c) for c in project.columns],
        members=[member_out(m) for m in project.members],
        invites=[invite_out(i) for i in project.invites],
        createdAt=project.created_at,
        updatedAt=project.updated_at,
        version=project.version,
    )


def user_out(user: UserRecord) -> UserOut:
    return UserOut(id=user.id, email=user.email, fullName=user.full_name or "")


def check_if_match(project: Project, if_match: Optional[str]) -> None:
    """Accept ``*``, a single tag or a comma-separated list; weak tags compare by value."""
    if if_match is None:
        return
    current = str(project.version)
    for tag in if_match.split(","):
        tag = tag.strip()
        if tag.startswith("W/"):
            tag = tag[2:]
        if tag == "*" or tag.strip('"') == current:
            return
    raise PreconditionFailedError("Project has changed since it was read")


# === Health & metadata ===


@app.get("/health")
def health() -> JSONResponse:
    return send_response(200, "API is running", status=Health().status)


@app.get("/version")
def version() -> JSONResponse:
    return send_response(200, "Version", version=Version().version)


# === Auth endpoints ===


@app.post("/auth/signup/send-otp")
def signup_send_otp(payload: EmailIn, storage: Storage = Depends(get_storage)) -> JSONResponse:
    email = normalize_email(payload.email)
    otp = issue_otp(storage, email, OTP_SIGNUP)
    mailer.send_otp_mail(email, otp)
    extra = {"otp": otp} if settings.expose_otp else {}
    return send_response(200, "OTP sent to email", **extra)


@app.post("/auth/signup/verify")
def signup_verify(payload: OtpVerifyIn, storage: Storage = Depends(get_storage)) -> JSONResponse:
    email = normalize_email(payload.email)
    verify_otp(storage, email, OTP_SIGNUP, payload.otp)
    user = storage.find_user_by_email(email) or storage.create_user(email)
    token = start_session(storage, user)
    return send_response(200, "Signup success", user=user_out(user), token=token)


@app.post("/auth/login/check-email")
def login_check_email(payload: EmailIn, storage: Storage = Depends(get_storage)) -> JSONResponse:
    user = storage.find_user_by_email(payload.email)
    if user is None:
        return send_response(404, "User not found", exists=False)
    return send_response(
        200,
        "User found",
        exists=True,
        email=user.email,
        hasPassword=bool(user.password_hash),
        fullName=user.full_name or "",
    )


@app.post("/auth/login/send-otp")
def login_send_otp(payload: LoginIn, storage: Storage = Depends(get_storage)) -> JSONResponse:
    email = normalize_email(payload.email)
    user = storage.find_user_by_email(email)
    if user is None:
        raise ValidationError("Invalid credentials")
    if not user.password_hash:
        raise ValidationError("Please complete profile first")
    if not check_secret(payload.password, user.password_hash):
        raise ValidationError("Invalid credentials")

    otp = issue_otp(storage, email, OTP_LOGIN)
    mailer.send_otp_mail(email, otp)
    extra = {"otp": otp} if settings.expose_otp else {}
    return send_response(200, "OTP sent to email", **extra)


@app.post("/auth/login/verify")
def login_verify(payload: OtpVerifyIn, storage: Storage = Depends(get_storage)) -> JSONResponse:
    email = normalize_email(payload.email)
    verify_otp(storage, email, OTP_LOGIN, payload.otp)
    user = storage.find_user_by_email(email)
    if user is None:
        raise ValidationError("User not found")
    token = start_session(storage, user)
    return send_response(200, "Login success", user=user_out(user), token=token)


@app.put("/auth/update-profile")
def update_profile(
    payload: ProfileIn,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    user.full_name = payload.fullName.strip()
    user.password_hash = hash_secret(payload.password)
    storage.save_user(user)
    return send_response(200, "Profile updated successfully", user=user_out(user))


@app.post("/auth/logout")
def logout(
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    end_session(storage, user)
    return send_response(200, "Logout successful")


@app.get("/auth/me")
def me(user: UserRecord = Depends(get_current_user)) -> JSONResponse:
    return send_response(200, "User fetched", user=user_out(user))


@app.get("/users")
def list_users(
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    return send_response(200, "Users fetched", users=[user_out(u) for u in storage.list_users()])


# === Project endpoints ===


@app.post("/projects", status_code=201)
def create_project(
    payload: ProjectIn,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    name = (payload.name or "").strip()
    if not name:
        raise ValidationError("Project name is required")
    project = Project.create(
        owner=user.id,
        name=name,
        description=payload.description or "",
        status=payload.status or "created",
        board_type=payload.boardType or "scrum",
        current_sprint=payload.currentSprint or "Scrum 1",
        columns=build_board(payload.columns or [], enforce_default_card=True),
    )
    project = storage.add_project(project)
    return send_response(201, "Project created successfully", project=project_out(project))


@app.get("/projects")
def list_projects(
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    projects = storage.list_projects_for_user(user.id)
    return send_response(200, "Projects fetched", projects=[project_out(p) for p in projects])


@app.get("/projects/{project_id}")
def get_project(
    project_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    response = send_response(200, "Project fetched", project=project_out(project))
    response.headers["ETag"] = etag_from(project.version)
    return response


@app.put("/projects/{project_id}")
def update_project(
    project_id: str,
    payload: ProjectPatch,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    if not project.is_owner(user.id):
        raise ForbiddenError("Only the project owner can update the project")
    check_if_match(project, if_match)

    if "name" in payload.model_fields_set:
        name = (payload.name or "").strip()
        if not name:
            raise ValidationError("Project name cannot be empty")
        project.name = name
    if payload.description is not None:
        project.description = payload.description
    if payload.status is not None:
        project.status = payload.status
    if payload.boardType is not None:
        project.board_type = payload.boardType
    if payload.currentSprint is not None:
        project.current_sprint = payload.currentSprint
    if payload.columns is not None:
        project.columns = build_board(payload.columns, enforce_default_card=False)

    project = storage.save_project(project)
    return send_response(200, "Project updated", project=project_out(project))


# === Column endpoints ===


@app.get("/projects/{project_id}/columns")
def list_columns(
    project_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    return send_response(200, "Columns fetched", columns=[column_out(c) for c in project.columns])


@app.post("/projects/{project_id}/columns", status_code=201)
def create_column(
    project_id: str,
    payload: ColumnIn,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    check_if_match(project, if_match)
    column = insert_column(project.columns, payload)
    project = storage.save_project(project)
    logger.info("Column %r added to project %s", column.name, project.id)
    return send_response(
        201,
        "Column created",
        column=column_out(column),
        columns=[column_out(c) for c in project.columns],
    )


@app.put("/projects/{project_id}/columns/{column_name:path}")
def edit_column(
    project_id: str,
    column_name: str,
    payload: ColumnPatch,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    check_if_match(project, if_match)
    column = update_column(project.columns, column_name, payload)
    project = storage.save_project(project)
    return send_response(
        200,
        "Column updated",
        column=column_out(column),
        columns=[column_out(c) for c in project.columns],
    )


@app.delete("/projects/{project_id}/columns/{column_name:path}")
def remove_column(
    project_id: str,
    column_name: str,
    target_column: Optional[str] = Query(default=None, alias="targetColumn"),
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    check_if_match(project, if_match)
    removed = delete_column(project.columns, column_name, target_column)
    project = storage.save_project(project)
    logger.info("Column %r removed from project %s", removed.name, project.id)
    return send_response(
        200,
        "Column deleted",
        removedColumn=column_out(removed),
        columns=[column_out(c) for c in project.columns],
    )


# === Membership endpoints ===


@app.get("/projects/{project_id}/members")
def list_members(
    project_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    return send_response(
        200,
        "Members fetched",
        members=[member_out(m) for m in project.members],
        invites=[invite_out(i) for i in project.invites],
    )


@app.post("/projects/{project_id}/invites")
def invite(
    project_id: str,
    payload: EmailsIn,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    check_if_match(project, if_match)
    results = invite_members(project, user.id, payload.emails, storage)
    if results.changed:
        project = storage.save_project(project)
        logger.info(
            "Project %s: %d added, %d invited", project.id, len(results.added), len(results.invited)
        )
    for email in results.invited:
        try:
            mailer.send_invite_mail(email, project.name)
        except OSError:
            logger.exception("Could not send invite mail to %s", email)
    return send_response(200, "Invitations processed", results=results.to_dict())


@app.post("/projects/{project_id}/invites/accept")
def accept(
    project_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    project = storage.get_project(project_id)
    accept_invite(project, user.id, user.email)
    project = storage.save_project(project)
    return send_response(200, "Invite accepted", project=project_out(project))


@app.post("/projects/{project_id}/members/revoke")
def revoke(
    project_id: str,
    payload: EmailsIn,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
) -> JSONResponse:
    project = storage.get_project(project_id, user.id)
    check_if_match(project, if_match)
    results = revoke_access(project, user.id, payload.emails, storage)
    if not results.changed:
        return send_response(404, "No matching members or invites found", result=results.to_dict())
    storage.save_project(project)
    return send_response(200, "Access updated", result=results.to_dict())


@app.get("/invites")
def my_invites(
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
) -> JSONResponse:
    pending = [
        PendingInviteOut(
            projectId=record.id,
            projectName=record.name,
            invite=invite_out(invite_from_record(invite_record)),
        )
        for record, invite_record in storage.pending_invites_for_email(user.email)
    ]
    return send_response(200, "Invites fetched", invites=pending)
