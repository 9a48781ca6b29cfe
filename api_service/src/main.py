"""
FastAPI backend for VeriAct.

Identity is asserted by the authenticating gateway in front of this service
through the ``X-User-Id`` / ``X-User-Email`` headers. Cron endpoints take
``Authorization: Bearer <CRON_SECRET>``; webhooks are signed by their sender.

Endpoints:
    GET    /health                               - Health check
    POST   /extract-actions                      - Transcript text -> action items
    POST   /transcripts/parse                    - TXT / DOCX upload -> text
    POST   /transcribe/upload                    - Audio / video -> transcript (paid plans)
    POST   /storage/upload                       - Store media temporarily
    POST   /storage/upload-url                   - Presigned direct-upload URL
    POST   /storage/cleanup                      - Cron: sweep old media
    POST   /rooms/create                         - Share action items in a room
    GET    /rooms/my-rooms                       - Rooms created by the caller
    POST   /rooms/update-item                    - Set an item's status
    GET    /rooms/{code}                         - Room + items
    DELETE /rooms/{code}                         - Delete (owner)
    POST   /rooms/{code}/join                    - Open a room link
    GET    /rooms/{code}/check-access            - Read-only access check
    POST   /rooms/{code}/invite                  - Invite by e-mail (owner)
    GET    /rooms/{code}/members                 - List members (owner)
    DELETE /rooms/{code}/members                 - Remove member (owner)
    POST   /rooms/{code}/items/{item_id}/toggle  - Cycle an item's status
    POST   /rooms/{code}/export                  - json | csv | ics | md
    POST   /organizations/create | /organizations/join
    GET    /organizations/list
    GET    /subscription/status
    POST   /stripe/create-checkout
    POST   /meeting-bot/request
    GET    /meeting-bot/requests
    POST   /webhooks/recall | /webhooks/stripe
    POST   /reminders/send                       - Cron: reminder e-mails
"""

import hmac
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, File, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import uvicorn

from domain.models import Plan, UserContext
from shared_utils.config_loader import get_settings
from shared_utils.logging_utils import ContextualLogger, configure_logging
from shared_utils.constants import LogScope, APIEndpoints
from shared_utils.error_handler import (
    AppException, AuthenticationError, AuthorizationError, ValidationError, handle_error
)
from shared_utils.validation import InputValidator
from shared_utils.di_container import get_di_container


# ---------------------------------------------------------------------------
# Application bootstrap
# ---------------------------------------------------------------------------

settings = get_settings()
configure_logging(settings.log_level)
logger = ContextualLogger(scope=LogScope.API)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=settings.app_description,
)

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

logger.info("api_initialized", environment=settings.environment)

_STORED_PREFIX = re.compile(r"^\d+-")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _current_user(request: Request) -> UserContext:
    user_id = (request.headers.get("x-user-id") or "").strip()
    if not user_id:
        raise AuthenticationError()
    email = (request.headers.get("x-user-email") or "").strip().lower() or None
    return UserContext(user_id=user_id, email=email)


def _require_cron(request: Request) -> None:
    secret = get_settings().cron_secret
    header = request.headers.get("authorization") or ""
    if not secret or not hmac.compare_digest(header, f"Bearer {secret}"):
        raise AuthenticationError()


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _app_error(e: AppException, event: str) -> JSONResponse:
    logger.warning(event, error_code=e.error_code, http_status=e.http_status)
    return JSONResponse(status_code=e.http_status, content=e.to_dict())


def _unexpected_error(e: Exception) -> JSONResponse:
    error_response = handle_error(e, scope=LogScope.API)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


def _parse_bool(value: Optional[str], default: bool = True) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _parse_version(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("version must be an integer")
    return value


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("Invalid scheduledTime", context={"scheduledTime": value})
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get(APIEndpoints.HEALTH)
def health_check() -> dict:
    """Health check endpoint."""
    logger.debug("health_check_requested")
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": settings.app_version,
    }


# ======================================================================
# Extraction & transcription
# ======================================================================

@app.post(APIEndpoints.EXTRACT_ACTIONS)
@limiter.limit(settings.extraction_rate_limit)
async def extract_actions(request: Request, body: dict) -> JSONResponse:
    """Extract action items from transcript text.

    Body JSON:
        transcript (str): At least 20 characters.
        meetingTitle (str, optional)
    """
    try:
        user = _current_user(request)
        items = get_di_container().get_extraction_service().extract(
            body.get("transcript"),
            meeting_title=body.get("meetingTitle"),
            user_id=user.user_id,
        )
        return JSONResponse(
            content={
                "success": True,
                "actionItems": [_dump(i) for i in items],
                "count": len(items),
            }
        )
    except AppException as e:
        return _app_error(e, "extract_actions_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.PARSE_TRANSCRIPT)
async def parse_transcript(request: Request, file: UploadFile = File(...)) -> JSONResponse:
    """Return the plain text of a TXT or DOCX transcript upload."""
    try:
        _current_user(request)
        from core_intelligence.parser.transcript_reader import read_transcript_file

        text = read_transcript_file(file.filename or "", await file.read())
        return JSONResponse(content={"success": True, "text": text})
    except AppException as e:
        return _app_error(e, "parse_transcript_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.TRANSCRIBE_UPLOAD)
@limiter.limit(settings.transcription_rate_limit)
async def transcribe_upload(
    request: Request,
    file: Optional[UploadFile] = File(None),
    storagePath: Optional[str] = Form(None),
    meetingTitle: Optional[str] = Form(None),
    needsChunking: Optional[str] = Form(None),
) -> JSONResponse:
    """Transcribe an uploaded file or a previously stored object (paid plans)."""
    try:
        user = _current_user(request)
        container = get_di_container()

        info = container.get_access_policy().resolve(user.user_id)
        if info.plan == Plan.FREE:
            raise AuthorizationError("Audio/Video upload requires Pro or Enterprise plan")

        chunking = _parse_bool(needsChunking)
        service = container.get_transcription_service()
        if storagePath:
            result = service.transcribe_stored(storagePath, user.user_id, needs_chunking=chunking)
            filename = _STORED_PREFIX.sub("", result.filename)
        elif file is not None:
            content = await file.read()
            filename = file.filename or "recording"
            result = service.transcribe_bytes(content, filename, needs_chunking=chunking)
        else:
            raise ValidationError("No file or storage path provided")

        title = (meetingTitle or "").strip() or filename.rsplit(".", 1)[0]
        return JSONResponse(
            content={
                "success": True,
                "transcript": result.text,
                "meetingTitle": title,
                "chunkCount": result.chunk_count,
                "wasChunked": result.was_chunked,
            }
        )
    except AppException as e:
        return _app_error(e, "transcribe_upload_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Temporary storage
# ======================================================================

@app.post(APIEndpoints.STORAGE_UPLOAD)
async def storage_upload(request: Request, file: UploadFile = File(...)) -> JSONResponse:
    try:
        user = _current_user(request)
        content = await file.read()
        path = get_di_container().get_media_store().upload(
            content,
            user.user_id,
            InputValidator.sanitize_filename(file.filename or "recording"),
            file.content_type or "",
        )
        return JSONResponse(content={"success": True, "path": path})
    except AppException as e:
        return _app_error(e, "storage_upload_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.STORAGE_UPLOAD_URL)
async def storage_upload_url(request: Request, body: dict) -> JSONResponse:
    """Presigned URL for uploading large media straight to storage.

    Body JSON:
        filename (str)
        contentType (str): Must be in the media allow-list.
    """
    try:
        user = _current_user(request)
        filename = InputValidator.validate_non_empty_string(body.get("filename"), "filename")
        content_type = InputValidator.validate_content_type(body.get("contentType") or "")
        path, url = get_di_container().get_media_store().create_upload_url(
            user.user_id, filename, content_type, settings.signed_url_ttl_seconds
        )
        return JSONResponse(content={"success": True, "path": path, "url": url})
    except AppException as e:
        return _app_error(e, "storage_upload_url_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.STORAGE_CLEANUP)
async def storage_cleanup(request: Request) -> JSONResponse:
    try:
        _require_cron(request)
        deleted = get_di_container().get_media_store().cleanup(settings.storage_retention_hours)
        return JSONResponse(content={"success": True, "deleted": deleted})
    except AppException as e:
        return _app_error(e, "storage_cleanup_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Rooms
# ======================================================================

@app.post(APIEndpoints.ROOMS_CREATE)
async def create_room(request: Request, body: dict) -> JSONResponse:
    """Body JSON: title, actionItems, agreedToPrivacy."""
    try:
        user = _current_user(request)
        room = get_di_container().get_room_service().create_room(
            user,
            body.get("title"),
            body.get("actionItems"),
            bool(body.get("agreedToPrivacy")),
        )
        return JSONResponse(content={"success": True, "room": _dump(room)})
    except AppException as e:
        return _app_error(e, "create_room_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.ROOMS_MINE)
async def my_rooms(request: Request) -> JSONResponse:
    try:
        user = _current_user(request)
        rooms = get_di_container().get_room_service().list_my_rooms(user)
        return JSONResponse(content={"success": True, "rooms": [_dump(r) for r in rooms]})
    except AppException as e:
        return _app_error(e, "my_rooms_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.ROOMS_UPDATE_ITEM)
async def update_item(request: Request, body: dict) -> JSONResponse:
    """Body JSON: itemId, status, roomCode (optional), version (optional)."""
    try:
        user = _current_user(request)
        if not body.get("itemId") or not body.get("status"):
            raise ValidationError("Missing required fields")
        item = get_di_container().get_room_service().update_item_status(
            user,
            body.get("roomCode"),
            body["itemId"],
            body["status"],
            expected_version=_parse_version(body.get("version")),
        )
        return JSONResponse(content={"success": True, "actionItem": _dump(item)})
    except AppException as e:
        return _app_error(e, "update_item_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.ROOM)
async def get_room(request: Request, room_code: str) -> JSONResponse:
    try:
        user = _current_user(request)
        room, items, level = get_di_container().get_room_service().get_room(user, room_code)
        return JSONResponse(
            content={
                "success": True,
                "room": _dump(room),
                "actionItems": [_dump(i) for i in items],
                "accessLevel": level.value,
            }
        )
    except AppException as e:
        return _app_error(e, "get_room_error")
    except Exception as e:
        return _unexpected_error(e)


@app.delete(APIEndpoints.ROOM)
async def delete_room(request: Request, room_code: str) -> JSONResponse:
    try:
        user = _current_user(request)
        get_di_container().get_room_service().delete_room(user, room_code)
        return JSONResponse(content={"success": True})
    except AppException as e:
        return _app_error(e, "delete_room_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.ROOM_JOIN)
async def join_room(request: Request, room_code: str) -> JSONResponse:
    try:
        user = _current_user(request)
        result = get_di_container().get_room_service().join_room(user, room_code)
        return JSONResponse(content=_dump(result))
    except AppException as e:
        return _app_error(e, "join_room_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.ROOM_CHECK_ACCESS)
async def check_room_access(request: Request, room_code: str) -> JSONResponse:
    try:
        user = _current_user(request)
        result = get_di_container().get_room_service().check_access(user, room_code)
        return JSONResponse(content=_dump(result))
    except AppException as e:
        return _app_error(e, "check_access_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.ROOM_INVITE)
async def invite_member(request: Request, room_code: str, body: dict) -> JSONResponse:
    """Body JSON: email, accessLevel (viewer | editor, default editor)."""
    try:
        user = _current_user(request)
        member = get_di_container().get_room_service().invite_member(
            user, room_code, body.get("email"), body.get("accessLevel") or "editor"
        )
        return JSONResponse(content={"success": True, "member": _dump(member)})
    except AppException as e:
        return _app_error(e, "invite_member_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.ROOM_MEMBERS)
async def list_members(request: Request, room_code: str) -> JSONResponse:
    try:
        user = _current_user(request)
        members = get_di_container().get_room_service().list_members(user, room_code)
        return JSONResponse(content={"success": True, "members": [_dump(m) for m in members]})
    except AppException as e:
        return _app_error(e, "list_members_error")
    except Exception as e:
        return _unexpected_error(e)


@app.delete(APIEndpoints.ROOM_MEMBERS)
async def remove_member(request: Request, room_code: str, body: dict) -> JSONResponse:
    """Body JSON: email."""
    try:
        user = _current_user(request)
        get_di_container().get_room_service().remove_member(user, room_code, body.get("email"))
        return JSONResponse(content={"success": True})
    except AppException as e:
        return _app_error(e, "remove_member_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.ROOM_TOGGLE_ITEM)
async def toggle_item(
    request: Request,
    room_code: str,
    item_id: str,
    body: Optional[dict] = Body(None),
) -> JSONResponse:
    """Body JSON (optional): version."""
    try:
        user = _current_user(request)
        item = get_di_container().get_room_service().toggle_item_status(
            user,
            room_code,
            item_id,
            expected_version=_parse_version((body or {}).get("version")),
        )
        return JSONResponse(content={"success": True, "actionItem": _dump(item)})
    except AppException as e:
        return _app_error(e, "toggle_item_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.ROOM_EXPORT)
async def export_room(request: Request, room_code: str, format: str = "json") -> Response:
    try:
        user = _current_user(request)
        container = get_di_container()
        _, items, _ = container.get_room_service().get_room(user, room_code)
        exported = container.get_export_service().export(items, format)
        return Response(
            content=exported.content,
            media_type=exported.media_type,
            headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
        )
    except AppException as e:
        return _app_error(e, "export_room_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Organizations & subscriptions
# ======================================================================

@app.post(APIEndpoints.ORGANIZATIONS_CREATE)
async def create_organization(request: Request, body: dict) -> JSONResponse:
    """Body JSON: organizationName, domain (optional e-mail domain restriction)."""
    try:
        user = _current_user(request)
        org = get_di_container().get_organization_service().create_organization(
            user,
            body.get("organizationName") or body.get("name"),
            body.get("domain"),
        )
        return JSONResponse(
            content={
                "success": True,
                "organization": {"id": org.id, "name": org.name, "token": org.token},
            }
        )
    except AppException as e:
        return _app_error(e, "create_organization_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.ORGANIZATIONS_JOIN)
async def join_organization(request: Request, body: dict) -> JSONResponse:
    """Body JSON: organizationToken."""
    try:
        user = _current_user(request)
        org = get_di_container().get_organization_service().join_organization(
            user, body.get("organizationToken") or body.get("token")
        )
        return JSONResponse(content={"success": True, "organization": {"id": org.id, "name": org.name}})
    except AppException as e:
        return _app_error(e, "join_organization_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.ORGANIZATIONS_LIST)
async def list_organizations(request: Request) -> JSONResponse:
    try:
        user = _current_user(request)
        orgs = get_di_container().get_organization_service().list_organizations(user)
        return JSONResponse(content={"organizations": [_dump(o) for o in orgs]})
    except AppException as e:
        return _app_error(e, "list_organizations_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.SUBSCRIPTION_STATUS)
async def subscription_status(request: Request) -> JSONResponse:
    try:
        user = _current_user(request)
        info = get_di_container().get_access_policy().resolve(user.user_id)
        return JSONResponse(content=_dump(info))
    except AppException as e:
        return _app_error(e, "subscription_status_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.STRIPE_CHECKOUT)
async def create_checkout(request: Request, body: dict) -> JSONResponse:
    """Body JSON: plan (pro | enterprise), organizationId (enterprise only)."""
    try:
        user = _current_user(request)
        url = get_di_container().get_billing_service().create_checkout_session(
            user, body.get("plan"), body.get("organizationId")
        )
        return JSONResponse(content={"success": True, "url": url})
    except AppException as e:
        return _app_error(e, "create_checkout_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Meeting bot
# ======================================================================

@app.post(APIEndpoints.MEETING_BOT_REQUEST)
async def request_meeting_bot(request: Request, body: dict) -> JSONResponse:
    """Body JSON: meetingUrl, platform (optional), scheduledTime (optional ISO-8601)."""
    try:
        user = _current_user(request)
        bot_request = get_di_container().get_meeting_bot_service().request_bot(
            user,
            body.get("meetingUrl"),
            platform=body.get("platform"),
            scheduled_time=_parse_datetime(body.get("scheduledTime")),
        )
        return JSONResponse(content={"success": True, "botRequest": _dump(bot_request)})
    except AppException as e:
        return _app_error(e, "meeting_bot_request_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.MEETING_BOT_REQUESTS)
async def list_meeting_bot_requests(request: Request) -> JSONResponse:
    try:
        user = _current_user(request)
        requests_ = get_di_container().get_meeting_bot_service().list_requests(user)
        return JSONResponse(content={"success": True, "requests": [_dump(r) for r in requests_]})
    except AppException as e:
        return _app_error(e, "meeting_bot_requests_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Webhooks & cron
# ======================================================================

@app.post(APIEndpoints.WEBHOOK_RECALL)
async def recall_webhook(request: Request) -> JSONResponse:
    try:
        body = await request.body()
        get_di_container().get_meeting_bot_service().handle_webhook(
            body, request.headers.get("x-recall-signature")
        )
        return JSONResponse(content={"success": True})
    except AppException as e:
        return _app_error(e, "recall_webhook_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.WEBHOOK_STRIPE)
async def stripe_webhook(request: Request) -> JSONResponse:
    try:
        body = await request.body()
        get_di_container().get_billing_service().handle_webhook(
            body, request.headers.get("stripe-signature")
        )
        return JSONResponse(content={"received": True})
    except AppException as e:
        return _app_error(e, "stripe_webhook_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.REMINDERS_SEND)
async def send_reminders(request: Request) -> JSONResponse:
    try:
        _require_cron(request)
        report = get_di_container().get_reminder_service().send_reminders()
        return JSONResponse(content={"success": True, **_dump(report)})
    except AppException as e:
        return _app_error(e, "send_reminders_error")
    except Exception as e:
        return _unexpected_error(e)


if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.api_port,
        log_level="info"
    )
