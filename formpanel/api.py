"""JSON API mirroring the admin CRUD pages, plus the public email check."""

# Annotations stay evaluated here: FastAPI resolves the rate-limited endpoint's
# signature against the globals of slowapi's wrapper, not this module.

import logging
from typing import Dict, Iterable, Optional, Tuple, Union

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from slowapi import Limiter

from .auth import AdminSession, get_admin_session
from .database import RecordStore, StoreError
from .gateway import EmailStatus, EmailValidationGateway
from .models import Conflict, NotFound, Saved, WriteOutcome, parse_positive_int
from .validation import field_errors, normalize_record

logger = logging.getLogger("formpanel.api")

API_PAGE_SIZE = 50


class RecordPayload(BaseModel):
    """Fields accepted on create and update; absent fields stay ``None``."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    dob: Optional[str] = None
    contact: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scalars_as_text(cls, value: object) -> object:
        # JSON numbers such as a contact of 9876543210 are checked as text.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def fields(self) -> Dict[str, Optional[str]]:
        return self.model_dump()


def _error(status_code: int, message: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _validation_error(errors: Iterable[Tuple[str, str]]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"errors": [{"field": field, "message": message} for field, message in errors]},
    )


async def _read_payload(request: Request) -> Union[RecordPayload, JSONResponse]:
    """Parse the JSON body, answering malformed input in the ``errors`` shape."""

    try:
        body = await request.json()
    except ValueError:
        return _validation_error([("body", "Request body must be a JSON object")])
    if not isinstance(body, dict):
        return _validation_error([("body", "Request body must be a JSON object")])
    try:
        return RecordPayload.model_validate(body)
    except ValidationError as exc:
        errors = []
        for detail in exc.errors():
            location = detail.get("loc") or ("body",)
            errors.append((str(location[0]), f"Invalid value for {location[0]}"))
        return _validation_error(errors)


def _write_response(outcome: WriteOutcome, *, success_status: int, action: str) -> JSONResponse:
    if isinstance(outcome, Saved):
        return JSONResponse(status_code=success_status, content=outcome.record.to_dict())
    if isinstance(outcome, NotFound):
        return _error(status.HTTP_404_NOT_FOUND, "User not found")
    if isinstance(outcome, Conflict):
        return _error(status.HTTP_409_CONFLICT, outcome.message, field=outcome.field)
    logger.error("Error %s user: %s", action, outcome.detail)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, outcome.detail or f"Error {action} user")


def register_api_routes(
    app: FastAPI,
    store: RecordStore,
    gateway: EmailValidationGateway,
    *,
    limiter: Limiter,
    validate_rate_limit: str,
) -> None:
    """Attach the ``/api`` routes to ``app``."""

    router = APIRouter(prefix="/api")

    def _login_redirect(request: Request) -> RedirectResponse:
        return RedirectResponse(request.url_for("admin_login"), status_code=status.HTTP_303_SEE_OTHER)

    @router.get("/validate-email")
    @limiter.limit(validate_rate_limit)
    async def validate_email(request: Request, email: Optional[str] = None):
        address = (email or "").strip()
        if not address:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"isValid": False, "message": "Email is required"},
            )
        check = await gateway.check_email(address)
        status_code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if check.status is EmailStatus.UNAVAILABLE
            else status.HTTP_200_OK
        )
        return JSONResponse(
            status_code=status_code,
            content={"isValid": check.is_valid, "message": check.message},
        )

    @router.get("/users")
    async def list_users(
        request: Request,
        page: Optional[str] = None,
        limit: Optional[str] = None,
        search: Optional[str] = None,
        session: AdminSession = Depends(get_admin_session),
    ):
        if not session.is_admin:
            return _login_redirect(request)
        try:
            result = store.list_page(
                parse_positive_int(page, 1),
                parse_positive_int(limit, API_PAGE_SIZE),
                search=search,
            )
        except StoreError as exc:
            logger.error("Error fetching users: %s", exc)
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Error fetching users",
                users=[],
                page=1,
                totalPages=1,
                totalUsers=0,
            )
        return {
            "users": [record.to_dict() for record in result.records],
            "page": result.page,
            "totalPages": result.total_pages,
            "totalUsers": result.total,
        }

    @router.get("/users/{record_id}")
    async def get_user(
        request: Request,
        record_id: str,
        session: AdminSession = Depends(get_admin_session),
    ):
        if not session.is_admin:
            return _login_redirect(request)
        try:
            record = store.get(record_id)
        except StoreError as exc:
            logger.error("Error fetching user %s: %s", record_id, exc)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error fetching user")
        if record is None:
            return _error(status.HTTP_404_NOT_FOUND, "User not found")
        return record.to_dict()

    @router.post("/users")
    async def create_user(request: Request, session: AdminSession = Depends(get_admin_session)):
        if not session.is_admin:
            return _login_redirect(request)
        payload = await _read_payload(request)
        if isinstance(payload, JSONResponse):
            return payload
        fields = payload.fields()
        errors = field_errors(fields)
        if errors:
            return _validation_error(errors)
        outcome = store.create(normalize_record(fields))
        return _write_response(outcome, success_status=status.HTTP_201_CREATED, action="creating")

    @router.put("/users/{record_id}")
    async def update_user(
        request: Request,
        record_id: str,
        session: AdminSession = Depends(get_admin_session),
    ):
        if not session.is_admin:
            return _login_redirect(request)
        payload = await _read_payload(request)
        if isinstance(payload, JSONResponse):
            return payload
        fields = payload.fields()
        errors = field_errors(fields, partial=True)
        if errors:
            return _validation_error(errors)

        try:
            existing = store.get(record_id)
        except StoreError as exc:
            logger.error("Error fetching user %s: %s", record_id, exc)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error updating user")
        if existing is None:
            return _error(status.HTTP_404_NOT_FOUND, "User not found")

        changes = normalize_record(fields)
        if "email" in changes and changes["email"] != existing.email:
            # The previous check described the old address.
            changes["validation_status"] = None
        outcome = store.update(record_id, changes)
        return _write_response(outcome, success_status=status.HTTP_200_OK, action="updating")

    @router.delete("/users/{record_id}")
    async def delete_user(
        request: Request,
        record_id: str,
        session: AdminSession = Depends(get_admin_session),
    ):
        if not session.is_admin:
            return _login_redirect(request)
        try:
            deleted = store.delete(record_id)
        except StoreError as exc:
            logger.error("Error deleting user %s: %s", record_id, exc)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error deleting user")
        if not deleted:
            return _error(status.HTTP_404_NOT_FOUND, "User not found")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.delete("/users")
    async def delete_all_users(request: Request, session: AdminSession = Depends(get_admin_session)):
        if not session.is_admin:
            return _login_redirect(request)
        try:
            store.delete_all()
        except StoreError as exc:
            logger.error("Error deleting all users: %s", exc)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error deleting all users")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    app.include_router(router)


__all__ = ["API_PAGE_SIZE", "RecordPayload", "register_api_routes"]
