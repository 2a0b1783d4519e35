"""Server-rendered pages: the public form and the admin panel."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from fastapi import Depends, FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse
from fastapi.templating import Jinja2Templates

from .auth import (
    LOCKOUT_MESSAGE,
    AdminCredentials,
    AdminSession,
    LoginResult,
    attempt_login,
    failed_login_message,
    get_admin_session,
)
from .dashboard import build_dashboard
from .database import RecordStore, StoreError
from .export import EXPORT_FILENAME, iter_csv
from .gateway import EmailValidationGateway
from .models import Conflict, Failed, NotFound, Saved, UserRecord, parse_positive_int
from .validation import form_constraints, normalize_record, validate_record

logger = logging.getLogger("formpanel.web")

USERS_PAGE_SIZE = 10
SUBMIT_SUCCESS_MESSAGE = "Form submitted successfully!"
SERVER_ERROR_MESSAGE = "Something went wrong on the server. Please try again later."


def _form_values(record: Optional[UserRecord], submitted: Mapping[str, Optional[str]]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    if record is not None:
        values.update({key: value or "" for key, value in record.to_dict().items()})
    values.update({key: value for key, value in submitted.items() if value is not None})
    return values


def register_ui_routes(
    app: FastAPI,
    store: RecordStore,
    gateway: EmailValidationGateway,
    *,
    templates: Jinja2Templates,
    credentials: AdminCredentials,
) -> None:
    """Expose the HTML pages on the provided FastAPI app."""

    def _render(
        request: Request,
        name: str,
        context: Optional[Dict[str, object]] = None,
        *,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        payload: Dict[str, object] = {
            "is_admin": AdminSession.load(request.scope.get("session") or {}).is_admin,
            "constraints": form_constraints(),
            "error": None,
        }
        payload.update(context or {})
        return templates.TemplateResponse(request, name, payload, status_code=status_code)

    def _render_index(
        request: Request,
        *,
        error: Optional[str] = None,
        success: Optional[str] = None,
        validation_message: Optional[str] = None,
        values: Optional[Mapping[str, Optional[str]]] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        return _render(
            request,
            "index.html",
            {
                "error": error,
                "success": success,
                "validation_message": validation_message,
                "values": _form_values(None, values or {}),
            },
            status_code=status_code,
        )

    def _redirect(request: Request, name: str) -> RedirectResponse:
        return RedirectResponse(request.url_for(name), status_code=status.HTTP_303_SEE_OTHER)

    def _redirect_to_login(request: Request) -> RedirectResponse:
        return _redirect(request, "admin_login")

    app.state.render_index = _render_index

    # ------------------------------------------------------------------
    # Public pages
    # ------------------------------------------------------------------
    @app.get("/", response_class=HTMLResponse, name="index")
    async def index(request: Request):
        return _render_index(request)

    @app.get("/about", response_class=HTMLResponse, name="about")
    async def about(request: Request):
        return _render(request, "about.html")

    @app.post("/submit", name="submit")
    async def submit(
        request: Request,
        name: str = Form(""),
        email: str = Form(""),
        dob: str = Form(""),
        contact: str = Form(""),
        state: str = Form(""),
        country: str = Form(""),
    ):
        submitted = {
            "name": name,
            "email": email,
            "dob": dob,
            "contact": contact,
            "state": state,
            "country": country,
        }
        errors = validate_record(submitted)
        if errors:
            return _render_index(
                request,
                error=", ".join(errors),
                values=submitted,
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        fields = normalize_record(submitted)
        check = await gateway.check_email(str(fields["email"]))
        if check.is_invalid:
            return _render_index(
                request,
                error=check.message,
                values=submitted,
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        outcome = store.create(fields, validation_status=check.message)
        if isinstance(outcome, Saved):
            logger.info("Stored submission %s", outcome.record.id)
            return _render_index(
                request,
                success=SUBMIT_SUCCESS_MESSAGE,
                validation_message=check.message,
            )
        if isinstance(outcome, Conflict):
            return _render_index(
                request,
                error=outcome.message,
                values=submitted,
                status_code=status.HTTP_409_CONFLICT,
            )
        detail = outcome.detail if isinstance(outcome, Failed) else "unknown error"
        logger.error("Error saving submission: %s", detail)
        return _render_index(
            request,
            error=f"Server error: {detail}",
            values=submitted,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    # ------------------------------------------------------------------
    # Admin session
    # ------------------------------------------------------------------
    @app.get("/admin", response_class=HTMLResponse, name="admin_login")
    async def admin_login(request: Request):
        return _render(request, "admin.html")

    @app.post("/admin", name="process_admin_login")
    async def process_admin_login(
        request: Request,
        username: str = Form(""),
        password: str = Form(""),
        session: AdminSession = Depends(get_admin_session),
    ):
        result = attempt_login(session, credentials, username, password)
        if result is LoginResult.LOCKED_OUT:
            logger.warning("Rejected admin login from locked-out session")
            return _render(request, "admin.html", {"error": LOCKOUT_MESSAGE})

        if result is LoginResult.SUCCESS:
            request.session.clear()
            session.save(request.session)
            logger.info("Admin signed in")
            return _redirect(request, "dashboard")

        session.save(request.session)
        logger.warning("Failed admin login; %d attempts remaining", session.remaining_attempts)
        return _render(request, "admin.html", {"error": failed_login_message(session)})

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        request.session.clear()
        return _redirect_to_login(request)

    # ------------------------------------------------------------------
    # Admin pages
    # ------------------------------------------------------------------
    @app.get("/dashboard", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request, session: AdminSession = Depends(get_admin_session)):
        if not session.is_admin:
            return _redirect_to_login(request)
        try:
            data = build_dashboard(store)
        except StoreError as exc:
            logger.error("Error loading dashboard: %s", exc)
            return _render(
                request,
                "dashboard.html",
                {"dashboard": None, "error": "Error loading dashboard. Please try again."},
            )
        return _render(
            request,
            "dashboard.html",
            {"dashboard": data, "charts": data.charts()},
        )

    @app.get("/users", response_class=HTMLResponse, name="users")
    async def users(request: Request, session: AdminSession = Depends(get_admin_session)):
        if not session.is_admin:
            return _redirect_to_login(request)
        page_number = parse_positive_int(request.query_params.get("page"), 1)
        try:
            page = store.list_page(page_number, USERS_PAGE_SIZE)
        except StoreError as exc:
            logger.error("Error loading users: %s", exc)
            return _render(
                request,
                "users.html",
                {
                    "users": [],
                    "page": 1,
                    "total_pages": 1,
                    "error": "Error loading users. Please try again.",
                },
            )
        return _render(
            request,
            "users.html",
            {"users": page.records, "page": page.page, "total_pages": page.total_pages},
        )

    @app.get("/create", response_class=HTMLResponse, name="create_user")
    async def create_user(request: Request, session: AdminSession = Depends(get_admin_session)):
        if not session.is_admin:
            return _redirect_to_login(request)
        return _render(request, "create.html", {"values": {}})

    @app.get("/edit/{record_id}", response_class=HTMLResponse, name="edit_user")
    async def edit_user(
        request: Request,
        record_id: str,
        session: AdminSession = Depends(get_admin_session),
    ):
        if not session.is_admin:
            return _redirect_to_login(request)
        try:
            record = store.get(record_id)
        except StoreError as exc:
            logger.error("Error fetching user %s for edit: %s", record_id, exc)
            return _redirect(request, "users")
        if record is None:
            logger.info("User not found for ID: %s", record_id)
            return _redirect(request, "users")
        return _render(
            request,
            "edit.html",
            {"user": record, "values": _form_values(record, {})},
        )

    @app.post("/update/{record_id}", name="update_user")
    async def update_user(
        request: Request,
        record_id: str,
        name: Optional[str] = Form(None),
        email: Optional[str] = Form(None),
        dob: Optional[str] = Form(None),
        contact: Optional[str] = Form(None),
        state: Optional[str] = Form(None),
        country: Optional[str] = Form(None),
        session: AdminSession = Depends(get_admin_session),
    ):
        if not session.is_admin:
            return _redirect_to_login(request)

        try:
            record = store.get(record_id)
        except StoreError as exc:
            logger.error("Error fetching user %s for update: %s", record_id, exc)
            return _redirect(request, "users")
        if record is None:
            return _redirect(request, "users")

        submitted = {
            "name": name,
            "email": email,
            "dob": dob,
            "contact": contact,
            "state": state,
            "country": country,
        }

        def _edit_error(message: str, status_code: int) -> HTMLResponse:
            return _render(
                request,
                "edit.html",
                {"user": record, "values": _form_values(record, submitted), "error": message},
                status_code=status_code,
            )

        errors = validate_record(submitted, partial=True)
        if errors:
            return _edit_error(", ".join(errors), status.HTTP_400_BAD_REQUEST)

        changes = normalize_record(submitted)
        check = await gateway.check_email(str(changes.get("email", record.email)))
        if check.is_invalid:
            return _edit_error(check.message, status.HTTP_400_BAD_REQUEST)
        changes["validation_status"] = check.message

        outcome = store.update(record_id, changes)
        if isinstance(outcome, (Saved, NotFound)):
            return _redirect(request, "users")
        if isinstance(outcome, Conflict):
            return _edit_error(f"Failed to update user: {outcome.message}", status.HTTP_409_CONFLICT)
        logger.error("Error updating user %s: %s", record_id, outcome.detail)
        return _edit_error(
            f"Failed to update user: {outcome.detail or 'Internal server error'}",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.get("/delete/{record_id}", name="delete_user")
    async def delete_user(
        request: Request,
        record_id: str,
        session: AdminSession = Depends(get_admin_session),
    ):
        if not session.is_admin:
            return _redirect_to_login(request)
        try:
            store.delete(record_id)
        except StoreError as exc:
            logger.error("Error deleting user %s: %s", record_id, exc)
        return _redirect(request, "users")

    @app.get("/delete-all", name="delete_all_users")
    async def delete_all_users(request: Request, session: AdminSession = Depends(get_admin_session)):
        if not session.is_admin:
            return _redirect_to_login(request)
        try:
            removed = store.delete_all()
        except StoreError as exc:
            logger.error("Error deleting all users: %s", exc)
        else:
            logger.info("Deleted all %d users", removed)
        return _redirect(request, "users")

    @app.get("/export", name="export_users")
    async def export_users(request: Request, session: AdminSession = Depends(get_admin_session)):
        if not session.is_admin:
            return _redirect_to_login(request)
        try:
            records = store.list_all()
        except StoreError as exc:
            logger.error("Error exporting CSV: %s", exc)
            return _redirect(request, "users")
        return StreamingResponse(
            iter_csv(records),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
        )


__all__ = ["SERVER_ERROR_MESSAGE", "USERS_PAGE_SIZE", "register_ui_routes"]
