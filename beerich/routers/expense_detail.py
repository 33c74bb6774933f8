"""
Single expense resource: read, update, delete and attachment download.

Errors raised as HTTPException inside these routes are rendered by the
route-local boundary in ``ExpenseRoute``; anything else propagates to the
application-wide handlers.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import urlsplit, urlunsplit

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.routing import APIRoute
from starlette.datastructures import FormData

from beerich.core.session import get_user, require_user_id
from beerich.db import dynamo
from beerich.models.expense import ExpensePublic, Intent
from beerich.routers.expenses import (
    EXPENSES_ROOT,
    decode_expense_form,
    discard_stored_attachments,
    read_expense_form,
    render_expenses_page,
    stored_attachment,
)
from beerich.utils.attachments import attachment_path, remove_attachment
from beerich.utils.rendering import render, wants_json

logger = logging.getLogger(__name__)


def expense_error_response(request: Request, exc: HTTPException) -> Response:
    if wants_json(request):
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    expense_id = request.path_params.get("expense_id")
    heading = "Something went wrong"
    message = "Apologies, something went wrong on our end, please try again."
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        heading = "Expense not found"
        message = f"Apologies, the expense with the id {expense_id} cannot be found."
    return render(
        request,
        "expenses/error.html",
        {"user": get_user(request), "heading": heading, "message": message},
        status_code=exc.status_code,
    )


class ExpenseRoute(APIRoute):
    def get_route_handler(self) -> Callable:
        original_route_handler = super().get_route_handler()

        async def expense_route_handler(request: Request) -> Response:
            try:
                return await original_route_handler(request)
            except HTTPException as exc:
                return expense_error_response(request, exc)

        return expense_route_handler


router = APIRouter(route_class=ExpenseRoute)


def _require_id(expense_id: Optional[str]) -> str:
    if not expense_id:
        raise RuntimeError("id route parameter must be defined")
    return expense_id


def load_expense(user_id: str, expense_id: str) -> ExpensePublic:
    item = dynamo.get_expense(user_id, expense_id)
    if not item:
        raise HTTPException(status_code=404, detail="Not found")
    return ExpensePublic.from_item(item)


def delete_redirect_target(referer: Optional[str], expense_id: str) -> str:
    """
    Where to send the browser after deleting expense_id.

    A referer still pointing at the deleted expense falls back to the list,
    any other referer is honored as a local path with its query string.
    """
    if not referer:
        return EXPENSES_ROOT
    parts = urlsplit(referer)
    path = "/" + parts.path.lstrip("/")
    if expense_id in path.split("/"):
        return EXPENSES_ROOT
    return urlunsplit(("", "", path, parts.query, ""))


def render_expense(request: Request, user_id: str, expense: ExpensePublic, saved: bool = False):
    return render_expenses_page(
        request,
        user_id,
        "expenses/detail.html",
        {"expense": expense, "active_id": expense.id, "saved": saved},
    )


@router.get("/{expense_id}")
def read_expense(request: Request, expense_id: str, user_id: str = Depends(require_user_id)):
    expense = load_expense(user_id, _require_id(expense_id))
    if wants_json(request):
        return expense.model_dump()
    return render_expense(request, user_id, expense)


def delete_expense(request: Request, expense_id: str, user_id: str) -> Response:
    redirect_path = delete_redirect_target(request.headers.get("referer"), expense_id)
    deleted = dynamo.delete_expense(user_id, expense_id)
    if deleted is None:
        raise HTTPException(status_code=404, detail="Not found")
    if deleted.get("attachment"):
        remove_attachment(deleted["attachment"])
    logger.info(f"Deleted expense {expense_id} for user {user_id}")
    return RedirectResponse(redirect_path, status_code=status.HTTP_303_SEE_OTHER)


def update_expense(request: Request, form: FormData, expense_id: str, user_id: str) -> Response:
    data = decode_expense_form(form)
    new_attachment = stored_attachment(form)

    updates = data.model_dump()
    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    set_if_absent = {"attachment": new_attachment} if new_attachment else None

    updated = dynamo.update_expense(user_id, expense_id, updates, set_if_absent=set_if_absent)
    if updated is None:
        discard_stored_attachments(form)
        raise HTTPException(status_code=404, detail="Not found")
    # An existing attachment is never replaced, so the new upload may not be the recorded one.
    discard_stored_attachments(form, keep=updated.get("attachment"))
    logger.info(f"Updated expense {expense_id} for user {user_id}")

    if wants_json(request):
        return JSONResponse({"success": True})
    return render_expense(request, user_id, ExpensePublic.from_item(updated), saved=True)


@router.post("/{expense_id}")
async def expense_action(request: Request, expense_id: str, user_id: str = Depends(require_user_id)):
    expense_id = _require_id(expense_id)
    form = await read_expense_form(request)

    intent = Intent.parse(form.get("intent"))
    if intent is Intent.UPDATE:
        return update_expense(request, form, expense_id, user_id)

    discard_stored_attachments(form)
    if intent is Intent.DELETE:
        return delete_expense(request, expense_id, user_id)
    raise HTTPException(status_code=400, detail="Bad request")


@router.get("/{expense_id}/attachments/{filename}")
def download_attachment(expense_id: str, filename: str, user_id: str = Depends(require_user_id)):
    expense = load_expense(user_id, _require_id(expense_id))
    path = attachment_path(filename) if expense.attachment == filename else None
    if path is None:
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(path, filename=filename, content_disposition_type="inline")
