import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.datastructures import FormData

from beerich.core.config import settings
from beerich.core.session import get_user, require_user_id
from beerich.db import dynamo
from beerich.models.expense import ExpenseForm, ExpenseInDB, ExpensePublic, InvalidExpenseInput
from beerich.utils.attachments import (
    ATTACHMENT_FIELD,
    AttachmentTooLarge,
    StoredFile,
    read_form_data,
    remove_attachment,
)
from beerich.utils.rendering import render, wants_json

router = APIRouter()
logger = logging.getLogger(__name__)

EXPENSES_ROOT = "/dashboard/expenses"


def load_expenses(user_id: str, q: Optional[str] = None) -> List[ExpensePublic]:
    """The user's expenses, newest first, optionally narrowed to titles containing q."""
    expenses = [ExpensePublic.from_item(item) for item in dynamo.get_expenses_for_user(user_id)]
    query = (q or "").strip().lower()
    if query:
        expenses = [expense for expense in expenses if query in expense.title.lower()]
    return expenses


async def read_expense_form(request: Request) -> FormData:
    try:
        return await read_form_data(request)
    except AttachmentTooLarge as exc:
        logger.warning(f"Rejected attachment {exc.filename}: larger than {exc.max_bytes} bytes")
        raise HTTPException(status_code=413, detail=str(exc))


def stored_attachments(form: FormData) -> List[str]:
    """Filenames written by the upload handler for this submission, in part order."""
    # Plain text under the attachment name is never trusted as a stored file.
    return [str(value) for value in form.getlist(ATTACHMENT_FIELD) if isinstance(value, StoredFile)]


def stored_attachment(form: FormData) -> Optional[str]:
    """The first stored upload; it is the only one an expense can record."""
    stored = stored_attachments(form)
    return stored[0] if stored else None


def discard_stored_attachments(form: FormData, keep: Optional[str] = None) -> None:
    for filename in stored_attachments(form):
        if filename != keep:
            remove_attachment(filename)


def decode_expense_form(form: FormData) -> ExpenseForm:
    try:
        return ExpenseForm.from_form(form)
    except InvalidExpenseInput as exc:
        discard_stored_attachments(form)
        logger.warning(str(exc))
        raise HTTPException(status_code=422, detail=exc.errors)


def render_expenses_page(request: Request, user_id: str, template: str, context: dict, status_code: int = 200):
    q = request.query_params.get("q", "")
    page = {
        "user": get_user(request),
        "expenses": load_expenses(user_id, q),
        "q": q,
        "active_id": None,
    }
    page.update(context)
    return render(request, template, page, status_code=status_code)


@router.get("")
def list_expenses(request: Request, q: Optional[str] = Query(default=None), user_id: str = Depends(require_user_id)):
    if wants_json(request):
        return [expense.model_dump() for expense in load_expenses(user_id, q)]
    return render_expenses_page(request, user_id, "expenses/index.html", {})


@router.post("")
async def create_expense(request: Request, user_id: str = Depends(require_user_id)):
    form = await read_expense_form(request)
    data = decode_expense_form(form)

    now = datetime.now(timezone.utc).isoformat()
    expense_db = ExpenseInDB(
        user_id=user_id,
        created_at=now,
        updated_at=now,
        currency_code=settings.DEFAULT_CURRENCY_CODE,
        attachment=stored_attachment(form),
        **data.model_dump(),
    )
    dynamo.put_expense(expense_db.to_item())
    discard_stored_attachments(form, keep=expense_db.attachment)
    logger.info(f"Created expense {expense_db.expense_id} for user {user_id}")

    expense = ExpensePublic.from_item(expense_db.to_item())
    if wants_json(request):
        return JSONResponse(expense.model_dump(), status_code=status.HTTP_201_CREATED)
    return RedirectResponse(f"{EXPENSES_ROOT}/{expense.id}", status_code=status.HTTP_303_SEE_OTHER)
