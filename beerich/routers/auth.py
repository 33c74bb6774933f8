import logging
from typing import Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from beerich.core.security import get_password_hash, verify_password
from beerich.core.session import create_user_session, destroy_user_session, get_user
from beerich.db import dynamo
from beerich.models.user import UserCreate, UserInDB, UserLogin, UserPublic
from beerich.routers.expenses import EXPENSES_ROOT
from beerich.utils.rendering import render, wants_json

router = APIRouter()
logger = logging.getLogger(__name__)


def safe_redirect(target: Optional[str]) -> str:
    """Only local paths are accepted as post-login destinations."""
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return EXPENSES_ROOT


async def _text_fields(request: Request) -> dict:
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _auth_failure(request: Request, template: str, message: str, status_code: int, form: dict):
    if wants_json(request):
        return JSONResponse({"detail": message}, status_code=status_code)
    return render(
        request,
        template,
        {"error": message, "email": form.get("email", ""), "redirect_to": form.get("redirectTo", "")},
        status_code=status_code,
    )


def _signed_in(request: Request, user: dict, redirect_to: Optional[str]):
    user_public = UserPublic(**user)
    if wants_json(request):
        response = JSONResponse({"user": user_public.model_dump()})
    else:
        response = RedirectResponse(safe_redirect(redirect_to), status_code=status.HTTP_303_SEE_OTHER)
    return create_user_session(response, user_public.user_id)


@router.get("/login")
def login_page(request: Request, redirectTo: Optional[str] = None):
    if get_user(request):
        return RedirectResponse(safe_redirect(redirectTo), status_code=status.HTTP_303_SEE_OTHER)
    return render(request, "login.html", {"redirect_to": redirectTo or ""})


@router.post("/login")
async def login(request: Request):
    form = await _text_fields(request)
    try:
        login_data = UserLogin(email=form.get("email"), password=form.get("password"))
    except ValidationError:
        return _auth_failure(request, "login.html", "Please enter a valid email and password.", 400, form)

    user = dynamo.get_user_by_email(login_data.email)
    if not user or not verify_password(login_data.password, user["password_hash"]):
        logger.warning(f"Failed login for email: {login_data.email}")
        return _auth_failure(request, "login.html", "Invalid credentials", 401, form)

    logger.info(f"Login successful for user: {user['user_id']}")
    return _signed_in(request, user, form.get("redirectTo"))


@router.get("/register")
def register_page(request: Request):
    if get_user(request):
        return RedirectResponse(EXPENSES_ROOT, status_code=status.HTTP_303_SEE_OTHER)
    return render(request, "register.html", {})


@router.post("/register")
async def register(request: Request):
    form = await _text_fields(request)
    try:
        user = UserCreate(email=form.get("email"), password=form.get("password"))
    except ValidationError:
        return _auth_failure(
            request,
            "register.html",
            "Please enter a valid email and a password of at least 8 characters.",
            400,
            form,
        )

    if dynamo.get_user_by_email(user.email):
        return _auth_failure(request, "register.html", "User already exists", 400, form)

    user_db = UserInDB(
        email=user.email,
        name=form.get("name", "").strip(),
        password_hash=get_password_hash(user.password),
    )
    dynamo.put_user(user_db.model_dump())
    logger.info(f"Registered user {user_db.user_id}")
    return _signed_in(request, user_db.model_dump(), form.get("redirectTo"))


@router.post("/logout")
def logout():
    response = RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)
    return destroy_user_session(response)
