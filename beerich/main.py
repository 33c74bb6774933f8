from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import quote
import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from beerich.core.config import settings
from beerich.core.session import LoginRequired, get_user
from beerich.db import dynamo
from beerich.routers import auth, expense_detail, expenses, health
from beerich.utils.rendering import render, wants_json

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Path(settings.ATTACHMENTS_DIR).mkdir(parents=True, exist_ok=True)
    if settings.DYNAMO_CREATE_TABLES:
        logger.info("Ensuring DynamoDB tables exist...")
        dynamo.create_tables()
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan,
)


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    if wants_json(request):
        return JSONResponse({"detail": "Not authenticated"}, status_code=status.HTTP_401_UNAUTHORIZED)
    return RedirectResponse(
        f"/login?redirectTo={quote(exc.redirect_to, safe='')}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if wants_json(request):
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    heading = "Unexpected Error"
    message = "We are very sorry. An error has occurred."
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        heading = "401 Unauthorized"
        message = "Looks like you are trying to visit a page you do not have access to."
    elif exc.status_code == status.HTTP_404_NOT_FOUND:
        heading = "404 Not Found"
        message = "Oops! Looks like you tried to visit a page that does not exist."
    return render(
        request,
        "error.html",
        {"user": get_user(request), "heading": heading, "message": message, "error_message": None},
        status_code=exc.status_code,
    )


def _error_page_user(request: Request):
    # The failure being reported may be the user lookup itself.
    try:
        return get_user(request)
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Could not load user for error page: {e}")
        return None


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    if wants_json(request):
        return JSONResponse({"detail": "Internal server error"}, status_code=500)
    return render(
        request,
        "error.html",
        {
            "user": _error_page_user(request),
            "heading": "Unexpected Error",
            "message": "We are very sorry. An error has occurred.",
            "error_message": str(exc) if settings.DEBUG else None,
        },
        status_code=500,
    )


@app.get("/")
def root():
    return RedirectResponse(expenses.EXPENSES_ROOT, status_code=status.HTTP_303_SEE_OTHER)


# Register routers
app.include_router(health.router, prefix=f"{settings.API_PREFIX}", tags=["Health"])  # /api/health
app.include_router(auth.router, tags=["Auth"])
app.include_router(expenses.router, prefix=expenses.EXPENSES_ROOT, tags=["Expenses"])
app.include_router(expense_detail.router, prefix=expenses.EXPENSES_ROOT, tags=["Expenses"])
