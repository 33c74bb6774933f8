from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.templating import Jinja2Templates

from beerich.core.config import settings

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "INR": "₹",
}


def format_currency(amount: float, currency_code: str = "USD") -> str:
    """en-US style currency formatting, e.g. ``$1,234.50`` or ``-€3.00``."""
    symbol = CURRENCY_SYMBOLS.get(currency_code.upper())
    sign = "-" if amount < 0 else ""
    if symbol is None:
        return f"{sign}{currency_code.upper()} {abs(amount):,.2f}"
    return f"{sign}{symbol}{abs(amount):,.2f}"


templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["currency"] = format_currency
templates.env.globals["project_name"] = settings.PROJECT_NAME


def wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "").lower()


def render(request: Request, name: str, context: Optional[Dict[str, Any]] = None, status_code: int = 200):
    # Templates always see an explicit ``user`` key, None when signed out.
    ctx = {"user": None}
    ctx.update(context or {})
    return templates.TemplateResponse(request, name, ctx, status_code=status_code)
