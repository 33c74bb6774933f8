from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError, field_validator


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Intent(str, Enum):
    """Mutation selected by the hidden ``intent`` field of the expense form."""

    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: Any) -> Optional["Intent"]:
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class InvalidExpenseInput(ValueError):
    """Raised when submitted expense fields fail to decode."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        fields = ", ".join(str(err["field"]) for err in errors)
        super().__init__(f"Invalid expense input: {fields}")


class ExpenseForm(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str
    # DynamoDB numbers hold 38 significant digits; bounded, cent-rounded amounts always fit.
    amount: float = Field(allow_inf_nan=False, gt=-1e15, lt=1e15)

    @field_validator("amount")
    @classmethod
    def round_to_cents(cls, value: float) -> float:
        return round(value, 2)

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "ExpenseForm":
        """Decode raw form fields, raising InvalidExpenseInput on any mismatch."""
        data = {key: form.get(key) for key in ("title", "description", "amount")}
        # Non-text parts (uploads under a text field name) are rejected outright.
        errors = [
            {"field": key, "message": "Expected a text value"}
            for key, value in data.items()
            if value is not None and not isinstance(value, str)
        ]
        if errors:
            raise InvalidExpenseInput(errors)
        data = {key: value for key, value in data.items() if value is not None}
        for key in ("title", "amount"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip()
        try:
            return cls(**data)
        except ValidationError as exc:
            raise InvalidExpenseInput(
                [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in exc.errors()]
            ) from exc


class ExpenseInDB(BaseModel):
    user_id: str
    expense_id: str = Field(default_factory=lambda: uuid4().hex)
    title: str
    description: str = ""
    amount: float
    currency_code: str
    attachment: Optional[str] = None
    created_at: str = Field(default_factory=_utcnow)
    updated_at: str = Field(default_factory=_utcnow)

    def to_item(self) -> Dict[str, Any]:
        # DynamoDB items simply omit a missing attachment.
        return self.model_dump(exclude_none=True)


class ExpensePublic(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = ""
    amount: float
    currency_code: str
    attachment: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "ExpensePublic":
        data = dict(item)
        data["id"] = data.pop("expense_id")
        return cls(**data)

    @property
    def created_date(self) -> str:
        return datetime.fromisoformat(self.created_at).strftime("%m/%d/%Y")
