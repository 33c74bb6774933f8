import io

import pytest
from starlette.datastructures import UploadFile

from beerich.models.expense import ExpenseForm, ExpenseInDB, ExpensePublic, Intent, InvalidExpenseInput


def test_expense_form_parses_amount():
    form = ExpenseForm.from_form({"title": "Dinner", "description": "", "amount": "42.50"})
    assert form.title == "Dinner"
    assert form.description == ""
    assert form.amount == 42.5


@pytest.mark.parametrize("amount", ["abc", "", "nan", "inf", "-Infinity", "1e200", "-1e200", "1e15"])
def test_expense_form_rejects_unstorable_amounts(amount):
    with pytest.raises(InvalidExpenseInput) as excinfo:
        ExpenseForm.from_form({"title": "Dinner", "description": "", "amount": amount})
    assert [err["field"] for err in excinfo.value.errors] == ["amount"]


def test_expense_form_reports_missing_fields():
    with pytest.raises(InvalidExpenseInput) as excinfo:
        ExpenseForm.from_form({"amount": "10"})
    assert {err["field"] for err in excinfo.value.errors} == {"title", "description"}


def test_expense_form_rounds_amount_to_cents():
    assert ExpenseForm.from_form({"title": "Dinner", "description": "", "amount": "1e-200"}).amount == 0
    assert ExpenseForm.from_form({"title": "Dinner", "description": "", "amount": "-7.25"}).amount == -7.25


@pytest.mark.parametrize("title", ["", "   ", "\t\n"])
def test_expense_form_rejects_blank_title(title):
    with pytest.raises(InvalidExpenseInput):
        ExpenseForm.from_form({"title": title, "description": "", "amount": "10"})


def test_expense_form_strips_title():
    assert ExpenseForm.from_form({"title": "  Dinner ", "description": "", "amount": "1"}).title == "Dinner"


def test_expense_form_rejects_file_in_text_field():
    upload = UploadFile(file=io.BytesIO(b"x"), filename="title.txt")
    with pytest.raises(InvalidExpenseInput) as excinfo:
        ExpenseForm.from_form({"title": upload, "description": "", "amount": "10"})
    assert excinfo.value.errors == [{"field": "title", "message": "Expected a text value"}]


@pytest.mark.parametrize(
    "value, expected",
    [("update", Intent.UPDATE), ("delete", Intent.DELETE), ("archive", None), ("", None), (None, None), ("DELETE", None)],
)
def test_intent_parse(value, expected):
    assert Intent.parse(value) is expected


def test_expense_in_db_item_omits_missing_attachment():
    item = ExpenseInDB(user_id="u1", title="Dinner", amount=42.5, currency_code="USD").to_item()
    assert "attachment" not in item
    assert len(item["expense_id"]) == 32


def test_expense_public_from_item_exposes_id():
    item = ExpenseInDB(user_id="u1", title="Dinner", amount=42, currency_code="USD", attachment="r.pdf").to_item()
    expense = ExpensePublic.from_item(item)
    assert expense.id == item["expense_id"]
    assert expense.amount == 42.0
    assert isinstance(expense.amount, float)
    assert expense.attachment == "r.pdf"
