import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from beerich.core.config import settings

logger = logging.getLogger(__name__)

EMAIL_INDEX = "email-index"


def _resource():
    # A session per call; the default boto3 session is not safe to share across request threads.
    return boto3.session.Session().resource(
        "dynamodb",
        region_name=settings.DYNAMO_REGION,
        endpoint_url=settings.DYNAMO_ENDPOINT_URL,
    )


def users_table():
    return _resource().Table(settings.DYNAMO_USERS_TABLE)


def expenses_table():
    return _resource().Table(settings.DYNAMO_EXPENSES_TABLE)


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response["Error"]["Code"] == "ConditionalCheckFailedException"


# Users


def get_user_by_email(email: str):
    """Query the Users table by email through the email GSI."""
    try:
        response = users_table().query(
            IndexName=EMAIL_INDEX,
            KeyConditionExpression=Key("email").eq(email),
        )
    except ClientError as e:
        logger.error(f"get_user_by_email failed: {e.response['Error']['Message']}")
        raise
    return _from_dynamo(response["Items"][0]) if response["Items"] else None


def get_user_by_id(user_id: str):
    try:
        response = users_table().get_item(Key={"user_id": user_id})
    except ClientError as e:
        logger.error(f"get_user_by_id failed: {e.response['Error']['Message']}")
        raise
    item = response.get("Item")
    return _from_dynamo(item) if item else None


def put_user(user_item: dict):
    """Insert a new user into the Users table."""
    try:
        users_table().put_item(
            Item=_convert_for_dynamo(user_item),
            ConditionExpression="attribute_not_exists(user_id)",
        )
    except ClientError as e:
        logger.error(f"put_user failed: {e.response['Error']['Message']}")
        raise


# Expenses


def put_expense(expense_item: dict):
    """Insert a new expense; an existing (user_id, expense_id) is never overwritten."""
    try:
        expenses_table().put_item(
            Item=_convert_for_dynamo(expense_item),
            ConditionExpression="attribute_not_exists(expense_id)",
        )
    except ClientError as e:
        logger.error(f"put_expense failed: {e.response['Error']['Message']}")
        raise


def get_expenses_for_user(user_id: str) -> List[Dict[str, Any]]:
    """
    All expenses owned by user_id, most recently created first.
    """
    items: List[Dict[str, Any]] = []
    kwargs: Dict[str, Any] = {"KeyConditionExpression": Key("user_id").eq(user_id)}
    try:
        while True:
            response = expenses_table().query(**kwargs)
            items.extend(response["Items"])
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
    except ClientError as e:
        logger.error(f"get_expenses_for_user failed: {e.response['Error']['Message']}")
        raise
    items.sort(key=lambda item: item["created_at"], reverse=True)
    return [_from_dynamo(item) for item in items]


def get_expense(user_id: str, expense_id: str):
    """Fetch a single expense item, or None when (user_id, expense_id) does not exist."""
    try:
        response = expenses_table().get_item(Key={"user_id": user_id, "expense_id": expense_id})
    except ClientError as e:
        logger.error(f"get_expense failed: {e.response['Error']['Message']}")
        raise
    item = response.get("Item")
    return _from_dynamo(item) if item else None


def update_expense(user_id: str, expense_id: str, updates: dict, set_if_absent: Optional[dict] = None):
    """
    Apply partial updates to an existing expense. Fields in set_if_absent are
    only written when the stored item does not have them yet.

    Returns the updated item, or None when (user_id, expense_id) does not exist.
    """
    set_if_absent = set_if_absent or {}
    if not updates and not set_if_absent:
        return None

    update_expression_parts = []
    expression_attribute_values = {}
    expression_attribute_names = {}

    for idx, (key, value) in enumerate(list(updates.items()) + list(set_if_absent.items())):
        placeholder = f"#f{idx}"
        value_placeholder = f":v{idx}"
        if key in set_if_absent:
            update_expression_parts.append(f"{placeholder} = if_not_exists({placeholder}, {value_placeholder})")
        else:
            update_expression_parts.append(f"{placeholder} = {value_placeholder}")
        expression_attribute_names[placeholder] = key
        expression_attribute_values[value_placeholder] = value

    update_expression = "SET " + ", ".join(update_expression_parts)

    try:
        response = expenses_table().update_item(
            Key={"user_id": user_id, "expense_id": expense_id},
            UpdateExpression=update_expression,
            ConditionExpression="attribute_exists(expense_id)",
            ExpressionAttributeNames=expression_attribute_names,
            ExpressionAttributeValues=_convert_for_dynamo(expression_attribute_values),
            ReturnValues="ALL_NEW",
        )
    except ClientError as e:
        if _is_conditional_failure(e):
            logger.warning(f"update_expense: no expense {expense_id} for user {user_id}")
            return None
        logger.error(f"update_expense failed: {e.response['Error']['Message']}")
        raise
    return _from_dynamo(response["Attributes"])


def delete_expense(user_id: str, expense_id: str):
    """Delete a specific expense item. Returns the deleted item, or None when it did not exist."""
    try:
        response = expenses_table().delete_item(
            Key={"user_id": user_id, "expense_id": expense_id},
            ConditionExpression="attribute_exists(expense_id)",
            ReturnValues="ALL_OLD",
        )
    except ClientError as e:
        if _is_conditional_failure(e):
            logger.warning(f"delete_expense: no expense {expense_id} for user {user_id}")
            return None
        logger.error(f"delete_expense failed: {e.response['Error']['Message']}")
        raise
    return _from_dynamo(response["Attributes"])


# Tables


def create_tables():
    """
    Create the users and expenses tables when they do not exist yet.
    Intended for local development and tests.
    """
    client = _resource().meta.client
    existing = set(client.list_tables()["TableNames"])

    if settings.DYNAMO_USERS_TABLE not in existing:
        logger.info(f"Creating table {settings.DYNAMO_USERS_TABLE}")
        client.create_table(
            TableName=settings.DYNAMO_USERS_TABLE,
            KeySchema=[{"AttributeName": "user_id", "KeyType": "HASH"}],
            AttributeDefinitions=[
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "email", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": EMAIL_INDEX,
                    "KeySchema": [{"AttributeName": "email", "KeyType": "HASH"}],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )

    if settings.DYNAMO_EXPENSES_TABLE not in existing:
        logger.info(f"Creating table {settings.DYNAMO_EXPENSES_TABLE}")
        client.create_table(
            TableName=settings.DYNAMO_EXPENSES_TABLE,
            KeySchema=[
                {"AttributeName": "user_id", "KeyType": "HASH"},
                {"AttributeName": "expense_id", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "expense_id", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )


def table_status() -> Dict[str, Dict[str, Any]]:
    """Reachability of each table, keyed by its role."""
    status = {}
    for role, table in (("users", users_table()), ("expenses", expenses_table())):
        try:
            table.scan(Limit=1)
            status[role] = {"name": table.name, "status": "accessible"}
        except (ClientError, BotoCoreError) as e:
            logger.error(f"{role} table check failed: {e}")
            status[role] = {"name": table.name, "status": "error", "error": str(e)}
    return status


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj
