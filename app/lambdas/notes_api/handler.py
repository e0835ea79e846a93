# app/lambdas/notes_api/handler.py
import json
import os
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

NOTES_TABLE_NAME = os.environ.get("NOTES_TABLE_NAME", "notes")
DYNAMODB_REGION = os.environ.get("DYNAMODB_REGION", "us-west-2")
DEFAULT_LIMIT = 10
NOTE_FIELDS = ("title", "body")

_table = None


def _get_table():
    """Return the process-wide notes table, creating it on first use."""
    global _table
    if _table is None:
        dynamodb = boto3.resource(
            "dynamodb",
            region_name=DYNAMODB_REGION,
            config=Config(
                retries={"max_attempts": 3, "mode": "standard"},
                connect_timeout=5,
                read_timeout=5,
            ),
        )
        _table = dynamodb.Table(NOTES_TABLE_NAME)
    return _table


def _json_default(value):
    # The Table resource hands back every stored number as Decimal
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def send(status_code, data):
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(data, default=_json_default),
    }


def _describe_error(error):
    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        return {"code": err.get("Code"), "message": err.get("Message")}
    return {"type": type(error).__name__, "message": str(error)}


def _failure(message, error):
    return send(500, {"message": message, "error": _describe_error(error)})


def _now_iso():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_body(event):
    """Decode the JSON request body. Returns None when it is not a JSON object."""
    raw = event.get("body") or "{}"
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def _has_non_text_field(payload):
    return any(
        payload.get(f) is not None and not isinstance(payload[f], str)
        for f in NOTE_FIELDS
    )


def _note_id_from_path(event):
    params = event.get("pathParameters") or {}
    return params.get("id") or None


def _parse_limit(event):
    params = event.get("queryStringParameters") or {}
    raw = params.get("limit")
    if raw is None:
        return DEFAULT_LIMIT
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return None
    return limit if limit > 0 else None


def create_note(event, context):
    logger.info("Received event: %s", json.dumps(event))

    payload = _parse_body(event)
    if payload is None:
        return send(400, {"message": "The request body must be a JSON object"})
    if _has_non_text_field(payload):
        return send(400, {"message": "The title and body must be strings"})

    note = {
        "note_id": str(uuid.uuid4()),
        "timestamp": _now_iso(),
    }
    for field in NOTE_FIELDS:
        if payload.get(field) is not None:
            note[field] = payload[field]

    try:
        _get_table().put_item(
            Item=note,
            ConditionExpression="attribute_not_exists(note_id)",
        )
    except Exception as e:
        logger.exception("Failed to create note %s", note["note_id"])
        return _failure("An error occurred while creating the note", e)

    return send(201, {"message": "The note was successfully created", "data": note})


def get_notes(event, context):
    """
    List notes with an unfiltered scan bounded by ``limit``.

    No pagination cursor is consumed or returned and items come back in
    whatever order the table yields them.
    """
    logger.info("Received event: %s", json.dumps(event))

    limit = _parse_limit(event)
    if limit is None:
        return send(400, {"message": "The limit must be a positive integer"})

    try:
        response = _get_table().scan(Limit=limit)
    except Exception as e:
        logger.exception("Failed to scan notes")
        return _failure("An error occurred while retrieving the notes", e)

    return send(200, {
        "message": "The notes were successfully retrieved",
        "data": response.get("Items", []),
    })


def get_note(event, context):
    logger.info("Received event: %s", json.dumps(event))

    note_id = _note_id_from_path(event)
    if not note_id:
        return send(400, {"message": "The request must contain a note id"})

    try:
        response = _get_table().get_item(Key={"note_id": note_id})
    except Exception as e:
        logger.exception("Failed to get note %s", note_id)
        return _failure("An error occurred while retrieving the note", e)

    note = response.get("Item")
    if not note:
        return send(404, {"message": "The note was not found"})

    return send(200, {"message": "The note was successfully retrieved", "data": note})


def update_note(event, context):
    """
    Apply a partial update: only the supplied ``title``/``body`` fields change.

    A missing note fails the condition check and is reported as a 500, the
    same as any other storage error.
    """
    logger.info("Received event: %s", json.dumps(event))

    note_id = _note_id_from_path(event)
    if not note_id:
        return send(400, {"message": "The request must contain a note id"})

    payload = _parse_body(event)
    if payload is None:
        return send(400, {"message": "The request body must be a JSON object"})
    if _has_non_text_field(payload):
        return send(400, {"message": "The title and body must be strings"})

    fields = {f: payload[f] for f in NOTE_FIELDS if payload.get(f)}
    if not fields:
        return send(400, {"message": "The request must contain either a title or a body"})

    update_expression = "SET " + ", ".join(f"#{f} = :{f}" for f in fields)

    try:
        response = _get_table().update_item(
            Key={"note_id": note_id},
            UpdateExpression=update_expression,
            ExpressionAttributeNames={f"#{f}": f for f in fields},
            ExpressionAttributeValues={f":{f}": v for f, v in fields.items()},
            ConditionExpression="attribute_exists(note_id)",
            ReturnValues="ALL_NEW",
        )
    except Exception as e:
        logger.exception("Failed to update note %s", note_id)
        return _failure("An error occurred while updating the note", e)

    return send(200, {
        "message": "The note was successfully updated",
        "data": response.get("Attributes", {}),
    })


def delete_note(event, context):
    logger.info("Received event: %s", json.dumps(event))

    note_id = _note_id_from_path(event)
    if not note_id:
        return send(400, {"message": "The request must contain a note id"})

    try:
        _get_table().delete_item(
            Key={"note_id": note_id},
            ConditionExpression="attribute_exists(note_id)",
        )
    except Exception as e:
        logger.exception("Failed to delete note %s", note_id)
        return _failure("An error occurred while deleting the note", e)

    return send(200, {"message": "The note was successfully deleted"})


def _method(event):
    return (
        event.get("httpMethod")
        or ((event.get("requestContext") or {}).get("http") or {}).get("method", "GET")
    ).upper()


def lambda_handler(event, context):
    """Single entry point routing a proxy event to the matching note operation."""
    method = _method(event)
    has_id = _note_id_from_path(event) is not None

    if method == "POST" and not has_id:
        return create_note(event, context)
    if method == "GET":
        return get_note(event, context) if has_id else get_notes(event, context)
    if method in ("PUT", "PATCH") and has_id:
        return update_note(event, context)
    if method == "DELETE" and has_id:
        return delete_note(event, context)

    return send(405, {"message": "Method not allowed"})
