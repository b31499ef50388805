"""
Document transformer.

Turns the raw text of a dropped file into a ParsedDocument: the JSON object
with ``CreatedAt`` rewritten to a BSON date, and the ``Action`` routing key.
"""

import json
from datetime import timezone
from pathlib import Path
from typing import Any, Dict, Union

from bson import json_util
from bson.json_util import JSONOptions
from pydantic import ValidationError

from app.models.schemas import IngestEnvelope, ParsedDocument
from app.utils.helpers import parse_iso_timestamp
from domains.file_ingest.errors import DocumentParseError, RoutingKeyMissingError

ACTION_FIELD = "Action"
CREATED_AT_FIELD = "CreatedAt"

_DATE_OPTIONS = JSONOptions(tz_aware=True, tzinfo=timezone.utc)


def to_bson_date(value: str):
    """
    Turn an ISO-8601 string into the datetime stored as a BSON date.

    The string itself is not rewritten. Forms the standard library reads
    (date-only, minute precision, offsets) are parsed directly; anything else
    is wrapped in an Extended JSON ``$date`` marker for the driver's decoder.

    Returns:
        Timezone-aware UTC datetime

    Raises:
        DocumentParseError: If neither reader accepts the value
    """
    try:
        return parse_iso_timestamp(value)
    except ValueError:
        pass

    marker = json.dumps({"$date": value})
    try:
        return json_util.loads(marker, json_options=_DATE_OPTIONS)
    except (ValueError, IndexError, TypeError, KeyError) as e:
        raise DocumentParseError(f"{CREATED_AT_FIELD} is not an ISO-8601 date: {value!r}") from e


def _decode_envelope(raw: Dict[str, Any]) -> IngestEnvelope:
    try:
        return IngestEnvelope.model_validate(raw)
    except ValidationError as e:
        for error in e.errors():
            loc = error.get("loc", ())
            if loc and loc[0] == ACTION_FIELD and (
                error["type"] in ("missing", "string_too_short") or error.get("input") is None
            ):
                raise RoutingKeyMissingError(
                    f"Document has no '{ACTION_FIELD}' routing key"
                ) from e
        raise DocumentParseError(f"Document fields have unexpected types: {e}") from e


def transform_document(text: str) -> ParsedDocument:
    """
    Parse document text and prepare it for insertion.

    Args:
        text: Raw JSON text

    Returns:
        ParsedDocument with the routing key and rewritten body

    Raises:
        DocumentParseError: Malformed JSON, non-object top level, bad field types
        RoutingKeyMissingError: ``Action`` absent or empty
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise DocumentParseError(f"Malformed JSON: {e}") from e

    if not isinstance(raw, dict):
        raise DocumentParseError(
            f"Expected a JSON object, got {type(raw).__name__}"
        )

    envelope = _decode_envelope(raw)

    body = dict(raw)
    if CREATED_AT_FIELD in raw and envelope.created_at is not None:
        body[CREATED_AT_FIELD] = to_bson_date(envelope.created_at)

    return ParsedDocument(action=envelope.action, body=body)


def load_document(path: Union[str, Path]) -> ParsedDocument:
    """Read a UTF-8 file and transform its content."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DocumentParseError(f"{path} is not valid UTF-8: {e}") from e
    return transform_document(text)
