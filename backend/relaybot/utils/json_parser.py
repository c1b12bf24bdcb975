"""
Strict JSON decoding utilities for backend responses.
Handles single JSON documents and newline-delimited JSON streams.
"""
import json
from typing import Any, Dict, List, Optional
import logging

from pydantic import BaseModel

from relaybot.core.errors import MalformedResponseError

logger = logging.getLogger(__name__)


class GenerationResult(BaseModel):
    """Decoded result of a buffered generation stream."""
    text: str
    context: Any
    record_count: int
    model: Optional[str] = None


def parse_json_object(body: str) -> Dict[str, Any]:
    """
    Parse a body that must be a single JSON object.

    Args:
        body: Raw response body

    Returns:
        Parsed dictionary

    Raises:
        MalformedResponseError: If the body is not valid JSON or not an object
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    return data


def parse_json_lines(body: str) -> List[Dict[str, Any]]:
    """
    Parse newline-delimited JSON, one object per non-blank line.

    The first invalid line aborts the whole decode; lines are never skipped.

    Args:
        body: Raw response body

    Returns:
        List of records in stream order

    Raises:
        MalformedResponseError: On the first line that is not a JSON object
    """
    if not isinstance(body, str):
        raise MalformedResponseError(
            f"Response is not text, got {type(body).__name__}"
        )

    records = []
    for number, line in enumerate(body.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            logger.debug(f"Invalid JSON line {number}: {line[:200]}")
            raise MalformedResponseError(f"Invalid JSON on line {number}: {e}") from e
        if not isinstance(record, dict):
            raise MalformedResponseError(
                f"Line {number} is {type(record).__name__}, expected an object"
            )
        records.append(record)
    return records


def decode_generation(body: str) -> GenerationResult:
    """
    Decode a buffered generation stream.

    Concatenates every record's ``response`` text and takes the context from
    the terminal ``done: true`` record.

    Raises:
        MalformedResponseError: If a line is invalid or no terminal record
            carries a context
    """
    records = parse_json_lines(body)

    text = "".join(
        r["response"] for r in records if isinstance(r.get("response"), str)
    ).strip()

    terminal = next(
        (r for r in records if r.get("done") is True and r.get("context") is not None),
        None
    )
    if terminal is None:
        raise MalformedResponseError(
            f"No terminal record with a context in {len(records)} record(s)"
        )

    return GenerationResult(
        text=text,
        context=terminal["context"],
        record_count=len(records),
        model=terminal.get("model")
    )
