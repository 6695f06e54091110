"""Convert trace CSV exports into conversation records."""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any

from utils.data_helpers import iso_utc

logger = logging.getLogger(__name__)

INPUT_MESSAGES_COL = "attributes.llm.input_messages"
OUTPUT_MESSAGES_COL = "attributes.llm.output_messages"
METADATA_COL = "attributes.metadata"

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


class RowRejected(ValueError):
    """Raised when a CSV row cannot become a conversation record."""


def parse_csv_row(row: str) -> list[str]:
    """Split one CSV line into trimmed fields, honouring double-quote escaping."""
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(row):
        ch = row[i]
        if ch == '"':
            if in_quotes and i + 1 < len(row) and row[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1

    fields.append("".join(current).strip())
    return fields


def split_csv_lines(text: str) -> list[str]:
    """Split CSV text into non-blank lines.

    Splitting happens before quote handling, so a quoted cell that contains a
    newline is broken across two lines (and the row usually fails the field
    count check).
    """
    return [ln for ln in (text or "").split("\n") if ln.strip()]


def parse_optional_int(value: Any) -> int | None:
    if value is None:
        return None
    m = _LEADING_INT_RE.match(str(value))
    if not m:
        return None
    return int(m.group(1))


def parse_optional_bool(value: Any) -> bool | None:
    if value is None:
        return None
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def trimmed_or_none(value: Any) -> str | None:
    if value is None:
        return None
    out = str(value).strip()
    return out or None


def _drop_none(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


def _json_array(row: dict[str, str], column: str) -> list[Any]:
    raw = row.get(column)
    if raw is None:
        raise RowRejected(f"missing column {column}")
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise RowRejected(f"invalid JSON in {column}: {e}") from e
    if not isinstance(parsed, list):
        raise RowRejected(f"{column} is not a JSON array")
    return parsed


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _tool_call_content(tool_calls: list[Any]) -> str:
    """Pick the reviewer-facing text out of assistant tool calls.

    Later tool calls win; `feedback` is preferred over `analysis`, and
    arguments that are not valid JSON are shown verbatim.
    """
    content = ""
    for call in tool_calls:
        if not isinstance(call, dict):
            continue
        raw_args = call.get("tool_call.function.arguments")
        if not raw_args:
            continue
        try:
            args = json.loads(raw_args)
        except (json.JSONDecodeError, TypeError):
            content = _as_text(raw_args)
            continue
        if isinstance(args, dict):
            if args.get("feedback"):
                content = _as_text(args["feedback"])
            elif args.get("analysis"):
                content = _as_text(args["analysis"])
    return content


def extract_chat_turns(
    input_messages: list[Any],
    output_messages: list[Any],
    *,
    start_time: str | None,
    end_time: str | None,
    now_iso: str,
) -> list[dict[str, Any]]:
    """Build user/assistant chat turns from OpenInference message arrays."""
    turns: list[dict[str, Any]] = []

    for msg in input_messages:
        if not isinstance(msg, dict) or msg.get("message.role") != "user":
            continue
        content = _as_text(msg.get("message.content"))
        if content:
            turns.append({"role": "user", "content": content, "timestamp": start_time or now_iso})

    for msg in output_messages:
        if not isinstance(msg, dict) or msg.get("message.role") != "assistant":
            continue
        tool_calls = msg.get("message.tool_calls")
        # an empty tool_calls list still suppresses message.content
        if isinstance(tool_calls, (list, dict)) or tool_calls:
            content = _tool_call_content(tool_calls if isinstance(tool_calls, list) else [])
        else:
            content = _as_text(msg.get("message.content"))
        if content:
            turns.append({"role": "assistant", "content": content, "timestamp": end_time or now_iso})

    return turns


def _parse_metadata(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Error parsing %s; continuing with empty metadata", METADATA_COL)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _id_name(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return None
    return _drop_none(
        {
            "id": parse_optional_int(value.get("id")),
            "name": trimmed_or_none(value.get("name")),
        }
    )


def build_metadata(meta: dict[str, Any], row_user_id: str | None) -> dict[str, Any]:
    """Map the JSON metadata column onto the record's metadata sub-object."""
    user_id = parse_optional_int(meta.get("user_id"))
    if user_id is None:
        user_id = parse_optional_int(row_user_id)

    return _drop_none(
        {
            "stage": trimmed_or_none(meta.get("stage")),
            "task_id": parse_optional_int(meta.get("task_id")),
            "user_id": user_id,
            "type": trimmed_or_none(meta.get("type")),
            "question_id": parse_optional_int(meta.get("question_id")),
            "question_type": trimmed_or_none(meta.get("question_type")),
            "question_purpose": trimmed_or_none(meta.get("question_purpose")),
            "question_input_type": trimmed_or_none(meta.get("question_input_type")),
            "question_has_context": parse_optional_bool(meta.get("question_has_context")),
            "course": _id_name(meta.get("course")),
            "milestone": _id_name(meta.get("milestone")),
            "org": _id_name(meta.get("org")),
        }
    )


def normalize_trace_row(
    row: dict[str, str],
    uploaded_by: str,
    row_index: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Turn one header-keyed CSV row (a serialized LLM span) into a conversation record.

    Raises RowRejected when the message columns are not JSON arrays or when
    no chat turn could be extracted.
    """
    now_iso = iso_utc(now or datetime.now(timezone.utc))
    start_time = trimmed_or_none(row.get("start_time"))
    end_time = trimmed_or_none(row.get("end_time"))

    messages = extract_chat_turns(
        _json_array(row, INPUT_MESSAGES_COL),
        _json_array(row, OUTPUT_MESSAGES_COL),
        start_time=row.get("start_time") or None,
        end_time=row.get("end_time") or None,
        now_iso=now_iso,
    )
    if not messages:
        raise RowRejected("no chat turns")

    meta = _parse_metadata(row.get(METADATA_COL))
    row_user_id = trimmed_or_none(row.get("attributes.user.id") or row.get("user_id"))
    span_id = trimmed_or_none(row.get("context.span_id")) or f"span-{row_index}"

    return _drop_none(
        {
            "id": f"csv-{span_id}-{row_index}",
            "start_time": start_time,
            "end_time": end_time,
            "createdAt": trimmed_or_none(row.get("createdAt")) or start_time,
            "uploaded_by": uploaded_by,
            "metadata": build_metadata(meta, row_user_id),
            "messages": messages,
            "span_id": span_id,
            "trace_id": trimmed_or_none(row.get("context.trace_id")),
            "span_kind": trimmed_or_none(row.get("span_kind")),
            "span_name": trimmed_or_none(row.get("name")),
            "model_name": trimmed_or_none(row.get("attributes.llm.model_name")),
        }
    )


def csv_to_conversations(
    csv_text: str,
    uploaded_by: str,
    now: datetime | None = None,
) -> tuple[list[dict[str, Any]], dict[str, int]]:
    """Parse a whole CSV export; bad rows are skipped and counted, never raised."""
    stats = {
        "rows": 0,
        "loaded": 0,
        "field_mismatch": 0,
        "rejected": 0,
    }
    lines = split_csv_lines(csv_text)
    if len(lines) < 2:
        return [], stats

    headers = [h.strip() for h in parse_csv_row(lines[0])]
    records: list[dict[str, Any]] = []

    for i, line in enumerate(lines[1:], start=1):
        stats["rows"] += 1
        values = parse_csv_row(line)
        if len(values) != len(headers):
            stats["field_mismatch"] += 1
            continue

        row = dict(zip(headers, values))
        try:
            records.append(normalize_trace_row(row, uploaded_by, i, now=now))
        except RowRejected as e:
            logger.debug("Skipping CSV row %d: %s", i, e)
            stats["rejected"] += 1
            continue
        except Exception:
            logger.exception("Error parsing CSV row %d", i)
            stats["rejected"] += 1
            continue
        stats["loaded"] += 1

    return records, stats
