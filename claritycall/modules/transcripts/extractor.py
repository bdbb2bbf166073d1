"""Finds structured tool invocations in a conversation transcript.

A transcript is an ordered list of turns, or the provider's envelope
``{"data": {"transcript": [...]}}``. Each turn may carry ``tool_calls``;
each tool call has a ``tool_name`` and its parameters as a JSON string in
``params_as_json``. Invocations whose parameters do not parse to a JSON
object are dropped one at a time; the scan always continues.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import pydantic

from claritycall.logging_config import get_logger
from claritycall.modules.transcripts.models import CreateTaskParams, ToolInvocation

logger = get_logger(__name__)

CREATE_TASK_TOOL = "create_task"


def transcript_turns(transcript: Any) -> list[Any]:
    """Unwrap the provider envelope, if any, to the list of turns."""
    if isinstance(transcript, list):
        return transcript
    if isinstance(transcript, dict):
        data = transcript.get("data")
        turns = data.get("transcript") if isinstance(data, dict) else transcript.get("transcript")
        if isinstance(turns, list):
            return turns
    logger.warning("transcript_invalid_format", kind=type(transcript).__name__)
    return []


def _parse_details(details: Any) -> Optional[Any]:
    if not isinstance(details, dict):
        return None
    parameters = details.get("parameters")
    if isinstance(parameters, str):
        try:
            return json.loads(parameters)
        except ValueError:
            return parameters
    return parameters


def extract(tool_name: str, transcript: Any) -> list[ToolInvocation]:
    """Every ``tool_name`` invocation with an object payload, in transcript order."""
    found: list[ToolInvocation] = []
    for message_index, turn in enumerate(transcript_turns(transcript)):
        if not isinstance(turn, dict):
            continue
        tool_calls = turn.get("tool_calls") or []
        if not isinstance(tool_calls, list):
            continue
        for call_index, call in enumerate(tool_calls):
            if not isinstance(call, dict) or call.get("tool_name") != tool_name:
                continue
            raw = call.get("params_as_json")
            try:
                params = json.loads(raw) if isinstance(raw, str) else None
            except ValueError as exc:
                logger.warning(
                    "tool_call_params_unparseable",
                    tool_name=tool_name,
                    request_id=call.get("request_id"),
                    message_index=message_index,
                    call_index=call_index,
                    error=str(exc),
                )
                continue
            if not isinstance(params, dict):
                logger.warning(
                    "tool_call_params_not_object",
                    tool_name=tool_name,
                    request_id=call.get("request_id"),
                    message_index=message_index,
                    call_index=call_index,
                )
                continue
            found.append(ToolInvocation(
                request_id=str(call.get("request_id") or ""),
                tool_name=tool_name,
                raw_params=raw,
                parsed_params=params,
                parsed_details=_parse_details(call.get("tool_details")),
                message_index=message_index,
                call_index=call_index,
                timestamp=turn.get("time_in_call_secs") or 0,
                role=str(turn.get("role") or ""),
            ))
    logger.debug("tool_calls_extracted", tool_name=tool_name, count=len(found))
    return found


def extract_task_requests(transcript: Any, default_timezone: str) -> list[CreateTaskParams]:
    """Validated, de-duplicated ``create_task`` payloads.

    Duplicates share the same due instant and title; the first one wins.
    """
    requests: list[CreateTaskParams] = []
    seen: set[tuple[Any, str]] = set()
    for invocation in extract(CREATE_TASK_TOOL, transcript):
        try:
            params = CreateTaskParams.model_validate(invocation.parsed_params)
        except pydantic.ValidationError as exc:
            logger.warning(
                "create_task_params_invalid",
                request_id=invocation.request_id,
                errors=[e["msg"] for e in exc.errors()],
            )
            continue
        key = (params.due_at, params.title)
        if key in seen:
            logger.info("create_task_duplicate_skipped", request_id=invocation.request_id, title=params.title)
            continue
        seen.add(key)
        if not params.timezone:
            params = params.model_copy(update={"timezone": default_timezone})
        requests.append(params)
    return requests
