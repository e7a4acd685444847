"""Agent layer — Action executor.

Turns model output into actuator commands.  The model is told (see
:func:`~agentmesh.io.sensors.build_context`) to embed a block like::

    {"actions": [{"name": "LED", "state": true}, {"name": "Fan", "pwm": 128}]}

anywhere in its reply.  The executor finds the first such block, parses it,
validates each entry on its own and applies it through
:meth:`SlotTable.set_actuator`.  Nothing here raises: a reply without a
usable block yields an empty result list, and a bad entry yields a REJECTED
result without affecting its siblings.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, ValidationError

from agentmesh.io.models import FULL_SCALE
from agentmesh.io.slots import SlotTable
from agentmesh.logging import get_logger

log = get_logger(__name__)

_MARKER = re.compile(r'\{\s*"actions"\s*:')


class ActionStatus(str, Enum):
    APPLIED = "applied"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


class ActionResult(BaseModel):
    name: str
    status: ActionStatus
    detail: str = ""


class ActionEntry(BaseModel):
    """One entry of the ``actions`` list."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    state: StrictBool | None = None
    pwm: Annotated[StrictInt, Field(ge=0, le=FULL_SCALE)] | None = None


def extract_action_block(text: str) -> str | None:
    """Return the JSON text of the first ``{"actions": ...}`` object, or None.

    Braces are matched by depth, skipping those inside JSON strings, so
    nested objects and braces in names do not cut the block short.
    """
    match = _MARKER.search(text)
    if match is None:
        return None

    start = match.start()
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def parse_actions(text: str) -> list[Any] | None:
    """Return the raw ``actions`` list from *text*, or None when there is none."""
    block = extract_action_block(text)
    if block is None:
        return None
    try:
        data = json.loads(block)
    except ValueError as exc:
        log.debug("action_block_unparseable", error=str(exc))
        return None
    actions = data.get("actions")
    if not isinstance(actions, list):
        log.debug("action_block_not_a_list", type=type(actions).__name__)
        return None
    return actions


class ActionExecutor:
    """Apply the action block of an LLM reply to the slot table."""

    def __init__(self, slots: SlotTable) -> None:
        self._slots = slots

    def apply_actions(self, reply_text: str) -> list[ActionResult]:
        raw_actions = parse_actions(reply_text)
        if raw_actions is None:
            return []

        results = [self._apply_one(raw) for raw in raw_actions]
        log.info(
            "actions_applied",
            total=len(results),
            applied=sum(r.status is ActionStatus.APPLIED for r in results),
        )
        return results

    def _apply_one(self, raw: Any) -> ActionResult:
        try:
            entry = ActionEntry.model_validate(raw)
        except ValidationError as exc:
            name = raw.get("name") if isinstance(raw, dict) else None
            return ActionResult(
                name=name if isinstance(name, str) else "",
                status=ActionStatus.REJECTED,
                detail=f"invalid entry: {exc.errors()[0]['msg']}",
            )

        if entry.state is None and entry.pwm is None:
            return ActionResult(
                name=entry.name,
                status=ActionStatus.REJECTED,
                detail="entry has neither 'state' nor 'pwm'",
            )

        actuator = self._slots.find_actuator(entry.name)
        if actuator is None:
            return ActionResult(name=entry.name, status=ActionStatus.NOT_FOUND, detail="unknown actuator")

        on = entry.state if entry.state is not None else entry.pwm > 0
        if self._slots.set_actuator(actuator.name, on, entry.pwm):
            return ActionResult(name=actuator.name, status=ActionStatus.APPLIED)
        return ActionResult(
            name=actuator.name,
            status=ActionStatus.REJECTED,
            detail="actuator disabled or write failed",
        )
