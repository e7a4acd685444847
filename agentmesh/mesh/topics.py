"""Mesh layer — topic layout and MQTT wildcard matching.

Every device owns one namespace under the mesh root::

    {root}/{deviceId}/sensors/{sensorName}   sensor display text
    {root}/{deviceId}/cmd/{actuatorName}     actuator commands for this device
    {root}/{deviceId}/status                 heartbeat JSON

A device subscribes to its own ``cmd/+`` and to everyone's ``+/sensors/+``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

SENSORS = "sensors"
CMD = "cmd"
STATUS = "status"


@dataclass(frozen=True)
class ParsedTopic:
    device_id: str
    channel: str
    name: str = ""


@dataclass(frozen=True)
class MeshTopics:
    """Topic builder/parser for one device."""

    root: str
    device_id: str

    def sensor(self, name: str) -> str:
        return f"{self.root}/{self.device_id}/{SENSORS}/{name}"

    def status(self) -> str:
        return f"{self.root}/{self.device_id}/{STATUS}"

    def command_for(self, device_id: str, name: str) -> str:
        return f"{self.root}/{device_id}/{CMD}/{name}"

    def own_commands(self) -> str:
        return f"{self.root}/{self.device_id}/{CMD}/+"

    def all_sensors(self) -> str:
        return f"{self.root}/+/{SENSORS}/+"

    def subscriptions(self) -> list[str]:
        return [self.own_commands(), self.all_sensors()]

    def parse(self, topic: str) -> ParsedTopic | None:
        """Split a topic under this root; None for anything else.

        The name part keeps any further ``/`` separators.
        """
        prefix = f"{self.root}/"
        if not topic.startswith(prefix):
            return None
        parts = topic[len(prefix) :].split("/", 2)
        if len(parts) == 2 and parts[1] == STATUS and parts[0]:
            return ParsedTopic(device_id=parts[0], channel=STATUS)
        if len(parts) == 3 and parts[0] and parts[1] in (SENSORS, CMD) and parts[2]:
            return ParsedTopic(device_id=parts[0], channel=parts[1], name=parts[2])
        return None


def topic_matches(pattern: str, topic: str) -> bool:
    """Return True if *topic* matches the MQTT subscription *pattern*.

    Examples::

        topic_matches("mesh/+/sensors/+", "mesh/node-1/sensors/temp")   → True
        topic_matches("mesh/+/sensors/+", "mesh/node-1/sensors/a/b")    → False
        topic_matches("mesh/#", "mesh")                                 → True
        topic_matches("#", "any/topic/ever")                            → True
    """
    if "#" not in pattern and "+" not in pattern:
        return pattern == topic

    # "a/b/#" also matches "a/b" itself.
    if pattern.endswith("/#"):
        return _prefix_match(pattern[:-2], topic)
    if pattern == "#":
        return True

    regex_parts: list[str] = []
    for segment in re.split(r"(\+)", pattern):
        if segment == "+":
            regex_parts.append(r"[^/]+")
        else:
            regex_parts.append(re.escape(segment))
    return bool(re.fullmatch("".join(regex_parts), topic))


def _prefix_match(head: str, topic: str) -> bool:
    levels = topic.split("/")
    head_levels = head.split("/")
    if len(levels) < len(head_levels):
        return False
    return topic_matches(head, "/".join(levels[: len(head_levels)]))
