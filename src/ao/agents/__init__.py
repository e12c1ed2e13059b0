"""Agent roles and their fixed execution order in the linear pipeline."""

from __future__ import annotations

from ..schema import AgentRole
from .base import Agent, AgentCallLog, parse_action

ROLE_SEQUENCE = [
    AgentRole.PLANNER,
    AgentRole.WRITER,
    AgentRole.EDITOR,
    AgentRole.REVIEWER,
]


__all__ = ["Agent", "AgentCallLog", "AgentRole", "ROLE_SEQUENCE", "parse_action"]
