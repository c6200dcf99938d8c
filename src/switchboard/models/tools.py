"""Tool declarations on the wire, plus the tool-use coaching prompt."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from .base import Tool, ToolChoice
from .translator import WireMessage

DEFAULT_TOOL_CHOICE = "auto"

TOOL_INSTRUCTION_HEADER = (
    "You have access to the following tools. When a task requires one of them, "
    "respond with a structured tool call instead of describing what you would do. "
    "Do not narrate actions you could perform with a tool; call the tool."
)


def declarations_to_wire(tools: Iterable[Tool]) -> List[Dict[str, Any]]:
    """Flatten every declaration of every tool set into chat-completions tool definitions."""
    wire_tools: List[Dict[str, Any]] = []
    for tool in tools:
        for declaration in tool.function_declarations:
            wire_tools.append(
                {
                    "type": "function",
                    "function": {
                        "name": declaration.name or "",
                        "description": declaration.description or "",
                        "parameters": dict(declaration.parameters or {}),
                    },
                }
            )
    return wire_tools


def build_tool_instruction(wire_tools: List[Dict[str, Any]]) -> Optional[WireMessage]:
    """System message coaching the model to call tools; None without tools."""
    if not wire_tools:
        return None

    lines = [TOOL_INSTRUCTION_HEADER, ""]
    for entry in wire_tools:
        function = entry.get("function") or {}
        lines.append(f"- {function.get('name', '')}: {function.get('description', '')}")
        schema = json.dumps(function.get("parameters") or {}, ensure_ascii=False, sort_keys=True)
        lines.append(f"  parameters: {schema}")
    return WireMessage(role="system", content="\n".join(lines))


def apply_tools(messages: List[WireMessage], wire_tools: List[Dict[str, Any]]) -> List[WireMessage]:
    """Prepend the coaching message so it precedes any caller system prompt."""
    instruction = build_tool_instruction(wire_tools)
    if instruction is None:
        return list(messages)
    return [instruction, *messages]


def resolve_tool_choice(choice: Optional[ToolChoice]) -> ToolChoice:
    """Wire ``tool_choice``: "auto" by default, strings pass through, names become function choices."""
    if choice is None:
        return DEFAULT_TOOL_CHOICE
    if isinstance(choice, str):
        return choice
    if choice.get("type") == "function":
        return dict(choice)
    name = choice.get("name") or (choice.get("function") or {}).get("name") or ""
    return {"type": "function", "function": {"name": name}}
