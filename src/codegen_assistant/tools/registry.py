"""Tool executor: name → tool lookup table built once at startup.

``execute`` never raises for expected failures (unknown tool, malformed or
invalid arguments, path violations, I/O and decoding errors).  It returns a readable
error string instead, so the model sees the failure and can adapt.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path

from loguru import logger
from pydantic import ValidationError
from pydantic_ai.tools import ToolDefinition

from codegen_assistant.application.exceptions import PathSecurityError
from codegen_assistant.config import Settings
from codegen_assistant.tools.base import BaseTool
from codegen_assistant.tools.file_tools import (
    DeleteFileTool,
    ModifyFileTool,
    ReadDirTool,
    ReadFileTool,
    WriteFileTool,
)
from codegen_assistant.tools.image_tools import GenerateLogoTool, SearchImagesTool


def parse_arguments(arguments_json: str | None) -> dict:
    """Decode tool arguments; an empty payload means no arguments."""
    if not arguments_json or not arguments_json.strip():
        return {}
    parsed = json.loads(arguments_json)
    if not isinstance(parsed, dict):
        raise ValueError("tool arguments must be a JSON object")
    return parsed


class ToolExecutor:
    """Runs one named tool synchronously and returns its textual result."""

    def __init__(self, tools: Iterable[BaseTool]) -> None:
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def definitions(self) -> list[ToolDefinition]:
        return [tool.describe() for tool in self._tools.values()]

    def execute(self, name: str, arguments_json: str, context_id: str) -> str:
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool | name={}", name)
            return f"Error: Unknown tool '{name}'"

        try:
            arguments = parse_arguments(arguments_json)
        except ValueError as exc:
            return f"Error: invalid arguments for {name}: {exc}"

        try:
            result = tool.execute(arguments, context_id)
        except ValidationError as exc:
            return f"Error: invalid arguments for {name}: {exc.error_count()} validation error(s)\n{exc}"
        except PathSecurityError as exc:
            logger.warning("Rejected tool path | tool={} | context={} | {}", name, context_id, exc)
            return f"Error: {exc}"
        except (OSError, UnicodeError) as exc:
            logger.error("Tool I/O failure | tool={} | context={} | {}", name, context_id, exc)
            return f"Error: {name} failed: {exc}"

        logger.debug("Tool executed | tool={} | context={} | chars={}", name, context_id, len(result))
        return result

    # ------------------------------------------------------------------
    # Caller-facing rendering
    # ------------------------------------------------------------------

    def display_name(self, name: str) -> str:
        tool = self._tools.get(name)
        return tool.display_name if tool else name

    def request_notice(self, name: str) -> str:
        tool = self._tools.get(name)
        return tool.request_notice() if tool else f"[Tool selected] {name}"

    def executed_summary(self, name: str, arguments_json: str) -> str:
        tool = self._tools.get(name)
        if tool is None:
            return f"[{name}]"
        try:
            arguments = parse_arguments(arguments_json)
        except ValueError:
            arguments = {}
        return tool.executed_summary(arguments)


def create_tool_executor(settings: Settings, output_root: Path | None = None) -> ToolExecutor:
    """Build the executor with every tool available to the Vue project pipeline."""
    root = output_root or settings.code_output_root
    return ToolExecutor(
        [
            ReadFileTool(root),
            WriteFileTool(root),
            ModifyFileTool(root),
            DeleteFileTool(root),
            ReadDirTool(root),
            SearchImagesTool(
                root,
                pixabay_api_key=settings.pixabay_api_key,
                pexels_api_key=settings.pexels_api_key,
                timeout=settings.image_request_timeout,
            ),
            GenerateLogoTool(root),
        ]
    )
