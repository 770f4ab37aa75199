"""
Tool catalog - the static name -> ToolDefinition mapping loaded at startup.

A catalog change requires a redeploy; there is no runtime mutation after
``freeze()``.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import ToolCategory, ToolDefinition

logger = logging.getLogger(__name__)


class UnknownToolError(KeyError):
    """Raised when a tool name is not in the catalog."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(tool_name)

    def __str__(self) -> str:
        return f"Unknown tool: {self.tool_name}"


class ToolCatalog:
    """
    Immutable-after-load registry of tool definitions.

    Usage:
        catalog = ToolCatalog.builtin()
        tool = catalog.get("send_breach_notice")
    """

    def __init__(self, tools: Optional[Iterable[ToolDefinition]] = None):
        self._tools: Dict[str, ToolDefinition] = {}
        self._frozen = False
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if self._frozen:
            raise RuntimeError("Tool catalog is frozen; catalog changes require a redeploy")
        if tool.name in self._tools:
            logger.warning(f"Tool '{tool.name}' redefined in catalog")
        self._tools[tool.name] = tool

    def freeze(self) -> "ToolCatalog":
        self._frozen = True
        return self

    def get(self, tool_name: str) -> ToolDefinition:
        try:
            return self._tools[tool_name]
        except KeyError:
            raise UnknownToolError(tool_name) from None

    def has(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def list(self, category: Optional[ToolCategory] = None) -> List[ToolDefinition]:
        tools = list(self._tools.values())
        if category is not None:
            tools = [t for t in tools if t.category == category]
        return sorted(tools, key=lambda t: t.name)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._tools

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dicts(cls, entries: Iterable[Dict[str, Any]]) -> "ToolCatalog":
        return cls(ToolDefinition.from_dict(e) for e in entries).freeze()

    @classmethod
    def builtin(cls, extra: Optional[Iterable[Dict[str, Any]]] = None) -> "ToolCatalog":
        """Built-in catalog, optionally overlaid with extra entries."""
        from .builtin import BUILTIN_TOOLS

        catalog = cls(BUILTIN_TOOLS)
        for entry in extra or []:
            catalog.register(ToolDefinition.from_dict(entry))
        return catalog.freeze()

    @classmethod
    def from_yaml(cls, path: str, include_builtin: bool = True) -> "ToolCatalog":
        """
        Load a catalog file of the form::

            tools:
              - name: send_breach_notice
                category: action
                risk_level: high
                resilience_policy: action
        """
        from ..config import load_yaml_file

        data = load_yaml_file(path) or {}
        entries = data.get("tools", [])
        if include_builtin:
            return cls.builtin(entries)
        return cls.from_dicts(entries)
