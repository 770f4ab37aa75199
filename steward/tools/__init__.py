"""
Steward Tools - catalog entries, handler envelope and handler adapters
"""

from .catalog import ToolCatalog, UnknownToolError
from .http_handler import HttpToolHandler
from .models import (
    AutonomyLevel,
    CallerContext,
    RiskLevel,
    ToolCategory,
    ToolDefinition,
    ToolResult,
)

__all__ = [
    "AutonomyLevel",
    "CallerContext",
    "HttpToolHandler",
    "RiskLevel",
    "ToolCatalog",
    "ToolCategory",
    "ToolDefinition",
    "ToolResult",
    "UnknownToolError",
]
