"""Shared fakes for the Steward test suite."""

import asyncio
import inspect
from typing import Any, Dict, List, Tuple

import pytest

from steward.tools.models import CallerContext


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start_ms: int = 1_767_225_600_000):  # 2026-01-01T00:00:00Z
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class ScriptedHandler:
    """
    Tool handler that replays scripted responses per tool and records calls.

    A response is an envelope dict, an exception to raise, or a callable
    (sync or async) taking the input. Once a tool's script runs out its
    default is used; the overall default is a plain success.
    """

    def __init__(self):
        self.calls: List[Tuple[str, Dict[str, Any], CallerContext]] = []
        self._scripts: Dict[str, List[Any]] = {}
        self._defaults: Dict[str, Any] = {}

    def script(self, tool_name: str, *responses: Any) -> "ScriptedHandler":
        self._scripts.setdefault(tool_name, []).extend(responses)
        return self

    def default(self, tool_name: str, response: Any) -> "ScriptedHandler":
        self._defaults[tool_name] = response
        return self

    def calls_for(self, tool_name: str) -> List[Dict[str, Any]]:
        return [call_input for name, call_input, _ in self.calls if name == tool_name]

    @property
    def tool_names(self) -> List[str]:
        return [name for name, _, _ in self.calls]

    async def execute(self, tool_name: str, input: Dict[str, Any], context: CallerContext) -> Any:
        self.calls.append((tool_name, dict(input), context))
        queue = self._scripts.get(tool_name)
        if queue:
            response = queue.pop(0)
        else:
            response = self._defaults.get(tool_name, {"success": True, "data": {"tool": tool_name}})

        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(input)
            if inspect.isawaitable(response):
                response = await response
        return response


async def slow_response(input: Dict[str, Any]) -> Dict[str, Any]:
    await asyncio.sleep(5)
    return {"success": True, "data": {}}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def handler():
    return ScriptedHandler()


@pytest.fixture
def slow():
    return slow_response
