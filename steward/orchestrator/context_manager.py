"""Bounded conversation context for the reasoning step.

Step 1 -- Pass through: histories within budget, or of 12 entries or fewer.
Step 2 -- Summarize tool results in the middle (everything except the first
          2 and last 10 entries) down to ``{"success", "summary"}``.
Step 3 -- Drop the middle entirely, leaving one placeholder message.

The first 2 and last 10 entries are never altered. Compacting an already
compacted history yields the same history.
"""

import json
import math
from typing import Any, Dict, List, Optional

from ..constants import DEFAULT_CONTEXT_TOKEN_BUDGET

COMPACTION_PLACEHOLDER = (
    "[Earlier conversation history has been compacted to stay within context limits]"
)


class ContextWindowManager:
    """Keeps a conversation history under a token budget."""

    CHARS_PER_TOKEN = 3.5
    MESSAGE_OVERHEAD = 5
    TOOL_USE_OVERHEAD = 20
    KEEP_HEAD = 2
    KEEP_TAIL = 10

    def __init__(self, token_budget: int = DEFAULT_CONTEXT_TOKEN_BUDGET) -> None:
        self.token_budget = token_budget

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def estimate_text_tokens(self, text: str) -> int:
        return math.ceil(len(text) / self.CHARS_PER_TOKEN)

    def estimate_message_tokens(self, message: Dict[str, Any]) -> int:
        tokens = self.MESSAGE_OVERHEAD
        content = message.get("content")
        if isinstance(content, str):
            tokens += self.estimate_text_tokens(content)
        elif isinstance(content, list):
            for block in content:
                tokens += self._estimate_block_tokens(block)
        for call in message.get("tool_calls") or []:
            # OpenAI-style assistant tool calls
            tokens += self.TOOL_USE_OVERHEAD + self.estimate_text_tokens(json.dumps(call, default=str))
        return tokens

    def _estimate_block_tokens(self, block: Any) -> int:
        if isinstance(block, str):
            return self.estimate_text_tokens(block)
        if not isinstance(block, dict):
            return 0
        block_type = block.get("type")
        if block_type == "tool_use":
            return self.TOOL_USE_OVERHEAD + self.estimate_text_tokens(
                json.dumps(block.get("input", {}), default=str)
            )
        if block_type == "tool_result":
            content = block.get("content")
            if isinstance(content, str):
                return self.estimate_text_tokens(content)
            if isinstance(content, list):
                return sum(self._estimate_block_tokens(part) for part in content)
            return 0
        text = block.get("text")
        if isinstance(text, str):
            return self.estimate_text_tokens(text)
        return 0

    def estimate_tokens(self, messages: List[Dict[str, Any]]) -> int:
        return sum(self.estimate_message_tokens(m) for m in messages)

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    def compact(
        self,
        messages: List[Dict[str, Any]],
        token_budget: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return a history that fits the budget where possible. Input is not mutated."""
        budget = self.token_budget if token_budget is None else token_budget
        keep = self.KEEP_HEAD + self.KEEP_TAIL
        if len(messages) <= keep or self.estimate_tokens(messages) <= budget:
            return list(messages)

        head = list(messages[:self.KEEP_HEAD])
        middle = messages[self.KEEP_HEAD:-self.KEEP_TAIL]
        tail = list(messages[-self.KEEP_TAIL:])

        summarized = head + [self._summarize_message(m) for m in middle] + tail
        if self.estimate_tokens(summarized) <= budget:
            return summarized

        return head + [self.placeholder()] + tail

    @staticmethod
    def placeholder() -> Dict[str, Any]:
        return {"role": "user", "content": COMPACTION_PLACEHOLDER}

    @staticmethod
    def is_placeholder(message: Dict[str, Any]) -> bool:
        return message.get("role") == "user" and message.get("content") == COMPACTION_PLACEHOLDER

    def _summarize_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        if message.get("role") == "tool" and isinstance(message.get("content"), str):
            return {**message, "content": self._summarize_payload(message["content"], False)}
        content = message.get("content")
        if not isinstance(content, list):
            return message
        blocks = []
        changed = False
        for block in content:
            if isinstance(block, dict) and block.get("type") == "tool_result":
                payload = block.get("content")
                if isinstance(payload, list):
                    payload = "".join(
                        p.get("text", "") for p in payload if isinstance(p, dict)
                    )
                summary = self._summarize_payload(payload or "", bool(block.get("is_error")))
                blocks.append({**block, "content": summary})
                changed = True
            else:
                blocks.append(block)
        return {**message, "content": blocks} if changed else message

    @staticmethod
    def _summarize_payload(payload: str, is_error: bool) -> str:
        """Reduce a tool result to its success flag and error (if any)."""
        try:
            parsed = json.loads(payload)
        except (TypeError, ValueError):
            parsed = None
        if isinstance(parsed, dict):
            if set(parsed) == {"success", "summary"}:
                return payload
            error = parsed.get("error")
            success = parsed.get("success", not is_error and not error)
        else:
            error = payload[:200] if is_error else None
            success = not is_error
        return json.dumps({"success": bool(success), "summary": error or "completed"})
