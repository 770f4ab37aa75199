"""Tests for steward.resilience.classifier"""

import asyncio

import pytest

from steward.resilience.classifier import classify_exception, classify_message, classify_result
from steward.resilience.models import ErrorCategory
from steward.tools.models import ToolResult


class TestClassifyMessage:

    @pytest.mark.parametrize("message,category", [
        ("Fraud detected on account", ErrorCategory.SAFETY_HALT),
        ("Payee account frozen by bank", ErrorCategory.SAFETY_HALT),
        ("HTTP 403 forbidden", ErrorCategory.USER_ACTION_REQUIRED),
        ("Card declined", ErrorCategory.USER_ACTION_REQUIRED),
        ("Request timed out", ErrorCategory.TRANSIENT),
        ("429 Too Many Requests", ErrorCategory.TRANSIENT),
        ("ECONNRESET", ErrorCategory.TRANSIENT),
        ("Service degraded, partial results", ErrorCategory.DEGRADED),
        ("HTTP 500", ErrorCategory.PERMANENT_SYSTEM),
        ("Stripe key not configured", ErrorCategory.PERMANENT_SYSTEM),
        ("Tenant not found", ErrorCategory.PERMANENT_LOGIC),
        ("", ErrorCategory.PERMANENT_LOGIC),
    ])
    def test_patterns(self, message, category):
        assert classify_message(message) == category

    def test_status_codes_match_whole_numbers(self):
        assert classify_message("Invoice total 5000 exceeds limit") == ErrorCategory.PERMANENT_LOGIC

    def test_safety_halt_wins_over_transient(self):
        assert classify_message("fraud check timed out") == ErrorCategory.SAFETY_HALT


class TestClassifyResult:

    def test_explicit_category_wins(self):
        result = ToolResult(success=False, error="timeout", error_category="safety_halt")
        assert classify_result(result) == ErrorCategory.SAFETY_HALT

    def test_unknown_category_falls_back_to_message(self):
        result = ToolResult(success=False, error="timeout", error_category="bogus")
        assert classify_result(result) == ErrorCategory.TRANSIENT

    def test_no_error_text(self):
        assert classify_result(ToolResult(success=False)) == ErrorCategory.PERMANENT_LOGIC


class _DeclaredError(Exception):
    error_category = "user_action_required"


class TestClassifyException:

    @pytest.mark.parametrize("error,category", [
        (asyncio.TimeoutError(), ErrorCategory.TRANSIENT),
        (TimeoutError("slow"), ErrorCategory.TRANSIENT),
        (ConnectionResetError("peer reset"), ErrorCategory.TRANSIENT),
        (OSError("broken pipe"), ErrorCategory.TRANSIENT),
        (_DeclaredError("reconnect the bank"), ErrorCategory.USER_ACTION_REQUIRED),
        (RuntimeError("database error"), ErrorCategory.PERMANENT_SYSTEM),
        (ValueError("bad tenant id"), ErrorCategory.PERMANENT_LOGIC),
    ])
    def test_exceptions(self, error, category):
        assert classify_exception(error) == category


class TestCategoryProperties:

    @pytest.mark.parametrize("category,fallback,trips", [
        (ErrorCategory.TRANSIENT, True, True),
        (ErrorCategory.DEGRADED, True, True),
        (ErrorCategory.PERMANENT_SYSTEM, True, True),
        (ErrorCategory.PERMANENT_LOGIC, False, False),
        (ErrorCategory.USER_ACTION_REQUIRED, False, False),
        (ErrorCategory.SAFETY_HALT, False, False),
    ])
    def test_fallback_and_circuit(self, category, fallback, trips):
        assert category.allows_fallback is fallback
        assert category.trips_circuit is trips
