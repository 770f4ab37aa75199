"""
Built-in background tasks.

Cron expressions are evaluated in Australia/Sydney.
"""

from typing import List

from ..tools.models import AutonomyLevel
from .models import BackgroundTaskDefinition, TriggerType

CRON = TriggerType.CRON
EVENT = TriggerType.EVENT

BUILTIN_TASKS: List[BackgroundTaskDefinition] = [
    # ── Daily ──
    BackgroundTaskDefinition(
        name="rent_due_detection",
        description="Detect upcoming rent due dates and prepare collection",
        trigger_type=CRON,
        cron_expression="0 6 * * *",
        tools_used=("get_rent_schedule",),
        default_autonomy=AutonomyLevel.AUTONOMOUS,   # read-only
        available_from_level=7,
    ),
    BackgroundTaskDefinition(
        name="autopay_processing",
        description="Process auto-pay for tenants with enabled auto-debit",
        trigger_type=CRON,
        cron_expression="0 6 * * *",
        tools_used=("get_rent_schedule", "collect_rent_stripe", "send_receipt"),
        default_autonomy=AutonomyLevel.EXECUTE,
        available_from_level=7,
    ),
    BackgroundTaskDefinition(
        name="arrears_detection",
        description="Detect new arrears and send initial reminders",
        trigger_type=CRON,
        cron_expression="0 7 * * *",
        tools_used=("get_arrears", "send_rent_reminder"),
        default_autonomy=AutonomyLevel.EXECUTE,
        available_from_level=8,
    ),
    BackgroundTaskDefinition(
        name="arrears_escalation",
        description="Check existing arrears and escalate per schedule",
        trigger_type=CRON,
        cron_expression="0 9 * * *",
        tools_used=("get_arrears", "escalate_arrears", "generate_notice"),
        default_autonomy=AutonomyLevel.SUGGEST,      # escalation needs owner review
        available_from_level=8,
    ),
    BackgroundTaskDefinition(
        name="compliance_checking",
        description="Check compliance deadlines and flag overdue items",
        trigger_type=CRON,
        cron_expression="0 8 * * *",
        tools_used=("get_compliance_status",),
        default_autonomy=AutonomyLevel.AUTONOMOUS,
        available_from_level=15,
    ),
    BackgroundTaskDefinition(
        name="compliance_reminders",
        description="Send reminders for upcoming compliance deadlines",
        trigger_type=CRON,
        cron_expression="30 8 * * *",
        tools_used=("get_compliance_status", "send_message"),
        default_autonomy=AutonomyLevel.DRAFT,
        available_from_level=15,
    ),
    # ── Weekly ──
    BackgroundTaskDefinition(
        name="inspection_scheduling",
        description="Check properties due for routine inspection and schedule",
        trigger_type=CRON,
        cron_expression="0 8 * * 1",
        tools_used=("get_inspections", "get_properties", "schedule_inspection"),
        default_autonomy=AutonomyLevel.EXECUTE,
        available_from_level=11,
    ),
    BackgroundTaskDefinition(
        name="lease_expiry_alert",
        description="Alert owners about leases expiring within 60 days",
        trigger_type=CRON,
        cron_expression="0 8 * * 1",
        tools_used=("get_tenancy", "send_message"),
        default_autonomy=AutonomyLevel.DRAFT,
        available_from_level=6,
    ),
    BackgroundTaskDefinition(
        name="listing_performance",
        description="Review listing performance and suggest adjustments",
        trigger_type=CRON,
        cron_expression="0 17 * * 5",
        tools_used=("get_listings", "analyze_rent"),
        default_autonomy=AutonomyLevel.AUTONOMOUS,
        available_from_level=4,
    ),
    # ── Monthly ──
    BackgroundTaskDefinition(
        name="monthly_reports",
        description="Generate monthly financial reports for all properties",
        trigger_type=CRON,
        cron_expression="0 6 1 * *",
        tools_used=("generate_financial_report",),
        default_autonomy=AutonomyLevel.EXECUTE,
        available_from_level=13,
    ),
    # ── Event-driven ──
    BackgroundTaskDefinition(
        name="payment_retry",
        description="Retry failed payment after delay period",
        trigger_type=EVENT,
        event_name="payment_failed",
        tools_used=("retry_payment", "send_rent_reminder"),
        default_autonomy=AutonomyLevel.EXECUTE,
        available_from_level=7,
    ),
    BackgroundTaskDefinition(
        name="maintenance_triage",
        description="Auto-triage new maintenance requests",
        trigger_type=EVENT,
        event_name="maintenance_created",
        tools_used=("triage_maintenance", "estimate_cost", "send_message"),
        default_autonomy=AutonomyLevel.EXECUTE,
        available_from_level=9,
    ),
]
