"""
Built-in workflow definitions.

Five long-running compositions with gates, compensation and checkpointing:
find tenant, onboard tenant, end tenancy, maintenance lifecycle and
arrears escalation.
"""

from typing import Dict, List

from .models import GateType, ParamMode, WorkflowDefinition, WorkflowStep

DAY_MS = 24 * 60 * 60 * 1000

PREV = ParamMode.FROM_PREVIOUS
CTX = ParamMode.FROM_CONTEXT
APPROVAL = GateType.OWNER_APPROVAL
WEBHOOK = GateType.WEBHOOK_WAIT
SCHEDULE = GateType.SCHEDULE_WAIT


def _steps(*steps: Dict) -> List[WorkflowStep]:
    return [WorkflowStep(index=i, **step) for i, step in enumerate(steps)]


WORKFLOW_FIND_TENANT = WorkflowDefinition(
    name="workflow_find_tenant",
    description="Full tenant finding: generate listing, syndicate, screen applications, recommend",
    steps=_steps(
        dict(tool_name="get_property", param_mode=CTX,
             description="Load property details for listing generation"),
        dict(tool_name="generate_listing", param_mode=PREV,
             description="Generate listing copy from property data"),
        dict(tool_name="suggest_rent_price", param_mode=PREV,
             description="Suggest optimal rent price from comparables"),
        dict(tool_name="create_listing", param_mode=PREV, gate=APPROVAL,
             compensation_tool="pause_listing",
             description="Create draft listing (owner reviews before publish)"),
        dict(tool_name="publish_listing", param_mode=PREV,
             compensation_tool="pause_listing",
             description="Publish approved listing"),
        dict(tool_name="syndicate_listing_domain", param_mode=PREV, optional=True,
             description="Syndicate to Domain (optional, queued on failure)"),
        dict(tool_name="syndicate_listing_rea", param_mode=PREV, optional=True,
             description="Syndicate to realestate.com.au (optional, queued on failure)"),
        dict(tool_name="get_applications", param_mode=PREV, gate=WEBHOOK,
             description="Wait for applications to arrive, then retrieve them"),
        dict(tool_name="score_application", param_mode=PREV, per_item=True,
             description="Score each application"),
        dict(tool_name="run_credit_check", param_mode=PREV, per_item=True, optional=True,
             description="Run credit check on shortlisted applicants"),
        dict(tool_name="run_tica_check", param_mode=PREV, per_item=True, optional=True,
             description="Run TICA check on shortlisted applicants"),
        dict(tool_name="rank_applications", param_mode=PREV,
             description="Rank all scored and screened applications"),
        dict(tool_name="accept_application", param_mode=PREV, gate=APPROVAL,
             description="Accept top applicant (owner selects)"),
        dict(tool_name="reject_application", param_mode=PREV, per_item=True, optional=True,
             description="Reject remaining applicants with notification"),
    ),
    max_duration_ms=30 * DAY_MS,
    resume_window_ms=30 * DAY_MS,
    available_from_level=4,
)

WORKFLOW_ONBOARD_TENANT = WorkflowDefinition(
    name="workflow_onboard_tenant",
    description="Full tenant onboarding: lease, sign, bond, entry inspection, welcome",
    steps=_steps(
        dict(tool_name="get_application_detail", param_mode=CTX,
             description="Load accepted application details"),
        dict(tool_name="generate_lease", param_mode=PREV,
             description="Generate state-compliant lease document"),
        dict(tool_name="send_docusign_envelope", param_mode=PREV, gate=APPROVAL,
             description="Send lease for e-signing (owner reviews first)"),
        dict(tool_name="get_tenancy", param_mode=PREV, gate=WEBHOOK,
             description="Wait for signatures, then load tenancy"),
        dict(tool_name="collect_rent_stripe", param_mode=PREV,
             compensation_tool="refund_payment_stripe",
             description="Collect bond payment via Stripe"),
        dict(tool_name="lodge_bond_state", param_mode=PREV,
             description="Lodge bond with state authority"),
        dict(tool_name="schedule_inspection", param_mode=PREV,
             compensation_tool="cancel_inspection",
             description="Schedule entry condition inspection"),
        dict(tool_name="send_message", param_mode=PREV,
             description="Send welcome message with move-in details"),
        dict(tool_name="update_listing", param_mode=PREV,
             description="Mark listing as leased"),
        dict(tool_name="remember", param_mode=PREV, optional=True,
             description="Store tenant preferences for future interactions"),
    ),
    max_duration_ms=14 * DAY_MS,
    resume_window_ms=14 * DAY_MS,
    available_from_level=6,
)

WORKFLOW_END_TENANCY = WorkflowDefinition(
    name="workflow_end_tenancy",
    description="End tenancy: exit inspection, bond disposition, final report, relist",
    steps=_steps(
        dict(tool_name="get_tenancy", param_mode=CTX,
             description="Load tenancy details"),
        dict(tool_name="schedule_inspection", param_mode=PREV,
             static_params={"type": "exit"},
             compensation_tool="cancel_inspection",
             description="Schedule exit condition inspection"),
        dict(tool_name="generate_inspection_report", param_mode=PREV, gate=WEBHOOK,
             description="Wait for inspection, then generate report"),
        dict(tool_name="compare_inspections", param_mode=PREV,
             description="Compare entry vs exit condition"),
        dict(tool_name="lodge_bond_state", param_mode=PREV, gate=APPROVAL,
             description="Release or claim bond (owner decides deductions)"),
        dict(tool_name="generate_financial_report", param_mode=PREV,
             description="Generate final tenancy financial report"),
        dict(tool_name="send_message", param_mode=PREV,
             description="Send farewell message with bond info"),
        dict(tool_name="workflow_find_tenant", param_mode=CTX, optional=True,
             description="Start find-tenant workflow if owner wants to relist"),
    ),
    max_duration_ms=30 * DAY_MS,
    resume_window_ms=30 * DAY_MS,
    available_from_level=6,
)

WORKFLOW_MAINTENANCE_LIFECYCLE = WorkflowDefinition(
    name="workflow_maintenance_lifecycle",
    description="Full maintenance: triage, estimate, quote, approve, complete, pay",
    steps=_steps(
        dict(tool_name="triage_maintenance", param_mode=CTX,
             description="Categorize urgency and suggest action"),
        dict(tool_name="estimate_cost", param_mode=PREV,
             description="Estimate cost from description and market rates"),
        dict(tool_name="get_trades", param_mode=PREV,
             description="Find available tradespeople for the job"),
        dict(tool_name="create_work_order", param_mode=PREV, gate=APPROVAL,
             compensation_tool="update_maintenance_status",
             compensation_params={"status": "cancelled"},
             description="Create work order (owner approval)"),
        dict(tool_name="send_message", param_mode=PREV,
             description="Notify tenant of scheduled maintenance"),
        dict(tool_name="update_maintenance_status", param_mode=PREV, gate=WEBHOOK,
             static_params={"status": "completed"},
             description="Wait for job completion, update status"),
        dict(tool_name="send_message", param_mode=PREV,
             description="Ask tenant to confirm fix is satisfactory"),
        dict(tool_name="process_payment", param_mode=PREV, optional=True,
             description="Pay tradesperson (if payment integration enabled)"),
    ),
    max_duration_ms=14 * DAY_MS,
    resume_window_ms=30 * DAY_MS,
    available_from_level=9,
)

WORKFLOW_ARREARS_ESCALATION = WorkflowDefinition(
    name="workflow_arrears_escalation",
    description="Arrears escalation ladder: friendly, formal, breach, owner decision",
    steps=_steps(
        dict(tool_name="send_rent_reminder", param_mode=CTX,
             static_params={"tone": "friendly"},
             description="Day 1-3: Send friendly rent reminder"),
        dict(tool_name="send_rent_reminder", param_mode=CTX, gate=SCHEDULE,
             gate_delay_ms=3 * DAY_MS,
             static_params={"tone": "formal"},
             description="Day 4-7: Send formal rent reminder"),
        dict(tool_name="send_push_expo", param_mode=CTX,
             description="Day 7: Alert owner about arrears situation"),
        dict(tool_name="generate_notice", param_mode=CTX, gate=APPROVAL,
             static_params={"notice_type": "breach"},
             description="Day 8-14: Generate breach notice (owner must approve)"),
        dict(tool_name="send_breach_notice", param_mode=PREV,
             description="Send approved breach notice to tenant"),
        dict(tool_name="escalate_arrears", param_mode=CTX, gate=APPROVAL,
             description="Day 14+: Owner decides next action (payment plan, tribunal, or continue)"),
    ),
    max_duration_ms=30 * DAY_MS,
    resume_window_ms=90 * DAY_MS,
    available_from_level=8,
)

BUILTIN_WORKFLOWS: List[WorkflowDefinition] = [
    WORKFLOW_FIND_TENANT,
    WORKFLOW_ONBOARD_TENANT,
    WORKFLOW_END_TENANCY,
    WORKFLOW_MAINTENANCE_LIFECYCLE,
    WORKFLOW_ARREARS_ESCALATION,
]
