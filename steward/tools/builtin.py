"""Built-in tool catalog for the property-management agent."""

from typing import List, Optional

from ..constants import (
    SERVICE_BOND_STATE,
    SERVICE_DOCUSIGN,
    SERVICE_DOMAIN,
    SERVICE_EQUIFAX,
    SERVICE_EXPO_PUSH,
    SERVICE_HIPAGES,
    SERVICE_REA,
    SERVICE_SENDGRID,
    SERVICE_STRIPE,
    SERVICE_TICA,
    SERVICE_TWILIO,
)
from .models import RiskLevel, ToolCategory, ToolDefinition

_Q = ToolCategory.QUERY
_A = ToolCategory.ACTION
_G = ToolCategory.GENERATE
_I = ToolCategory.INTEGRATION
_W = ToolCategory.WORKFLOW
_M = ToolCategory.MEMORY
_P = ToolCategory.PLANNING


def _tool(
    name: str,
    category: ToolCategory,
    risk: RiskLevel = RiskLevel.NONE,
    policy: Optional[str] = None,
    service: Optional[str] = None,
    reversible: bool = True,
    compensation: Optional[str] = None,
    description: str = "",
) -> ToolDefinition:
    if policy is None:
        policy = {
            _Q: "query", _M: "query", _P: "query",
            _A: "action", _G: "generate", _I: "integration", _W: "workflow",
        }[category]
    return ToolDefinition(
        name=name,
        category=category,
        risk_level=risk,
        reversible=reversible,
        compensation_tool=compensation,
        resilience_policy=policy,
        service=service,
        description=description,
    )


_QUERY_TOOLS = [
    "get_property", "get_properties", "search_tenants", "get_tenancy", "get_payments",
    "get_rent_schedule", "get_arrears", "get_maintenance", "get_maintenance_detail",
    "get_quotes", "get_inspections", "get_listings", "get_applications",
    "get_application_detail", "get_conversations", "get_compliance_status",
    "get_financial_summary", "get_transactions", "get_trades", "get_background_tasks",
    "get_pending_actions", "get_documents",
]

BUILTIN_TOOLS: List[ToolDefinition] = [_tool(name, _Q) for name in _QUERY_TOOLS] + [
    # Action tools, low risk
    _tool("send_rent_reminder", _A, RiskLevel.LOW, reversible=False,
          description="Send a rent reminder to the tenant"),
    _tool("send_receipt", _A, RiskLevel.NONE, reversible=False,
          description="Send a payment receipt to the tenant"),
    _tool("create_maintenance", _A, RiskLevel.LOW, description="Log a maintenance request"),
    _tool("update_maintenance_status", _A, RiskLevel.LOW,
          description="Update the status of a maintenance request"),
    _tool("schedule_inspection", _A, RiskLevel.LOW, compensation="cancel_inspection",
          description="Schedule a property inspection"),
    _tool("cancel_inspection", _A, RiskLevel.LOW, description="Cancel a scheduled inspection"),
    _tool("reject_quote", _A, RiskLevel.LOW, description="Reject a trade quote"),
    _tool("update_listing", _A, RiskLevel.LOW, description="Update a listing"),
    _tool("pause_listing", _A, RiskLevel.LOW, description="Pause a listing"),
    _tool("record_compliance", _A, RiskLevel.LOW, description="Record a compliance item"),
    # Action tools, medium risk
    _tool("send_message", _A, RiskLevel.MEDIUM, reversible=False,
          description="Send a message to a tenant or trade"),
    _tool("create_work_order", _A, RiskLevel.MEDIUM, compensation="update_maintenance_status",
          description="Create a work order for a tradesperson"),
    _tool("shortlist_application", _A, RiskLevel.MEDIUM, description="Shortlist an application"),
    _tool("retry_payment", _A, RiskLevel.MEDIUM, policy="payment", service=SERVICE_STRIPE,
          description="Retry a failed rent payment"),
    _tool("create_listing", _A, RiskLevel.MEDIUM, compensation="pause_listing",
          description="Create a draft listing"),
    _tool("publish_listing", _A, RiskLevel.MEDIUM, compensation="pause_listing",
          description="Publish a listing"),
    _tool("create_payment_plan", _A, RiskLevel.MEDIUM, description="Create an arrears payment plan"),
    _tool("update_autopay", _A, RiskLevel.MEDIUM, description="Change a tenant's auto-pay setting"),
    # Action tools, high risk
    _tool("send_breach_notice", _A, RiskLevel.HIGH, reversible=False,
          description="Serve a breach notice on the tenant"),
    _tool("approve_quote", _A, RiskLevel.HIGH, description="Approve a trade quote"),
    _tool("accept_application", _A, RiskLevel.HIGH, description="Accept a rental application"),
    _tool("reject_application", _A, RiskLevel.HIGH, reversible=False,
          description="Reject a rental application"),
    _tool("process_payment", _A, RiskLevel.HIGH, policy="payment", service=SERVICE_STRIPE,
          reversible=False, description="Pay an invoice"),
    _tool("change_rent_amount", _A, RiskLevel.HIGH, description="Change the rent amount"),
    _tool("lodge_bond", _A, RiskLevel.HIGH, reversible=False, description="Lodge a bond"),
    _tool("escalate_arrears", _A, RiskLevel.HIGH, description="Escalate an arrears case"),
    # Action tools, critical
    _tool("terminate_lease", _A, RiskLevel.CRITICAL, reversible=False,
          description="Terminate a lease"),
    _tool("claim_bond", _A, RiskLevel.CRITICAL, reversible=False,
          description="Claim against a bond"),
    # Generate tools
    _tool("generate_listing", _G, description="Write listing copy"),
    _tool("draft_message", _G, description="Draft a message"),
    _tool("score_application", _G, description="Score a rental application"),
    _tool("rank_applications", _G, description="Rank scored applications"),
    _tool("triage_maintenance", _G, description="Triage a maintenance request"),
    _tool("estimate_cost", _G, description="Estimate a job's cost"),
    _tool("analyze_rent", _G, description="Analyze rent against the market"),
    _tool("generate_notice", _G, RiskLevel.HIGH, description="Generate a legal notice"),
    _tool("generate_inspection_report", _G, description="Generate an inspection report"),
    _tool("compare_inspections", _G, description="Compare entry and exit inspections"),
    _tool("generate_financial_report", _G, description="Generate a financial report"),
    _tool("suggest_rent_price", _G, description="Suggest a rent price"),
    _tool("generate_lease", _G, RiskLevel.MEDIUM, description="Generate a lease document"),
    # Integration tools
    _tool("syndicate_listing_domain", _I, RiskLevel.MEDIUM, service=SERVICE_DOMAIN,
          compensation="pause_listing", description="Syndicate a listing to Domain"),
    _tool("syndicate_listing_rea", _I, RiskLevel.MEDIUM, service=SERVICE_REA,
          compensation="pause_listing", description="Syndicate a listing to realestate.com.au"),
    _tool("run_credit_check", _I, RiskLevel.MEDIUM, service=SERVICE_EQUIFAX,
          reversible=False, description="Run a credit check"),
    _tool("run_tica_check", _I, RiskLevel.MEDIUM, service=SERVICE_TICA,
          reversible=False, description="Run a tenancy database check"),
    _tool("collect_rent_stripe", _I, RiskLevel.HIGH, policy="payment", service=SERVICE_STRIPE,
          compensation="refund_payment_stripe", description="Collect a payment via Stripe"),
    _tool("refund_payment_stripe", _I, RiskLevel.HIGH, policy="payment", service=SERVICE_STRIPE,
          reversible=False, description="Refund a Stripe payment"),
    _tool("send_docusign_envelope", _I, RiskLevel.HIGH, service=SERVICE_DOCUSIGN,
          reversible=False, description="Send documents for e-signing"),
    _tool("lodge_bond_state", _I, RiskLevel.HIGH, service=SERVICE_BOND_STATE,
          reversible=False, description="Lodge a bond with the state authority"),
    _tool("send_sms_twilio", _I, RiskLevel.LOW, service=SERVICE_TWILIO,
          reversible=False, description="Send an SMS"),
    _tool("send_email_sendgrid", _I, RiskLevel.LOW, service=SERVICE_SENDGRID,
          reversible=False, description="Send an email"),
    _tool("send_push_expo", _I, RiskLevel.NONE, service=SERVICE_EXPO_PUSH,
          reversible=False, description="Send a push notification"),
    _tool("search_trades_hipages", _I, RiskLevel.NONE, service=SERVICE_HIPAGES,
          description="Search tradespeople"),
    # Workflow tools
    _tool("workflow_find_tenant", _W, RiskLevel.MEDIUM, description="Find a tenant"),
    _tool("workflow_onboard_tenant", _W, RiskLevel.HIGH, description="Onboard a tenant"),
    _tool("workflow_end_tenancy", _W, RiskLevel.HIGH, description="End a tenancy"),
    _tool("workflow_maintenance_lifecycle", _W, RiskLevel.MEDIUM,
          description="Run a maintenance job end to end"),
    _tool("workflow_arrears_escalation", _W, RiskLevel.HIGH, description="Escalate arrears"),
    # Memory and planning tools
    _tool("remember", _M, description="Store a preference"),
    _tool("recall", _M, description="Recall preferences"),
    _tool("search_precedent", _M, description="Search past decisions"),
    _tool("get_owner_rules", _M, description="Load the owner's rules"),
    _tool("plan_task", _P, description="Plan a multi-step task"),
    _tool("check_plan", _P, description="Check plan progress"),
    _tool("replan", _P, description="Revise a plan"),
]
