"""
Shared constants for the Steward engine.

Centralizes values that are needed by the gate, the executor and the
scheduler to avoid circular imports and duplication.
"""

from typing import Tuple

# ── External service names ──
# Keys for the per-service circuit breakers.

# Payments
SERVICE_STRIPE = "stripe"

# Messaging
SERVICE_TWILIO = "twilio"
SERVICE_SENDGRID = "sendgrid"
SERVICE_EXPO_PUSH = "expo_push"
MESSAGING_SERVICES: Tuple[str, ...] = (SERVICE_TWILIO, SERVICE_SENDGRID, SERVICE_EXPO_PUSH)

# Screening and documents
SERVICE_EQUIFAX = "equifax"
SERVICE_TICA = "tica"
SERVICE_DOCUSIGN = "docusign"

# Listing portals and trades
SERVICE_DOMAIN = "domain"
SERVICE_REA = "rea"
SERVICE_HIPAGES = "hipages"
LISTING_SERVICES: Tuple[str, ...] = (SERVICE_DOMAIN, SERVICE_REA)

# Government
SERVICE_BOND_STATE = "bond_state"

# Platform
SERVICE_CLAUDE_API = "claude_api"
SERVICE_SUPABASE = "supabase"

# ── Autonomy ──

# Consecutive approvals needed before a tool graduates one level
GRADUATION_THRESHOLD = 10

# Cap for the graduation threshold multiplier after demotions
MAX_GRADUATION_BACKOFF = 8

# Lowest autonomy level that executes without asking the owner (EXECUTE)
AUTO_EXECUTE_LEVEL = 3

# Composite confidence below which a borderline call is escalated
LOW_CONFIDENCE_THRESHOLD = 0.5

# ── Scheduling ──

DEFAULT_TIMEZONE = "Australia/Sydney"

# Pending actions expire after 24 hours
PENDING_ACTION_TTL_MS = 24 * 60 * 60 * 1000

# ── Context window ──

DEFAULT_CONTEXT_TOKEN_BUDGET = 100_000
