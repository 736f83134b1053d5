"""Audit event type constants.

Centralizing event types as constants prevents typos and makes it easy
to discover everything the audit log can contain.
"""

# ─── Identities ──────────────────────────────────────────

USER_RECONCILED = "user.reconciled"

# ─── Email verification ──────────────────────────────────

EMAIL_VERIFICATION_SENT = "email.verification_sent"
EMAIL_VERIFIED = "email.verified"

# ─── API tokens ──────────────────────────────────────────

API_TOKEN_CREATED = "api_token.created"
API_TOKEN_REVOKED = "api_token.revoked"
