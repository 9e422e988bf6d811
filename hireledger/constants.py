"""
hireledger/constants.py

Central repository for cross-cutting constants shared by more than one app.

Rules for what belongs here:
  - Pure Python only, no Django model imports.
  - Referenced by more than one module, or part of an external wire contract.

What intentionally stays elsewhere:
  - TextChoices on models       - Django convention, DB-validated.
  - Settling delay / timeouts   - settings.py (environment-tunable).
"""

# ── Completion signals ─────────────────────────────────────────────────────────

# Published by the pre-screening job once its results are committed.
# The interaction ledger reloads when it sees this signal.
PRE_SCREENING_COMPLETED = "pre_screening_completed"

# ── Workflow automation wire format ────────────────────────────────────────────

# Fixed tags the external automation service uses to recognise our payloads.
WORKFLOW_TRIGGER_TAG = "lovable_workflow"
WORKFLOW_SOURCE_TAG = "hire-al-platform"

# `triggered_from` value sent with the candidate-contacted notification.
CANDIDATE_CONTACTED_ORIGIN = "hire_ai_contact_candidate"

# ── CORS ───────────────────────────────────────────────────────────────────────

# Headers returned on every browser-callable workflow endpoint.
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}
