# =============================================================================
# API Schemas Package
# =============================================================================
# Pydantic V2 models for request validation and response serialization.
#   - requests.py: inbound payloads (intake, admin edits, analytics, ...)
#   - responses.py: outbound envelopes and resources
# =============================================================================
