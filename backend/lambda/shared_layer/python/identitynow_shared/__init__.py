"""identitynow_shared — Shared utilities for IdentityNow action Lambda functions.

Provides:
    - Authorization header resolution (bearer, basic, OAuth2 flows)
    - Secrets Manager client singleton
    - Timestamp helpers
"""

__version__ = "1.0.0"
