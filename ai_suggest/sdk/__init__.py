"""
SDK for AI Suggest.

Provides the remote completion client with credential failover.
"""

from .gemini_client import (
    Completion,
    CredentialPool,
    CredentialRotatingDispatcher,
    CredentialsExhaustedError,
    build_payload,
    extract_completion,
)

__all__ = [
    "Completion",
    "CredentialPool",
    "CredentialRotatingDispatcher",
    "CredentialsExhaustedError",
    "build_payload",
    "extract_completion",
]
