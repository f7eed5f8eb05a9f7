"""
Provider error taxonomy.

  ProviderAuthError  token exchange failed or the provider answered 401/403.
                     Fatal for that provider within the current operation.
  ProviderError      5xx, transport failure, timeout, malformed or GraphQL
                     error response. Fails only the affected unit of work.

"Not found" (404, and 400 where the provider uses it for unknown
characters) is not an error: clients return ``None`` or an empty result.
"""

from __future__ import annotations

from typing import Optional


class ProviderError(Exception):
    """An upstream call failed for a reason other than "not found"."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    """Credentials were rejected or missing."""
