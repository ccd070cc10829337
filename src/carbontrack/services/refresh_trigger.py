"""Authorization for the manual leaderboard refresh trigger."""

from __future__ import annotations

import hmac
from typing import Optional


class RefreshTriggerViolation(Exception):
    """Raised when a refresh request must be refused."""

    def __init__(self, detail: str, status_code: int) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


def authorize_refresh(provided_key: Optional[str], expected_key: Optional[str]) -> None:
    """Fail closed: an unset secret disables the trigger instead of accepting any key."""

    expected = (expected_key or "").strip()
    if not expected:
        raise RefreshTriggerViolation("Trigger key is not configured on the server", status_code=503)

    provided = provided_key or ""
    if not provided or not hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8")):
        raise RefreshTriggerViolation("Invalid trigger key", status_code=403)
