"""Token comparison and identifier helpers."""

from __future__ import annotations

import hmac
import uuid


class Crypto:
    """Static helpers for credential checks and id generation."""

    @staticmethod
    def safe_equal(given: str | None, expected: str | None) -> bool:
        """Constant-time string comparison. None never matches."""
        if given is None or expected is None:
            return False
        return hmac.compare_digest(given.encode(), expected.encode())

    @staticmethod
    def new_id() -> str:
        """Generate a new command or group identifier."""
        return str(uuid.uuid4())
