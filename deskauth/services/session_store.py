"""Per-session auxiliary values (e.g. the external identity token).

Keyed by session id and dropped when the session is revoked. In-memory and
process-local; run a single worker or swap in a shared backend when scaling
out.
"""

import threading
from typing import Any, Dict, Optional

EXTERNAL_IDENTITY_TOKEN_KEY = "external_identity_token"


class SessionAuxStore:
    """Thread-safe mapping of session id to auxiliary values."""

    def __init__(self):
        self._lock = threading.Lock()
        self._values: Dict[str, Dict[str, Any]] = {}

    def set(self, session_id: str, key: str, value: Any) -> None:
        with self._lock:
            self._values.setdefault(session_id, {})[key] = value

    def get(self, session_id: str, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(session_id, {}).get(key, default)

    def clear_session(self, session_id: str) -> None:
        """Forget every value held for a session."""
        with self._lock:
            self._values.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)


# Global store instance
_session_store: Optional[SessionAuxStore] = None


def get_session_store() -> SessionAuxStore:
    """Get or create the session auxiliary store."""
    global _session_store
    if _session_store is None:
        _session_store = SessionAuxStore()
    return _session_store
