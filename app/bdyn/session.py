from __future__ import annotations
import json
import uuid
from pathlib import Path
from typing import Callable, Optional
import logging

from .settings import APP_DIR

logger = logging.getLogger(__name__)

SESSION_PATH = APP_DIR / "session.json"


def _new_session_id() -> str:
    return uuid.uuid4().hex


class SessionStore:
    """
    Holds the participant's session id in a small JSON file so it survives
    restarts. Handed to whatever needs the id; nothing reads it globally.
    """

    def __init__(self, path: Path = SESSION_PATH, generate: Callable[[], str] = _new_session_id):
        self.path = Path(path)
        self._generate = generate
        self._cached: Optional[str] = None

    def get(self) -> Optional[str]:
        if self._cached:
            return self._cached
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Unreadable session file %s: %s", self.path, e)
            return None
        sid = data.get("session_id") if isinstance(data, dict) else None
        self._cached = str(sid) if sid else None
        return self._cached

    def get_or_create(self) -> str:
        sid = self.get()
        if sid:
            return sid
        sid = self._generate()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"session_id": sid}), encoding="utf-8")
        self._cached = sid
        logger.info("New session %s", sid)
        return sid

    def clear(self) -> None:
        self._cached = None
        self.path.unlink(missing_ok=True)
