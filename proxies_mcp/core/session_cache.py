import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Any, List, Optional

from ..constants import DEFAULT_CACHE_PATH
from ..errors import CacheIOError
from ..logging_config import get_logger
from .models import CachedSession, Session, parse_timestamp, format_timestamp

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class SessionCache:
    """
    Wallet-scoped local memory of purchased x402 sessions.

    The file at `cache_path` holds {walletAddress, sessions, lastUpdated}.
    Every mutation is written through immediately; every read prunes
    expired entries first. Disk failures never raise: they are logged and
    recorded in `last_error`, and the cache carries on in memory.

    Single process, single writer: there is no file locking.
    """

    def __init__(self, wallet_address: str, cache_path: Optional[str] = None, clock: Clock = _utc_now):
        self.wallet_address = wallet_address.lower()
        self.cache_path = cache_path or DEFAULT_CACHE_PATH
        self._clock = clock
        self.last_error: Optional[CacheIOError] = None
        self._failures = 0
        self.last_updated: str = format_timestamp(self._clock())
        self._sessions: List[CachedSession] = self._load()

    # --- persistence ---

    @property
    def degraded(self) -> bool:
        """True once any read or write of the cache file has failed."""
        return self.last_error is not None

    def _record_failure(self, error: CacheIOError) -> None:
        self.last_error = error
        self._failures += 1
        level = logging.WARNING if self._failures == 1 else logging.DEBUG
        logger.log_cache_event("degraded", {
            "operation": error.operation,
            "path": error.path,
            "error": str(error.cause),
            "failures": self._failures,
        }, level=level)

    def _load(self) -> List[CachedSession]:
        if not os.path.exists(self.cache_path):
            return []

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("cache root is not an object")

            stored_wallet = str(data.get("walletAddress") or "").lower()
            if stored_wallet != self.wallet_address:
                logger.log_cache_event("reset_for_wallet", {"path": self.cache_path}, level=logging.INFO)
                return []

            now = self._clock()
            sessions = [CachedSession.from_dict(item) for item in data.get("sessions") or []]
            self.last_updated = data.get("lastUpdated") or self.last_updated
            return [s for s in sessions if s.expires_at > now]
        except (OSError, ValueError, KeyError, TypeError) as e:
            self._record_failure(CacheIOError("read", self.cache_path, e))
            return []

    def _save(self) -> bool:
        self.last_updated = format_timestamp(self._clock())
        payload = {
            "walletAddress": self.wallet_address,
            "sessions": [s.to_dict() for s in self._sessions],
            "lastUpdated": self.last_updated,
        }

        try:
            directory = os.path.dirname(self.cache_path) or "."
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".x402-sessions-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp_path, self.cache_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            self._record_failure(CacheIOError("write", self.cache_path, e))
            return False
        return True

    def _clean_expired(self) -> None:
        now = self._clock()
        kept = [s for s in self._sessions if s.expires_at > now]
        if len(kept) != len(self._sessions):
            logger.log_cache_event("pruned", {"removed": len(self._sessions) - len(kept)})
            self._sessions = kept
            self._save()

    # --- writes ---

    def add_session(self, session: CachedSession) -> None:
        """Upsert by id; a replaced entry moves to the most-recent position."""
        self._sessions = [s for s in self._sessions if s.id != session.id]
        self._sessions.append(session)
        self._save()

    def add_session_from_purchase(self, session: Session) -> CachedSession:
        cached = CachedSession.from_session(session)
        self.add_session(cached)
        return cached

    def remove_session(self, session_id: str) -> bool:
        before = len(self._sessions)
        self._sessions = [s for s in self._sessions if s.id != session_id]
        if len(self._sessions) != before:
            self._save()
            return True
        return False

    def clear(self) -> None:
        self._sessions = []
        self._save()

    def update_session_expiry(self, session_id: str, new_expires_at: Any) -> bool:
        expires_at = parse_timestamp(new_expires_at)
        for session in self._sessions:
            if session.id == session_id:
                session.expires_at = expires_at
                self._save()
                return True
        return False

    # --- reads ---

    def get_session(self, session_id: str) -> Optional[CachedSession]:
        self._clean_expired()
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def get_active_sessions(self) -> List[CachedSession]:
        self._clean_expired()
        return list(self._sessions)

    def get_first_active_session(self) -> Optional[CachedSession]:
        """Most recently added active session (insertion order, not expiry)."""
        sessions = self.get_active_sessions()
        return sessions[-1] if sessions else None

    def get_session_by_location_code(self, country_code: str) -> Optional[CachedSession]:
        self._clean_expired()
        wanted = country_code.upper()
        for session in self._sessions:
            if (session.location.country_code or "").upper() == wanted:
                return session
        return None

    def has_active_sessions(self) -> bool:
        return len(self.get_active_sessions()) > 0

    def get_active_count(self) -> int:
        return len(self.get_active_sessions())

    def get_expiring_soon(self, within_minutes: int = 30) -> List[CachedSession]:
        now = self._clock()
        threshold = now + timedelta(minutes=within_minutes)
        return [s for s in self.get_active_sessions() if now < s.expires_at <= threshold]

    def get_time_remaining(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        {"seconds": int, "display": str} for a cached session, None if absent.
        """
        session = self.get_session(session_id)
        if session is None:
            return None

        remaining = int((session.expires_at - self._clock()).total_seconds())
        if remaining <= 0:
            return {"seconds": 0, "display": "Expired"}
        return {"seconds": remaining, "display": format_duration(remaining)}

    def get_info(self) -> Dict[str, Any]:
        return {
            "wallet_address": self.wallet_address,
            "session_count": self.get_active_count(),
            "last_updated": self.last_updated,
            "cache_path": self.cache_path,
            "degraded": self.degraded,
        }
