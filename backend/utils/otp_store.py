"""
In-memory one-time-password store with TTL expiry.

One instance lives on ``app.state.otp_store`` and reaches the auth routes
through the ``get_otp_store`` dependency. The periodic sweep is an asyncio task
owned by the store and started/stopped from the application lifespan.
Entries are process-local: several API instances do not share codes.
"""
from typing import Callable, Dict, Optional, Tuple
import asyncio
import hmac
import logging
import secrets
import time

logger = logging.getLogger(__name__)


class OtpStore:
    def __init__(
        self,
        ttl_seconds: int = 300,
        sweep_interval_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def generate_code() -> str:
        return str(secrets.randbelow(900000) + 100000)

    def issue(self, key: str, code: Optional[str] = None) -> str:
        """Store a fresh code for key, replacing any previous one"""
        code = code or self.generate_code()
        self._entries[key] = (code, self._clock() + self.ttl_seconds)
        return code

    def verify(self, key: str, code: str) -> bool:
        """
        Check a code. A matching, unexpired code is consumed; expired entries
        are dropped; a wrong code leaves the entry in place.
        """
        entry = self._entries.get(key)
        if entry is None:
            return False

        stored_code, expires_at = entry
        if self._clock() > expires_at:
            del self._entries[key]
            return False

        if not hmac.compare_digest(stored_code, code):
            return False

        del self._entries[key]
        return True

    def sweep(self) -> int:
        """Delete expired entries, returning how many were removed"""
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if now > expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def _sweep_forever(self):
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            removed = self.sweep()
            if removed:
                logger.info(f"OTP sweep removed {removed} expired codes")

    def start(self):
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_forever())
            logger.info(f"OTP sweep started (every {self.sweep_interval_seconds}s)")

    async def stop(self):
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        logger.info("OTP sweep stopped")
