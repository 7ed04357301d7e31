"""
Per (exam, user) session lock in Redis.

The lock value is the session id currently allowed to run the exam; the key
expires after ``ttl_seconds`` unless the holder heartbeats. Without a Redis
client both operations succeed as no-ops.
"""
from typing import Optional
import logging

import redis

from ..core.cache import cache
from ..core.config import settings
from ..core.exceptions import ConcurrentSessionError, InternalError

logger = logging.getLogger(__name__)


class SessionLockManager:
    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        ttl_seconds: Optional[int] = None,
        prefix: Optional[str] = None,
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds or settings.session_lock_ttl_seconds
        self.prefix = prefix or settings.session_lock_prefix

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def lock_key(self, exam_id: str, user_id: str) -> str:
        return f"{self.prefix}:{exam_id}:{user_id}"

    def holder(self, exam_id: str, user_id: str) -> Optional[str]:
        if not self.enabled:
            return None
        try:
            return self.client.get(self.lock_key(exam_id, user_id))
        except redis.RedisError as e:
            raise InternalError("Session lock backend error", details=str(e))

    def acquire_or_refresh(self, exam_id: str, user_id: str, session_id: str) -> bool:
        """
        Take the lock for ``session_id`` or extend it if already held.

        Raises ConcurrentSessionError when another session holds the lock.
        """
        if not self.enabled:
            return True

        key = self.lock_key(exam_id, user_id)
        try:
            if self.client.set(key, session_id, nx=True, ex=self.ttl_seconds):
                logger.info(f"Session lock acquired: exam={exam_id} user={user_id}")
                return True

            def refresh(pipe):
                active_session_id = pipe.get(key)
                if active_session_id is not None and active_session_id != session_id:
                    logger.warning(
                        f"Heartbeat conflict - session taken by another device: exam={exam_id} "
                        f"user={user_id} active={active_session_id} current={session_id}"
                    )
                    raise ConcurrentSessionError()
                pipe.multi()
                # lock may have expired between SET NX and WATCH; SET covers both cases
                pipe.set(key, session_id, ex=self.ttl_seconds)

            self.client.transaction(refresh, key)
            return True
        except redis.RedisError as e:
            logger.error(f"Session lock backend error on acquire: {e}")
            raise InternalError("Session lock backend error", details=str(e))

    def release(self, exam_id: str, user_id: str, session_id: str) -> bool:
        """Delete the lock only when ``session_id`` holds it; True if deleted"""
        if not self.enabled:
            return False

        key = self.lock_key(exam_id, user_id)

        def delete_if_held(pipe):
            if pipe.get(key) != session_id:
                return False
            pipe.multi()
            pipe.delete(key)
            return True

        try:
            released = self.client.transaction(delete_if_held, key, value_from_callable=True)
        except redis.RedisError as e:
            logger.error(f"Session lock backend error on release: {e}")
            raise InternalError("Session lock backend error", details=str(e))

        if released:
            logger.info(f"Session lock released: exam={exam_id} user={user_id}")
        return bool(released)


def get_session_lock_manager() -> SessionLockManager:
    return SessionLockManager(client=cache.sync_client)
