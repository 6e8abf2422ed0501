import uuid
from contextlib import contextmanager

import redis
from redis.exceptions import RedisError
from tenacity import Retrying, retry_if_result, stop_after_delay, wait_fixed

from marketplace.domain.errors import LockUnavailableError, SettlementInProgressError
from marketplace.utils.settings import REDIS_URL, SETTLEMENT_LOCK_TTL_SECONDS, SETTLEMENT_LOCK_WAIT_SECONDS
from marketplace.utils.logging import get_logger
from marketplace.utils.retry import redis_retry

logger = get_logger(__name__)

#compare-and-delete in one Lua call so nobody can slip in between GET and DEL
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Per checkout-session settlement lock:
    - SET NX EX so a crashed holder cannot block the session forever
    - release only by the token that acquired it
    """

    def __init__(self, url: str | None = None, client=None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(session_id: int) -> str:
        return f"checkout_session:{session_id}:settle"

    @redis_retry()
    def acquire_session_lock(self, session_id: int, token: str, ttl: int) -> bool:
        key = self._key(session_id)
        logger.info(f"Acquire lock {key}")
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release_session_lock(self, session_id: int, token: str) -> bool:
        key = self._key(session_id)
        logger.info(f"Release lock {key}")
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, token))

    @contextmanager
    def session_lock(self, session_id: int, ttl: int | None = None, wait: float | None = None):
        """
        Blocks up to `wait` seconds; raises SettlementInProgressError after that.
        LockUnavailableError when Redis itself is down.
        """
        token = uuid.uuid4().hex
        ttl = ttl or SETTLEMENT_LOCK_TTL_SECONDS
        wait = SETTLEMENT_LOCK_WAIT_SECONDS if wait is None else wait

        retrying = Retrying(
            stop=stop_after_delay(wait),
            wait=wait_fixed(0.1),
            retry=retry_if_result(lambda acquired: not acquired),
            retry_error_callback=lambda state: False,
        )
        try:
            acquired = retrying(self.acquire_session_lock, session_id, token, ttl)
        except RedisError as e:
            logger.error(f"Settlement lock store unreachable for session {session_id}, payment left for retry or reconciliation: {e}")
            raise LockUnavailableError(f"Session {session_id} cannot be settled right now, retry later") from e
        if not acquired:
            logger.warning(f"Settlement lock for session {session_id} still held after {wait}s")
            raise SettlementInProgressError(f"Session {session_id} is being settled, retry later")

        try:
            yield token
        finally:
            try:
                self.release_session_lock(session_id, token)
            except RedisError as e:
                #the key expires on its own after ttl
                logger.warning(f"Failed to release settlement lock for session {session_id}: {e}")
