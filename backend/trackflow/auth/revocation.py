"""Per-user JWT revocation in Redis.

A `revoked:user:{user_id}` flag holding the revocation time cuts every
token of that user issued before it, e.g. after a password reset,
deactivation or account deletion. The flag expires with the longest-lived
token it blocks.
"""

import logging
import time

from trackflow.config import settings
from trackflow.utils.redis import get_redis

logger = logging.getLogger(__name__)


class TokenRevocation:
    """Manage JWT token revocation with Redis."""

    @staticmethod
    async def revoke_all_user_tokens(user_id: str, duration: int | None = None) -> bool:
        """Revoke every outstanding token of a user.

        Args:
            user_id: User whose sessions end
            duration: Seconds to keep the flag (defaults to token lifetime)
        """
        redis_client = await get_redis()
        if redis_client is None:
            return False

        duration = duration or settings.access_token_expire_minutes * 60
        try:
            await redis_client.setex(
                f"revoked:user:{user_id}",
                duration,
                str(int(time.time())),
            )
            return True
        except Exception as e:
            logger.error(f"Failed to revoke user tokens: {e}")
            return False

    @staticmethod
    async def is_user_revoked(user_id: str, issued_at: float | None = None) -> bool:
        """Check the per-user flag.

        Tokens issued after the revocation timestamp stay valid.
        """
        redis_client = await get_redis()
        if redis_client is None:
            return False

        try:
            revoked_at = await redis_client.get(f"revoked:user:{user_id}")
        except Exception as e:
            logger.error(f"Failed to check user revocation: {e}")
            return True

        if revoked_at is None:
            return False
        if issued_at is not None and issued_at > float(revoked_at):
            return False
        return True
