"""
Iteration quota gate.

Every generation costs iterations from the user's plan, unless the user
brings their own model API key.
"""
import logging

from prepstream.models.documents import User
from prepstream.services.users import UserRepository

logger = logging.getLogger(__name__)

ITERATION_COSTS = {
    "full_generation": 1,
}


class QuotaExceededError(Exception):
    """User has no iterations left on their plan."""

    def __init__(self, message: str = "Iteration limit reached. Please upgrade your plan."):
        self.message = message
        super().__init__(message)


class QuotaGate:
    def __init__(self, users: UserRepository):
        self._users = users

    async def check_and_consume(self, user: User, cost: int = ITERATION_COSTS["full_generation"]) -> bool:
        """
        Consume iterations for one generation.

        Returns:
            True if iterations were consumed, False for BYOK users

        Raises:
            QuotaExceededError: If the plan limit is reached
        """
        if user.has_byok_api_key:
            logger.debug("User %s uses own API key, skipping quota", user.id)
            return False

        if user.iterations_exhausted:
            logger.info(
                "User %s reached iteration limit (%d/%d)",
                user.id,
                user.iterations_count,
                user.iterations_limit,
            )
            raise QuotaExceededError()

        await self._users.increment_iteration(user, cost)
        return True
