"""
User repository backed by Pocketbase.
"""
import logging
from typing import Optional

from prepstream.models.documents import User
from prepstream.services.pocketbase import PocketbaseService

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


def quote_filter_value(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class UserRepository:
    def __init__(self, pocketbase: PocketbaseService):
        self._pocketbase = pocketbase

    async def find_by_clerk_id(self, clerk_id: str) -> Optional[User]:
        record = await self._pocketbase.first_record(
            USERS_COLLECTION,
            filter=f"clerk_id={quote_filter_value(clerk_id)}",
        )
        if record is None:
            return None
        return User.model_validate(record)

    async def increment_iteration(self, user: User, amount: int = 1) -> None:
        """Atomically add to the user's iteration counter."""
        await self._pocketbase.update_record(
            USERS_COLLECTION,
            user.id,
            {"iterations_count+": amount},
        )
        logger.debug("Incremented iterations for user %s by %d", user.id, amount)
