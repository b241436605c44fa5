"""
User repository.
"""
from typing import Iterable, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paasbaan.infrastructure.database.models import User
from paasbaan.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository."""

    label = "User"

    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    async def existing_ids(
        self,
        user_ids: Iterable[int],
    ) -> Set[int]:
        """
        Filter user IDs down to the ones present and active.

        Args:
            user_ids: Candidate user IDs

        Returns:
            Subset of IDs that exist
        """
        ids = set(user_ids)
        if not ids:
            return set()
        stmt = self.active(select(User.id)).where(User.id.in_(ids))
        result = await self.db.execute(stmt)
        return set(result.scalars().all())
