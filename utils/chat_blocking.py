from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.chat import Block


async def get_block_between(db: AsyncSession, user1_id: int, user2_id: int) -> Optional[Block]:
    """Return a block in either direction between the two users, if any."""
    result = await db.execute(
        select(Block)
        .where(
            or_(
                and_(Block.blocker_id == user1_id, Block.blocked_id == user2_id),
                and_(Block.blocker_id == user2_id, Block.blocked_id == user1_id),
            )
        )
        .limit(1)
    )
    return result.scalar_one_or_none()
