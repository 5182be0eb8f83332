"""Read-only lookups for rows owned by the dashboard."""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dialer.db.models import AgentConfig, Profile


class AgentConfigRepository:
    """Agent configurations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, agent_config_id: Optional[str]) -> Optional[AgentConfig]:
        if not agent_config_id:
            return None
        return await self.db.get(AgentConfig, agent_config_id)


class ProfileRepository:
    """User profiles and the provider credentials stored on them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: Optional[str]) -> Optional[Profile]:
        if not user_id:
            return None
        return await self.db.get(Profile, user_id)
