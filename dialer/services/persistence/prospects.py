"""Prospect persistence service."""
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dialer.db.models import Prospect


class ProspectPersistenceService:
    """Service for the prospect fields the calling flow writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_prospect(self, prospect_id: str) -> Optional[Prospect]:
        """Get prospect by id."""
        return await self.db.get(Prospect, prospect_id)

    async def mark_calling(self, prospect: Prospect) -> Prospect:
        """Flag the prospect as being called now."""
        prospect.status = "Calling"
        prospect.last_call_attempted = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(prospect)
        return prospect

    async def record_outcome(
        self, prospect_id: str, notes_prefix: str, response: str
    ) -> Optional[Prospect]:
        """Complete the prospect and note what they said."""
        prospect = await self.get_prospect(prospect_id)
        if prospect:
            prospect.status = "Completed"
            prospect.notes = f"{notes_prefix}: {response}"
            await self.db.commit()
            await self.db.refresh(prospect)
        return prospect
