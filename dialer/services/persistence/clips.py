"""Synthesized speech clip storage."""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dialer.db.models import SpeechClip


class SpeechClipRepository:
    """Stores audio Twilio fetches back through <Play>."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(
        self,
        audio: bytes,
        content_type: str = "audio/mpeg",
        call_log_id: Optional[str] = None,
    ) -> SpeechClip:
        clip = SpeechClip(audio=audio, content_type=content_type, call_log_id=call_log_id)
        self.db.add(clip)
        await self.db.commit()
        await self.db.refresh(clip)
        return clip

    async def get(self, clip_id: str) -> Optional[SpeechClip]:
        return await self.db.get(SpeechClip, clip_id)
