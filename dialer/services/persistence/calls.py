"""Call log persistence service."""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dialer.db.models import CallLog, CallStatus

logger = logging.getLogger(__name__)


class CallRecordError(Exception):
    """A call log was mutated in a way its lifecycle forbids."""


class CallLogPersistenceService:
    """Service for persisting call log data."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call_log(
        self,
        user_id: str,
        prospect_id: Optional[str] = None,
        agent_config_id: Optional[str] = None,
    ) -> CallLog:
        """Create a call log in the Initiated state, before the call is placed."""
        call_log = CallLog(
            user_id=user_id,
            prospect_id=prospect_id,
            agent_config_id=agent_config_id,
            call_status=CallStatus.INITIATED.value,
        )
        self.db.add(call_log)
        await self.db.commit()
        await self.db.refresh(call_log)
        return call_log

    async def get_call_log(self, call_log_id: str) -> Optional[CallLog]:
        """Get call log by id."""
        return await self.db.get(CallLog, call_log_id)

    async def get_by_call_sid(self, call_sid: str) -> Optional[CallLog]:
        """Get call log by Twilio call SID."""
        result = await self.db.execute(
            select(CallLog).where(CallLog.twilio_call_sid == call_sid)
        )
        return result.scalar_one_or_none()

    async def assign_call_sid(self, call_log_id: str, call_sid: str) -> CallLog:
        """Record the provider call SID. It is set once and never changed."""
        call_log = await self.get_call_log(call_log_id)
        if call_log is None:
            raise CallRecordError(f"Call log {call_log_id} not found")
        if call_log.twilio_call_sid and call_log.twilio_call_sid != call_sid:
            raise CallRecordError(
                f"Call log {call_log_id} already has call SID {call_log.twilio_call_sid}"
            )
        call_log.twilio_call_sid = call_sid
        await self.db.commit()
        await self.db.refresh(call_log)
        return call_log

    async def update_status(
        self,
        call_log: CallLog,
        status: CallStatus,
        duration_seconds: Optional[int] = None,
        recording_url: Optional[str] = None,
    ) -> CallLog:
        """Apply a status transition; terminal statuses stamp ``ended_at``."""
        call_log.call_status = status.value
        if duration_seconds is not None:
            call_log.call_duration_seconds = duration_seconds
        if recording_url:
            call_log.recording_url = recording_url
        if status.is_terminal and call_log.ended_at is None:
            call_log.ended_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(call_log)
        return call_log

    async def mark_failed(self, call_log_id: str, reason: Optional[str] = None) -> Optional[CallLog]:
        """Mark a call log Failed, keeping the reason as its summary."""
        call_log = await self.get_call_log(call_log_id)
        if call_log:
            call_log.call_status = CallStatus.FAILED.value
            call_log.ended_at = datetime.utcnow()
            if reason:
                call_log.summary = reason
            await self.db.commit()
            await self.db.refresh(call_log)
        return call_log

    async def append_transcript(self, call_log_id: str, line: str) -> Optional[CallLog]:
        """
        Append one line to the transcript.

        Read-then-append, not atomic: two overlapping writers for the same
        call can lose a line. Twilio sends one callback per call at a time.
        """
        call_log = await self.get_call_log(call_log_id)
        if call_log is None:
            logger.warning(f"[CALL LOG] Transcript append for unknown call log {call_log_id}")
            return None
        call_log.transcript = f"{call_log.transcript}\n{line}" if call_log.transcript else line
        await self.db.commit()
        await self.db.refresh(call_log)
        return call_log

    async def record_outcome(
        self, call_log_id: str, summary: str, extracted_data: Dict[str, Any]
    ) -> Optional[CallLog]:
        """Store the dialog's classified outcome."""
        call_log = await self.get_call_log(call_log_id)
        if call_log:
            call_log.summary = summary
            call_log.extracted_data = extracted_data
            await self.db.commit()
            await self.db.refresh(call_log)
        return call_log
