"""Call record persistence service."""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from app.db.models import CallRecord


class CallRecordService:
    """Service for persisting outbound call records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call_record(
        self,
        call_sid: str,
        phone_number: Optional[str] = None,
        prospect_id: Optional[str] = None,
        manager_name: Optional[str] = None,
        hotel_name: Optional[str] = None,
        recommended_product: Optional[str] = None,
        last_product: Optional[str] = None,
        status: str = "queued",
    ) -> CallRecord:
        """Create a new call record or return existing one."""
        existing = await self.get_call_by_sid(call_sid)
        if existing:
            return existing

        record = CallRecord(
            call_sid=call_sid,
            phone_number=phone_number,
            prospect_id=prospect_id,
            manager_name=manager_name,
            hotel_name=hotel_name,
            recommended_product=recommended_product,
            last_product=last_product,
            status=status,
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def get_call_by_sid(self, call_sid: str) -> Optional[CallRecord]:
        """Get call record by Twilio call SID."""
        result = await self.db.execute(
            select(CallRecord).where(CallRecord.call_sid == call_sid)
        )
        return result.scalar_one_or_none()

    async def update_call_status(
        self,
        call_sid: str,
        status: str,
        duration_seconds: Optional[int] = None,
        from_number: Optional[str] = None,
        to_number: Optional[str] = None,
        ended_at: Optional[datetime] = None,
    ) -> CallRecord:
        """Update call status, creating the record if the call was placed elsewhere."""
        record = await self.get_call_by_sid(call_sid)
        if record is None:
            record = CallRecord(call_sid=call_sid, status=status)
            self.db.add(record)

        record.status = status
        if duration_seconds is not None:
            record.duration_seconds = duration_seconds
        if from_number:
            record.from_number = from_number
        if to_number:
            record.to_number = to_number
        if ended_at:
            record.ended_at = ended_at
        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def list_calls(self, limit: int = 100) -> List[CallRecord]:
        """Most recent call records first."""
        result = await self.db.execute(
            select(CallRecord).order_by(desc(CallRecord.created_at), desc(CallRecord.id)).limit(limit)
        )
        return list(result.scalars().all())
