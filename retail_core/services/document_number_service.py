"""
Document Number Allocation for invoices and returns.

FORMAT:
    {PREFIX}{YYYYMMDD}{SEQUENCE}
    INV20261018001, INV20261018002, ...  (daily reset)
    RET20261018001, ...

ALGORITHM:
    1. Highest existing numeric suffix under today's prefix (compared as
       integers, so 1000 > 999)
    2. Candidate = highest + 1
    3. Re-check the candidate is unused, retry after a short delay if not
    4. After DOCUMENT_NUMBER_MAX_RETRIES collisions fall back to
       {PREFIX}{YYYYMMDD}-{microsecond timestamp}

This is best effort, not a strict counter. The unique constraint on the
number column rejects anything that slips through; callers translate that
IntegrityError into DocumentNumberConflictError.

USAGE:
    allocator = DocumentNumberAllocator(db)
    invoice_number = await allocator.allocate("INVOICE")
"""
import asyncio
import logging
import time
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from retail_core.config import Settings, settings as default_settings
from retail_core.core.exceptions import ValidationError
from retail_core.models.sale import Sale
from retail_core.models.sales_return import SalesReturn

logger = logging.getLogger(__name__)


# Document type -> number column
DOCUMENT_COLUMNS = {
    "INVOICE": Sale.invoice_number,
    "RETURN": SalesReturn.return_number,
}


class DocumentNumberAllocator:
    """Generates daily-sequenced document numbers."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or default_settings

    def get_prefix(self, document_type: str) -> str:
        doc_type = document_type.upper()
        if doc_type == "INVOICE":
            return self.settings.INVOICE_PREFIX
        if doc_type == "RETURN":
            return self.settings.RETURN_PREFIX
        valid_types = ", ".join(DOCUMENT_COLUMNS.keys())
        raise ValidationError(f"Invalid document type '{doc_type}'. Valid types: {valid_types}")

    async def _get_max_sequence(self, column, day_prefix: str) -> int:
        """Largest numeric suffix under ``day_prefix``; timestamped fallbacks are skipped."""
        suffix = cast(func.substr(column, len(day_prefix) + 1), Integer)
        result = await self.db.execute(
            select(func.max(suffix)).where(
                column.like(f"{day_prefix}%"),
                column.notlike(f"{day_prefix}-%"),
            )
        )
        return result.scalar() or 0

    async def _number_exists(self, column, number: str) -> bool:
        result = await self.db.execute(
            select(column).where(column == number).limit(1)
        )
        return result.first() is not None

    async def allocate(self, document_type: str, on_date: Optional[date] = None) -> str:
        """
        Allocate the next number for ``document_type`` ("INVOICE" or "RETURN").

        Never raises on contention; falls back to a timestamped number instead.
        """
        prefix = self.get_prefix(document_type)
        column = DOCUMENT_COLUMNS[document_type.upper()]
        on_date = on_date or datetime.now(timezone.utc).date()
        day_prefix = f"{prefix}{on_date.strftime('%Y%m%d')}"

        max_retries = max(1, self.settings.DOCUMENT_NUMBER_MAX_RETRIES)
        delay = self.settings.DOCUMENT_NUMBER_RETRY_DELAY_MS / 1000

        for attempt in range(1, max_retries + 1):
            sequence = await self._get_max_sequence(column, day_prefix) + 1
            candidate = f"{day_prefix}{str(sequence).zfill(self.settings.DOCUMENT_NUMBER_PADDING)}"

            if not await self._number_exists(column, candidate):
                return candidate

            logger.debug(f"Document number {candidate} taken (attempt {attempt}/{max_retries})")
            if attempt < max_retries and delay > 0:
                await asyncio.sleep(delay)

        fallback = f"{day_prefix}-{int(time.time() * 1_000_000)}"
        logger.warning(
            f"Could not allocate sequential {document_type.upper()} number after "
            f"{max_retries} attempts, using {fallback}"
        )
        return fallback
