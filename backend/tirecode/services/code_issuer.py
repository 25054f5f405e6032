"""Allocation of public tire codes from a named database sequence."""

from __future__ import annotations

from loguru import logger
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tirecode.core.config import settings
from tirecode.domain.errors import ConflictError
from tirecode.models.generic_sequence import GenericSequence
from tirecode.models.tire_code import TireCode


async def reserve_sequence_number(
    session: AsyncSession, seq_name: str, start: int, *, max_attempts: int = 5
) -> int:
    """Reserve and return the next value for the provided sequence name."""

    attempts = 0
    while True:
        attempts += 1
        row = await session.scalar(
            select(GenericSequence)
            .where(GenericSequence.seq_name == seq_name)
            .with_for_update(nowait=settings.DB_NOWAIT_LOCKS)
        )
        if row:
            current = int(row.seq_no)
            row.seq_no = current + 1
            await session.flush()
            return current
        try:
            await session.execute(
                insert(GenericSequence).values(seq_name=seq_name, seq_no=start)
            )
        except IntegrityError:
            # Another transaction created the sequence concurrently; re-read it.
            if attempts >= max_attempts:
                logger.bind(seq_name=seq_name).warning("sequence_reservation_exhausted")
                raise ConflictError("Code allocation failed. Please retry.")


class SequenceCodeIssuer:
    """Issues numeric public codes, skipping values already taken by hand-assigned codes."""

    def __init__(
        self,
        seq_name: str | None = None,
        start: int | None = None,
        *,
        max_skips: int = 50,
    ) -> None:
        self.seq_name = seq_name or settings.CODE_SEQUENCE_NAME
        self.start = start if start is not None else settings.CODE_SEQUENCE_START
        self.max_skips = max_skips

    async def issue(self, session: AsyncSession) -> str:
        for _ in range(self.max_skips):
            candidate = str(await reserve_sequence_number(session, self.seq_name, self.start))
            taken = await session.scalar(
                select(TireCode.id).where(TireCode.code_public == candidate)
            )
            if not taken:
                return candidate
            logger.bind(code=candidate).debug("code_sequence_skip_taken")
        raise ConflictError("Could not allocate a free tire code. Please retry.")
