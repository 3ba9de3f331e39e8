"""
Passcode gate in front of document decryption.

The passcode is the subject's birth year. Repeated failures lock viewing
for a fixed window; administrators can lock indefinitely or clear a lock.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from pydantic import BaseModel

from talent_calendar.services.calendar_event import utcnow
from talent_calendar.services.document_encryption import DocumentEncryptionService
from talent_calendar.sync.storage import SyncStorageManager
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import (
    InvalidPasscodeError,
    LockoutError,
    PasscodeNotConfiguredError,
)

logger = logging.getLogger(__name__)


class DocumentAccessState(BaseModel):
    subject_id: str
    birth_year: Optional[int] = None
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None
    locked_by_admin: bool = False

    def is_locked(self, now: datetime) -> bool:
        return self.locked_by_admin or (self.locked_until is not None and self.locked_until > now)

    def to_response(self, now: datetime, max_attempts: int) -> Dict:
        return {
            "talentId": self.subject_id,
            "birthYearSet": self.birth_year is not None,
            "failedAttempts": self.failed_attempts,
            "attemptsRemaining": max(max_attempts - self.failed_attempts, 0),
            "isLocked": self.is_locked(now),
            "lockedUntil": self.locked_until.isoformat() if self.locked_until else None,
            "lockedByAdmin": self.locked_by_admin,
        }


class DocumentAccessGate:
    def __init__(
        self,
        storage: SyncStorageManager,
        encryption: DocumentEncryptionService,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: Optional[int] = None,
        lockout_hours: Optional[int] = None
    ):
        self.storage = storage
        self.encryption = encryption
        self.clock = clock
        self.max_attempts = max_attempts or settings.DOCUMENT_MAX_FAILED_ATTEMPTS
        self.lockout = timedelta(hours=lockout_hours or settings.DOCUMENT_LOCKOUT_HOURS)

    async def _load(self, subject_id: str) -> DocumentAccessState:
        data = await self.storage.get_document_access(subject_id)
        return DocumentAccessState.model_validate(data) if data else DocumentAccessState(subject_id=subject_id)

    async def _save(self, state: DocumentAccessState) -> None:
        await self.storage.save_document_access(state.subject_id, state.model_dump(mode="json"))

    async def status(self, subject_id: str) -> Dict:
        state = await self._load(subject_id)
        return state.to_response(self.clock(), self.max_attempts)

    async def unlock(self, subject_id: str, passcode: str) -> DocumentAccessState:
        """
        Check a passcode against the stored birth year.

        Raises:
            LockoutError: viewing is locked, or this failure triggered the lock
            PasscodeNotConfiguredError: no birth year on record
            InvalidPasscodeError: wrong passcode with attempts left
        """
        now = self.clock()
        state = await self._load(subject_id)

        if state.is_locked(now):
            raise LockoutError(
                "Document access locked by an administrator" if state.locked_by_admin
                else "Too many failed attempts; document access is temporarily locked"
            )

        if state.locked_until is not None:
            # Timed lock has run out
            state.locked_until = None
            state.failed_attempts = 0
            await self._save(state)

        if state.birth_year is None:
            raise PasscodeNotConfiguredError("No passcode configured for this talent")

        if str(passcode).strip() == str(state.birth_year):
            return state

        state.failed_attempts += 1
        remaining = self.max_attempts - state.failed_attempts
        if remaining <= 0:
            state.locked_until = now + self.lockout
            await self._save(state)
            logger.warning(f"Document access for {subject_id} locked until {state.locked_until.isoformat()}")
            raise LockoutError("Too many failed attempts; document access is locked")

        await self._save(state)
        logger.info(f"Wrong document passcode for {subject_id}, {remaining} attempts remaining")
        raise InvalidPasscodeError(f"Incorrect passcode. {remaining} attempts remaining.", remaining)

    async def view_document(self, file_name: str, subject_id: str, category: str, iv: str,
                            passcode: str) -> Dict:
        """Unlock, decrypt, then reset the failure counter"""
        state = await self.unlock(subject_id, passcode)
        result = await self.encryption.decrypt(file_name, subject_id, category, iv)

        if state.failed_attempts:
            state.failed_attempts = 0
            await self._save(state)
        return result

    # Administrator operations

    async def set_birth_year(self, subject_id: str, birth_year: int) -> Dict:
        state = await self._load(subject_id)
        state.birth_year = birth_year
        await self._save(state)
        return state.to_response(self.clock(), self.max_attempts)

    async def lock(self, subject_id: str) -> Dict:
        state = await self._load(subject_id)
        state.locked_by_admin = True
        await self._save(state)
        logger.info(f"Document access for {subject_id} locked by administrator")
        return state.to_response(self.clock(), self.max_attempts)

    async def clear_lock(self, subject_id: str) -> Dict:
        state = await self._load(subject_id)
        state.locked_by_admin = False
        state.locked_until = None
        state.failed_attempts = 0
        await self._save(state)
        logger.info(f"Document access lock cleared for {subject_id}")
        return state.to_response(self.clock(), self.max_attempts)
