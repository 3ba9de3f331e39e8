"""
Error taxonomy for the talent calendar service.

Every error carries the HTTP status it maps to; ``main`` registers one handler
that renders them as ``{"error": message}``.
"""

from typing import Optional


class TalentCalendarError(Exception):
    """Base class for all service errors"""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(TalentCalendarError):
    """Missing or invalid bearer token, OAuth state or authorization code"""
    status_code = 401


class CalendarNotConfiguredError(TalentCalendarError):
    """Google client credentials are not configured"""
    status_code = 503


class CalendarNotConnectedError(TalentCalendarError):
    """No calendar connection exists for the talent"""
    status_code = 404


class TokenRefreshError(TalentCalendarError):
    """The refresh token was rejected; the talent has to reconnect"""
    status_code = 401


class ProviderAPIError(TalentCalendarError):
    """Non-2xx response from the Google Calendar API"""
    status_code = 502

    def __init__(self, message: str, provider_status: Optional[int] = None):
        super().__init__(message)
        self.provider_status = provider_status


class EventNotFoundError(TalentCalendarError):
    status_code = 404


class TranslationError(TalentCalendarError):
    """A provider event could not be translated into the internal model"""
    status_code = 422


class EncryptionError(TalentCalendarError):
    status_code = 500


class DecryptionError(TalentCalendarError):
    status_code = 400


class DocumentNotFoundError(TalentCalendarError):
    status_code = 404


class DocumentAccessError(TalentCalendarError):
    """Base class for passcode gate failures"""
    status_code = 403


class InvalidPasscodeError(DocumentAccessError):
    status_code = 403

    def __init__(self, message: str, attempts_remaining: int):
        super().__init__(message)
        self.attempts_remaining = attempts_remaining


class PasscodeNotConfiguredError(DocumentAccessError):
    status_code = 409


class LockoutError(DocumentAccessError):
    status_code = 423
