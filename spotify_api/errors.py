from typing import Optional


class SpotifyError(RuntimeError):
    """Base class for every error raised by spotify_api."""


# -----------------
# Authorization flow
# -----------------


class AuthError(SpotifyError):
    pass


class StateMismatchError(AuthError):
    """The callback's state parameter did not match the one we generated."""


class AuthTimeoutError(AuthError):
    pass


class ExchangeFailedError(AuthError):
    """The user denied access, or the code could not be exchanged for tokens."""


class AuthInProgressError(AuthError):
    pass


class ListenerError(AuthError):
    """The local callback listener could not bind its port."""


# -----------------
# Session
# -----------------


class SessionError(SpotifyError):
    pass


class UnauthenticatedError(SessionError):
    pass


class ReauthRequiredError(SessionError):
    """The refresh token was rejected; the user has to authenticate again."""


# -----------------
# Web API
# -----------------


class ApiError(SpotifyError):
    def __init__(self, message: str, *, status: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.reason = reason


class NotFoundError(ApiError):
    pass


class RateLimitedError(ApiError):
    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class PremiumRequiredError(ApiError):
    pass


class NoActiveDeviceError(ApiError):
    pass


class RemoteUnavailableError(ApiError):
    pass


class MalformedResponseError(ApiError):
    pass


# -----------------
# Token persistence
# -----------------


class TokenStoreError(SpotifyError):
    pass
