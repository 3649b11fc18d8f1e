from typing import Optional


# Base class for every failure the chat flows know how to surface
class ChatError(Exception):
    pass


# Rejected before any network call (empty prompt, no active session)
class ValidationError(ChatError):
    pass


# Generation endpoint unreachable, timed out or returned a non-success status
class GatewayError(ChatError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# Read or insert against the backing store failed
class StoreError(ChatError):
    pass


StoreUnavailable = StoreError


# Identity provider rejected the caller
class AuthError(ChatError):
    pass
