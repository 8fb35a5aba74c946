"""API resources exposed on JustackClient."""

from .recipients import RecipientsResource
from .session import Session
from .sessions import RecipientRef, SessionsResource

__all__ = [
    "RecipientRef",
    "RecipientsResource",
    "Session",
    "SessionsResource",
]
