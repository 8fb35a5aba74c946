"""Justack - human-in-the-loop sessions for AI agents.

Agents post progress notifications and ask typed questions; humans answer
from the Justack app and the answer arrives back as a typed record.
"""

from .client import JustackClient
from .config import DEFAULT_BASE_URL, ClientOptions, WebSocketOptions
from .correlation import CorrelationEngine
from .errors import (
    BadRequestError,
    ConnectionClosedError,
    ForbiddenError,
    JustackError,
    NetworkError,
    NotConnectedError,
    NotFoundError,
    PaymentRequiredError,
    ProtocolError,
    RateLimitedError,
    RequestTimeoutError,
    SessionExpiredError,
    UnauthorizedError,
    ValidationError,
)
from .events import EventEmitter
from .inputs import (
    ConfirmInput,
    SelectInput,
    SelectOption,
    TextInput,
    decode_response,
    response_model,
    response_shape,
)
from .pagination import collect, paginate
from .resources import RecipientsResource, Session, SessionsResource
from .transport import ConnectionEvent, ConnectionStatus, WebSocketConnection
from .types import (
    InviteResult,
    InviteUrlResult,
    Message,
    MessageRole,
    MessageType,
    Recipient,
    SessionData,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "JustackClient",
    "ClientOptions",
    "WebSocketOptions",
    "DEFAULT_BASE_URL",
    # Sessions
    "Session",
    "SessionsResource",
    "RecipientsResource",
    # Connection
    "WebSocketConnection",
    "ConnectionStatus",
    "ConnectionEvent",
    "CorrelationEngine",
    "EventEmitter",
    # Inputs
    "TextInput",
    "ConfirmInput",
    "SelectInput",
    "SelectOption",
    "response_model",
    "response_shape",
    "decode_response",
    # Records
    "Message",
    "MessageRole",
    "MessageType",
    "Recipient",
    "SessionData",
    "InviteResult",
    "InviteUrlResult",
    # Pagination
    "paginate",
    "collect",
    # Errors
    "JustackError",
    "NotConnectedError",
    "RequestTimeoutError",
    "SessionExpiredError",
    "ConnectionClosedError",
    "ProtocolError",
    "ValidationError",
    "BadRequestError",
    "UnauthorizedError",
    "PaymentRequiredError",
    "ForbiddenError",
    "NotFoundError",
    "RateLimitedError",
    "NetworkError",
]
