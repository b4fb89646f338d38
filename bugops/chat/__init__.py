"""Interactive chat surface: command dispatch, authorization and transports."""

from bugops.chat.auth import ConfigGroupAuthorizer, GroupAuthorizer
from bugops.chat.console import ConsoleListener, ConsoleResponseWriter, ConsoleTransport
from bugops.chat.dispatcher import ChatRequest, CommandDispatcher, CommandResult, ResponseWriter, parse_command

__all__ = [
    "ChatRequest",
    "CommandDispatcher",
    "CommandResult",
    "ConfigGroupAuthorizer",
    "ConsoleListener",
    "ConsoleResponseWriter",
    "ConsoleTransport",
    "GroupAuthorizer",
    "ResponseWriter",
    "parse_command",
]
