"""
Chat Package

Turns chat commands into stats replies. Sending messages to the chat
network is left to the caller through a `say` callable.
"""

from .command_handler import CommandHandler, ChatUser

__all__ = [
    'CommandHandler',
    'ChatUser',
]
