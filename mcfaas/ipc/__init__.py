"""
The IPC package.
Defines the typed message envelope exchanged between the control plane and
its workers, and the channel that carries it.
"""

from .channel import IpcChannel
from .messages import (ApplicationDescriptor, ErrorMessage, LoadMessage, MalformedMessage,
                       MessageType, MetadataMessage, ProtocolMessage, decode_message, encode_message)

__all__ = [
    "IpcChannel", "ApplicationDescriptor", "ErrorMessage", "LoadMessage", "MalformedMessage",
    "MessageType", "MetadataMessage", "ProtocolMessage", "decode_message", "encode_message",
]
