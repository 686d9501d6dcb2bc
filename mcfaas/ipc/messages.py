import json
import logging
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, constr, field_validator

log = logging.getLogger(__name__)


class MalformedMessage(ValueError):
    """A message with a known type whose payload has the wrong shape."""


class MessageType(str, Enum):
    LOAD = "loadFunctions"
    METADATA = "getApplicationMetadata"
    ERROR = "error"


class ApplicationDescriptor(BaseModel):
    """Language/runtime descriptor of one application reported by a worker."""

    model_config = ConfigDict(frozen=True)

    language_id: str = Field(min_length=1)
    path: str
    scripts: List[str]


ApplicationMap = Dict[constr(min_length=1), ApplicationDescriptor]


class LoadMessage(BaseModel):
    """Coordinator to worker: load this deployment."""

    model_config = ConfigDict(frozen=True)
    type: ClassVar[MessageType] = MessageType.LOAD

    deployment: Dict[str, Any]

    @field_validator("deployment")
    @classmethod
    def require_id(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if not value.get("id"):
            raise ValueError("deployment object requires an 'id'")
        return value

    @classmethod
    def from_payload(cls, data: Any) -> "LoadMessage":
        return cls(deployment=data)

    def payload(self) -> Any:
        return self.deployment


class MetadataMessage(BaseModel):
    """Worker to coordinator: the applications the worker has loaded."""

    model_config = ConfigDict(frozen=True)
    type: ClassVar[MessageType] = MessageType.METADATA

    applications: ApplicationMap = Field(min_length=1)

    @classmethod
    def from_payload(cls, data: Any) -> "MetadataMessage":
        return cls(applications=_APPLICATIONS.validate_python(data))

    def payload(self) -> Any:
        return {name: descriptor.model_dump() for name, descriptor in self.applications.items()}


class ErrorMessage(BaseModel):
    """Either direction: a failure report."""

    model_config = ConfigDict(frozen=True)
    type: ClassVar[MessageType] = MessageType.ERROR

    message: str
    code: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def code_as_text(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @classmethod
    def from_payload(cls, data: Any) -> "ErrorMessage":
        return cls.model_validate(data)

    def payload(self) -> Any:
        return self.model_dump(exclude_none=True)


ProtocolMessage = Union[LoadMessage, MetadataMessage, ErrorMessage]

_APPLICATIONS = TypeAdapter(ApplicationMap)

_MESSAGE_CLASSES = {
    MessageType.LOAD.value: LoadMessage,
    MessageType.METADATA.value: MetadataMessage,
    MessageType.ERROR.value: ErrorMessage,
}


def encode_message(message: ProtocolMessage) -> bytes:
    """Serializes a message as one newline-terminated JSON envelope."""
    envelope = {"type": message.type.value, "data": message.payload()}
    return json.dumps(envelope, separators=(",", ":")).encode("utf-8") + b"\n"


def decode_message(raw: Union[bytes, str]) -> Optional[ProtocolMessage]:
    """
    Parses one envelope from the channel.

    :param raw: A single JSON envelope.
    :return: The typed message, or None for an unknown type (ignored for
        forward compatibility).
    :raises MalformedMessage: If the envelope is not JSON, has no type, or its
        payload does not match its type.
    """
    try:
        envelope = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMessage(f"Envelope is not valid JSON: {e}") from e

    if not isinstance(envelope, dict) or not isinstance(envelope.get("type"), str):
        raise MalformedMessage("Envelope must be an object with a string 'type'.")

    message_class = _MESSAGE_CLASSES.get(envelope["type"])
    if message_class is None:
        log.debug(f"Ignoring message with unknown type '{envelope['type']}'.")
        return None
    try:
        return message_class.from_payload(envelope.get("data"))
    except ValidationError as e:
        raise MalformedMessage(f"Invalid '{envelope['type']}' payload: {e.error_count()} error(s)\n{e}") from e
