"""Pydantic schemas for inbound chat events.

Field names follow the wire contract used by the marketplace front end
(``userId``, ``conversationId``, ``recipientId``, ``id_toko`` ...). Unknown
fields are kept so that forwarded payloads reach the recipient untouched.
Missing identity fields fail validation and the event is dropped.
"""
from typing import Annotated, Any, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _as_str(value: Any) -> Any:
    # Ids arrive as ints from some clients; rooms and registry keys are strings.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


Identifier = Annotated[str, BeforeValidator(_as_str), Field(min_length=1)]
RawId = Union[int, str]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")


class UserConnect(_Payload):
    userId: Identifier
    role: Optional[str] = None


class ViewingChange(_Payload):
    userId: Identifier
    conversationId: Identifier


class StopViewing(_Payload):
    userId: Identifier
    conversationId: Optional[Identifier] = None


class UserLogout(_Payload):
    userId: Identifier
    isPemilikToko: Optional[bool] = None


class SellerMessageData(_Payload):
    id: RawId
    sender_id: RawId
    conversation_id: Optional[Identifier] = None


class NotifySeller(_Payload):
    """Buyer -> seller message notification."""
    id_toko: RawId
    message_data: SellerMessageData
    conversationId: Optional[Identifier] = None


class BuyerMessage(_Payload):
    """Seller -> buyer chat message."""
    recipientId: Identifier
    sender_id: RawId
    id: RawId
    conversationId: Optional[Identifier] = None


class MarkRead(_Payload):
    conversationId: Identifier
    readerId: Optional[Identifier] = None


class Typing(_Payload):
    userId: Identifier
    conversationId: Optional[Identifier] = None
    recipientId: Optional[Identifier] = None


class JoinRoom(_Payload):
    conversationId: Identifier


class OnlineStatusQuery(_Payload):
    userId: Identifier


class MessageStatusQuery(_Payload):
    """Sender asks which check mark its messages currently have."""
    conversationId: Identifier
    messageIds: List[RawId] = Field(default_factory=list)
