"""Email message model stored in POP3 mailboxes."""

from datetime import datetime
from typing import List
import uuid

from pydantic import BaseModel, ConfigDict, Field


class EmailMessage(BaseModel):
    """Represents a stored email message. Instances are immutable once created."""

    model_config = ConfigDict(frozen=True)

    sender: str
    subject: str = ""
    body: str = ""
    recipients: List[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())
    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    """Opaque identifier, stable for the lifetime of the message. Reported by UIDL."""

    @property
    def size(self) -> int:
        """
        Size of the message body in octets.

        :return: Byte length of the UTF-8 encoded body.
        """
        return len(self.body.encode("utf-8"))
