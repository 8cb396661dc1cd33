"""POP3 Protocol implementation for email retrieval."""

from enum import Enum
import re
from typing import List, Optional

from pydantic import BaseModel, Field

CRLF = "\r\n"
TERMINATOR = "."
INVALID_MESSAGE_NUMBER = -1

_MESSAGE_NUMBER = re.compile(r"[+-]?[0-9]+")


class POP3Command(Enum):
    """POP3 Commands as defined in RFC 1939 that this server implements."""

    USER = "USER"
    PASS = "PASS"
    STAT = "STAT"
    LIST = "LIST"
    RETR = "RETR"
    DELE = "DELE"
    NOOP = "NOOP"
    RSET = "RSET"
    QUIT = "QUIT"
    UIDL = "UIDL"


class POP3Status(Enum):
    """POP3 Response status."""

    OK = "+OK"
    ERR = "-ERR"


class POP3Request(BaseModel):
    """A single client command line split into verb and argument."""

    verb: str = ""
    arguments: str = ""

    @classmethod
    def parse(cls, line: str) -> "POP3Request":
        """
        Parse one command line.

        The line is split at the first space. The verb is upper-cased, the
        argument is kept exactly as sent apart from the line terminator.

        :param line: Raw command line, with or without CRLF.
        :return: The parsed request.
        """
        line = line.rstrip("\r\n")
        verb, _, arguments = line.partition(" ")
        return cls(verb=verb.upper(), arguments=arguments)

    @property
    def command(self) -> Optional[POP3Command]:
        """The recognised command, or None for an unknown verb."""
        try:
            return POP3Command(self.verb)
        except ValueError:
            return None

    @property
    def message_number(self) -> int:
        """
        The argument as a 1-based message number.

        :return: The number, or ``INVALID_MESSAGE_NUMBER`` if the argument is not numeric.
        """
        argument = self.arguments.strip()
        if not _MESSAGE_NUMBER.fullmatch(argument):
            return INVALID_MESSAGE_NUMBER
        return int(argument)

    def loggable(self) -> str:
        """Command text safe to write to logs (PASS secrets are masked)."""
        if self.command == POP3Command.PASS:
            return "PASS ****"
        return f"{self.verb} {self.arguments}".rstrip()


class POP3Response(BaseModel):
    """A single- or multi-line POP3 server response."""

    status: POP3Status
    message: str = ""
    lines: Optional[List[str]] = Field(default=None)
    """Content lines of a multi-line response. None for single-line responses."""

    @classmethod
    def ok(cls, message: str = "", lines: Optional[List[str]] = None) -> "POP3Response":
        return cls(status=POP3Status.OK, message=message, lines=lines)

    @classmethod
    def err(cls, message: str) -> "POP3Response":
        return cls(status=POP3Status.ERR, message=message)

    @property
    def is_ok(self) -> bool:
        return self.status == POP3Status.OK

    @property
    def multiline(self) -> bool:
        return self.lines is not None

    def to_wire(self) -> str:
        """
        Frame the response for transmission.

        Multi-line responses end with a lone ``.`` line; content lines that
        start with ``.`` are byte-stuffed with an extra leading dot.

        :return: CRLF terminated response text.
        """
        status_line = f"{self.status.value} {self.message}" if self.message else self.status.value
        wire = [status_line]
        if self.lines is not None:
            wire.extend(f".{line}" if line.startswith(TERMINATOR) else line for line in self.lines)
            wire.append(TERMINATOR)
        return CRLF.join(wire) + CRLF

    def to_bytes(self) -> bytes:
        return self.to_wire().encode("utf-8")
