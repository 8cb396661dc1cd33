"""POP3 session state machine, one instance per client connection."""

from enum import Enum
from logging import getLogger
import re
from typing import Dict, Optional, Set, Tuple
import uuid

from pydantic import BaseModel, Field

from pop3_mail.network.protocols.message import EmailMessage
from pop3_mail.network.protocols.pop3 import POP3Command, POP3Request, POP3Response
from pop3_mail.software.credentials import CredentialDirectory
from pop3_mail.software.mailbox import MailboxManager

_LOGGER = getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class SessionState(Enum):
    """POP3 session states (RFC 1939 section 3)."""

    AUTHORIZATION = "authorization"
    TRANSACTION = "transaction"
    UPDATE = "update"


class POP3Session(BaseModel):
    """
    Interprets POP3 commands for a single connection.

    The session never performs I/O. :meth:`process` takes one parsed command and
    returns the response to send. Delete-marks are kept here and only reach the
    :class:`MailboxManager` when QUIT is received in the transaction state.
    """

    mailbox_manager: MailboxManager
    credentials: CredentialDirectory
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    state: SessionState = SessionState.AUTHORIZATION
    username: Optional[str] = None
    messages: Tuple[EmailMessage, ...] = ()
    """Mailbox snapshot taken when the user authenticated. Positions refer to this."""
    marked: Set[int] = Field(default_factory=set)
    closed: bool = False

    @property
    def authenticated(self) -> bool:
        return self.state == SessionState.TRANSACTION

    def process(self, request: POP3Request) -> POP3Response:
        """Process one POP3 command and generate the response."""
        _LOGGER.debug(f"pop3-session {self.session_id[:8]}: C: {request.loggable()}")

        command = request.command
        if command == POP3Command.USER:
            return self._handle_user(request)
        if command == POP3Command.PASS:
            return self._handle_pass(request)
        if command == POP3Command.QUIT:
            return self._handle_quit()

        # Everything else requires a completed login
        if not self.authenticated:
            return POP3Response.err("Authenticate first")

        handlers = {
            POP3Command.STAT: self._handle_stat,
            POP3Command.LIST: self._handle_list,
            POP3Command.RETR: self._handle_retr,
            POP3Command.DELE: self._handle_dele,
            POP3Command.RSET: self._handle_rset,
            POP3Command.NOOP: self._handle_noop,
            POP3Command.UIDL: self._handle_uidl,
        }
        handler = handlers.get(command)
        if handler is None:
            return POP3Response.err("Unknown command")
        return handler(request)

    def _visible(self) -> Dict[int, EmailMessage]:
        """Messages that are not marked for deletion, keyed by position."""
        return {
            number: message
            for number, message in enumerate(self.messages, 1)
            if number not in self.marked
        }

    def _get_message(self, message_number: int) -> Optional[EmailMessage]:
        if 1 <= message_number <= len(self.messages):
            return self.messages[message_number - 1]
        return None

    def _handle_user(self, request: POP3Request) -> POP3Response:
        """
        Handle USER command.

        USER is accepted in the authorization state only. Once logged in, the
        session is bound to its user and mailbox snapshot, so a second USER
        answers ``-ERR Already authenticated`` and changes nothing.
        """
        if self.authenticated:
            return POP3Response.err("Already authenticated")
        if not request.arguments:
            return POP3Response.err("Missing username")

        self.username = request.arguments
        if self.credentials.knows(self.username):
            return POP3Response.ok("User accepted, please send PASS")
        return POP3Response.err("No such user")

    def _handle_pass(self, request: POP3Request) -> POP3Response:
        """Handle PASS command."""
        if self.authenticated:
            return POP3Response.err("Already authenticated")
        if not self.username:
            return POP3Response.err("USER required first")

        if not self.credentials.verify(self.username, request.arguments):
            _LOGGER.warning(f"pop3-session {self.session_id[:8]}: Failed login for {self.username}")
            return POP3Response.err("Invalid password")

        self.messages = self.mailbox_manager.lookup(self.username)
        self.marked = set()
        self.state = SessionState.TRANSACTION
        _LOGGER.info(
            f"pop3-session {self.session_id[:8]}: {self.username} authenticated, {len(self.messages)} message(s)"
        )
        return POP3Response.ok("Authenticated")

    def _handle_stat(self, request: POP3Request) -> POP3Response:
        """Handle STAT command."""
        visible = self._visible()
        total_size = sum(message.size for message in visible.values())
        return POP3Response.ok(f"{len(visible)} {total_size}")

    def _handle_list(self, request: POP3Request) -> POP3Response:
        """Handle LIST command."""
        visible = self._visible()
        if request.arguments:
            # List specific message
            message = visible.get(request.message_number)
            if message is None:
                return POP3Response.err("No such message")
            return POP3Response.ok(f"{request.message_number} {message.size}")

        lines = [f"{number} {message.size}" for number, message in visible.items()]
        return POP3Response.ok(f"{len(visible)} messages", lines=lines)

    def _handle_uidl(self, request: POP3Request) -> POP3Response:
        """Handle UIDL command."""
        visible = self._visible()
        if request.arguments:
            message = visible.get(request.message_number)
            if message is None:
                return POP3Response.err("No such message")
            return POP3Response.ok(f"{request.message_number} {message.message_id}")

        lines = [f"{number} {message.message_id}" for number, message in visible.items()]
        return POP3Response.ok("Unique-ID listing follows", lines=lines)

    def _handle_retr(self, request: POP3Request) -> POP3Response:
        """Handle RETR command. Marked messages can still be retrieved."""
        if not request.arguments:
            return POP3Response.err("Message number required")

        message = self._get_message(request.message_number)
        if message is None:
            return POP3Response.err("no such message")

        lines = [f"From: {message.sender}", f"Subject: {message.subject}", ""]
        body_lines = _LINE_BREAK.split(message.body)
        if body_lines[-1] == "":
            body_lines.pop()
        lines.extend(body_lines)
        return POP3Response.ok(f"{message.size} octets", lines=lines)

    def _handle_dele(self, request: POP3Request) -> POP3Response:
        """Handle DELE command."""
        if not request.arguments:
            return POP3Response.err("Message number required")

        message_number = request.message_number
        if self._get_message(message_number) is None:
            return POP3Response.err("No such message")
        if message_number in self.marked:
            return POP3Response.err("Message already deleted")

        self.marked.add(message_number)
        return POP3Response.ok("Message marked for deletion")

    def _handle_rset(self, request: POP3Request) -> POP3Response:
        """Handle RSET command."""
        self.marked.clear()
        return POP3Response.ok("Reset state")

    def _handle_noop(self, request: POP3Request) -> POP3Response:
        """Handle NOOP command."""
        return POP3Response.ok()

    def _handle_quit(self) -> POP3Response:
        """Handle QUIT command, committing deletions if the user is logged in."""
        if self.authenticated:
            self.state = SessionState.UPDATE
            self.commit()
        self.closed = True
        return POP3Response.ok("Goodbye")

    def commit(self) -> int:
        """
        Apply this session's delete-marks to the mailbox store.

        Marked positions are resolved to message ids against the session
        snapshot, so messages already removed by another session are skipped.

        :return: Number of messages removed.
        """
        marked_ids = [self.messages[number - 1].message_id for number in sorted(self.marked)]
        removed = self.mailbox_manager.expunge(self.username, marked_ids)
        self.marked.clear()
        return removed

    def abort(self) -> None:
        """Discard uncommitted delete-marks after a transport failure."""
        if self.marked:
            _LOGGER.info(
                f"pop3-session {self.session_id[:8]}: Discarding {len(self.marked)} uncommitted delete mark(s)"
            )
        self.marked.clear()
        self.closed = True
