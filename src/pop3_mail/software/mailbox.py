"""Mailbox management for POP3 message storage."""

from logging import getLogger
from typing import Dict, Iterable, List, Optional, Tuple
import threading

from pydantic import BaseModel, Field, PrivateAttr

from pop3_mail.network.protocols.message import EmailMessage

_LOGGER = getLogger(__name__)


class Mailbox(BaseModel):
    """Represents a user's mailbox: an ordered sequence of messages, indexed from 1."""

    username: str
    messages: List[EmailMessage] = Field(default_factory=list)

    def add_message(self, message: EmailMessage) -> bool:
        """Append a message to the end of the mailbox."""
        if any(existing.message_id == message.message_id for existing in self.messages):
            return False
        self.messages.append(message)
        return True

    def get_messages(self) -> Tuple[EmailMessage, ...]:
        """Get a snapshot of all messages in mailbox order."""
        return tuple(self.messages)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def total_size(self) -> int:
        return sum(message.size for message in self.messages)


class MailboxManager(BaseModel):
    """
    Process-wide store of user mailboxes.

    Sessions read through :meth:`lookup` and write only through :meth:`commit`,
    holding the per-user lock returned by :meth:`lock` so that concurrent
    sessions for the same account cannot overwrite each other's deletions.
    """

    mailboxes: Dict[str, Mailbox] = Field(default_factory=dict)
    _locks: Dict[str, threading.Lock] = PrivateAttr(default_factory=dict)
    _locks_guard: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def create_mailbox(self, username: str) -> bool:
        """Create an empty mailbox. Returns False if the user already has one."""
        if username in self.mailboxes:
            return False
        self.mailboxes[username] = Mailbox(username=username)
        _LOGGER.debug(f"mailbox-manager: Created mailbox for {username}")
        return True

    def get_mailbox(self, username: str) -> Optional[Mailbox]:
        return self.mailboxes.get(username)

    def add_message(self, username: str, message: EmailMessage) -> bool:
        """Deliver a message to a user's mailbox, creating the mailbox if needed."""
        with self.lock(username):
            self.create_mailbox(username)
            return self.mailboxes[username].add_message(message)

    def lookup(self, username: str) -> Tuple[EmailMessage, ...]:
        """
        Get the current message sequence for a user.

        :param username: The mailbox owner.
        :return: The messages in mailbox order; empty for a user without a mailbox.
        """
        mailbox = self.mailboxes.get(username)
        if mailbox is None:
            return ()
        return mailbox.get_messages()

    def lock(self, username: str) -> threading.Lock:
        """Get the lock that serializes mutations of one user's mailbox."""
        with self._locks_guard:
            if username not in self._locks:
                self._locks[username] = threading.Lock()
            return self._locks[username]

    def commit(self, username: str, retained: Iterable[EmailMessage]) -> None:
        """
        Replace a user's stored message sequence.

        Callers must hold ``lock(username)``.

        :param username: The mailbox owner.
        :param retained: The messages to keep, in order. They are re-indexed from 1.
        """
        mailbox = self.mailboxes.get(username)
        if mailbox is None:
            mailbox = self.mailboxes[username] = Mailbox(username=username)
        mailbox.messages = list(retained)

    def expunge(self, username: str, message_ids: Iterable[str]) -> int:
        """
        Permanently remove messages by id from a user's mailbox.

        Messages already removed by another session are ignored.

        :param username: The mailbox owner.
        :param message_ids: Ids of the messages to remove.
        :return: The number of messages actually removed.
        """
        doomed = set(message_ids)
        if not doomed:
            return 0
        with self.lock(username):
            current = self.lookup(username)
            retained = [message for message in current if message.message_id not in doomed]
            self.commit(username, retained)
        removed = len(current) - len(retained)
        _LOGGER.info(f"mailbox-manager: Removed {removed} message(s) from {username}")
        return removed
