"""POP3 mail retrieval server: session engine, mailbox store and TCP listener."""

from pop3_mail.network.protocols.message import EmailMessage
from pop3_mail.software.credentials import CredentialDirectory
from pop3_mail.software.mailbox import Mailbox, MailboxManager
from pop3_mail.software.pop3_server import POP3Server
from pop3_mail.software.pop3_session import POP3Session

__version__ = "1.0.0"
__all__ = (
    "EmailMessage",
    "CredentialDirectory", "Mailbox", "MailboxManager",
    "POP3Server", "POP3Session"
)
