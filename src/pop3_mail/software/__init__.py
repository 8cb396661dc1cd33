"""Email software services (POP3 server, sessions, mailbox store)."""

from pop3_mail.software.pop3_server import POP3Server
from pop3_mail.software.pop3_session import POP3Session

__all__ = ("POP3Server", "POP3Session")
