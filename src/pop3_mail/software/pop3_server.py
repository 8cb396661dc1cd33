"""POP3 Server implementation for email retrieval."""

from logging import getLogger
from typing import Dict, Optional, Tuple
import socket
import threading
import time

from pydantic import BaseModel, Field, PrivateAttr, field_validator

from pop3_mail.network.protocols.pop3 import POP3Request, POP3Response
from pop3_mail.software.credentials import CredentialDirectory
from pop3_mail.software.mailbox import MailboxManager
from pop3_mail.software.pop3_session import POP3Session

_LOGGER = getLogger(__name__)

ACCEPT_POLL_INTERVAL = 0.5
ACCEPT_RETRY_DELAY = 0.1


class POP3Server(BaseModel):
    """
    POP3 Server service for email retrieval.

    Implements the RFC 1939 POP3 command subset over TCP. Each accepted
    connection is served by its own daemon thread running a
    :class:`POP3Session`; the accept loop never waits on a client.
    """

    class ConfigSchema(BaseModel):
        """ConfigSchema for POP3Server."""

        type: str = "pop3-server"
        host: str = "127.0.0.1"
        port: int = 1100
        backlog: int = 5
        idle_timeout: float = Field(default=600.0, description="Seconds a connection may stay silent before it is closed")
        max_line_length: int = Field(default=8192, description="Longest accepted command line in bytes")
        greeting: str = "POP3 server ready"

        @field_validator("port")
        @classmethod
        def validate_port(cls, v: int) -> int:
            """Validate port is a valid TCP port (0 binds an ephemeral port)."""
            if not 0 <= v <= 65535:
                raise ValueError(f"port must be between 0 and 65535, got {v}")
            return v

        @field_validator("backlog", "max_line_length")
        @classmethod
        def validate_positive_int(cls, v: int) -> int:
            if v <= 0:
                raise ValueError("value must be positive")
            return v

        @field_validator("idle_timeout")
        @classmethod
        def validate_idle_timeout(cls, v: float) -> float:
            """Validate idle_timeout is positive."""
            if v <= 0:
                raise ValueError("idle_timeout must be positive")
            return v

    name: str = "pop3-server"
    config: ConfigSchema = Field(default_factory=lambda: POP3Server.ConfigSchema())
    mailbox_manager: MailboxManager = Field(default_factory=MailboxManager)
    credentials: CredentialDirectory = Field(default_factory=CredentialDirectory)
    active_sessions: Dict[str, POP3Session] = Field(default_factory=dict)

    _listener: Optional[socket.socket] = PrivateAttr(default=None)
    _accept_thread: Optional[threading.Thread] = PrivateAttr(default=None)
    _stopping: threading.Event = PrivateAttr(default_factory=threading.Event)

    @property
    def running(self) -> bool:
        return self._listener is not None and not self._stopping.is_set()

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port), or None when the server is not running."""
        if self._listener is None:
            return None
        host, port = self._listener.getsockname()[:2]
        return host, port

    def start(self) -> bool:
        """Bind the listening socket and start accepting connections in the background."""
        if self.running:
            return True
        try:
            listener = socket.create_server((self.config.host, self.config.port), backlog=self.config.backlog)
        except OSError as e:
            _LOGGER.error(f"{self.name}: Failed to bind {self.config.host}:{self.config.port}: {e}")
            raise

        listener.settimeout(ACCEPT_POLL_INTERVAL)
        self._stopping.clear()
        self._listener = listener
        self._accept_thread = threading.Thread(target=self._accept_loop, name=f"{self.name}-accept", daemon=True)
        self._accept_thread.start()

        host, port = self.address
        _LOGGER.info(f"{self.name}: POP3 server listening on {host}:{port}")
        return True

    def stop(self) -> bool:
        """Stop accepting connections. Sessions already running finish on their own."""
        if self._listener is None:
            return False
        self._stopping.set()
        if self._accept_thread is not None and self._accept_thread is not threading.current_thread():
            self._accept_thread.join()
        self._listener.close()
        self._listener = None
        self._accept_thread = None
        _LOGGER.info(f"{self.name}: POP3 server stopped")
        return True

    def serve_forever(self) -> None:
        """Start the server and block until it is stopped."""
        self.start()
        accept_thread = self._accept_thread
        while accept_thread.is_alive():
            accept_thread.join(ACCEPT_POLL_INTERVAL)

    def _accept_loop(self) -> None:
        listener = self._listener
        while not self._stopping.is_set():
            try:
                conn, addr = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stopping.is_set():
                    break
                _LOGGER.error(f"{self.name}: Failed to accept connection: {e}")
                time.sleep(ACCEPT_RETRY_DELAY)
                continue

            worker = threading.Thread(
                target=self._handle_connection, args=(conn, addr), name=f"{self.name}-{addr[1]}", daemon=True
            )
            worker.start()

    def _handle_connection(self, conn: socket.socket, addr: Tuple) -> None:
        """Run one POP3 session over an accepted connection until QUIT or disconnect."""
        peer = f"{addr[0]}:{addr[1]}"
        session = POP3Session(mailbox_manager=self.mailbox_manager, credentials=self.credentials)
        self.active_sessions[session.session_id] = session
        _LOGGER.info(f"{self.name}: Connection from {peer}")

        try:
            with conn, conn.makefile("rb") as reader:
                conn.settimeout(self.config.idle_timeout)
                conn.sendall(POP3Response.ok(self.config.greeting).to_bytes())

                while not session.closed:
                    raw = reader.readline(self.config.max_line_length + 1)
                    if not raw:
                        _LOGGER.info(f"{self.name}: Client {peer} disconnected")
                        break
                    if len(raw) > self.config.max_line_length:
                        # Discard the rest of the oversized line
                        while raw and not raw.endswith(b"\n"):
                            raw = reader.readline(self.config.max_line_length + 1)
                        conn.sendall(POP3Response.err("Line too long").to_bytes())
                        continue

                    request = POP3Request.parse(raw.decode("utf-8", errors="replace"))
                    response = session.process(request)
                    conn.sendall(response.to_bytes())
        except socket.timeout:
            _LOGGER.info(f"{self.name}: Closing idle connection from {peer}")
        except OSError as e:
            _LOGGER.warning(f"{self.name}: Connection error with {peer}: {e}")
        except Exception:
            _LOGGER.exception(f"{self.name}: Unexpected error in session with {peer}")
        finally:
            if not session.closed:
                session.abort()
            self.active_sessions.pop(session.session_id, None)
            _LOGGER.info(f"{self.name}: Connection closed for {peer}")

    def show(self, markdown: bool = False):
        """Display POP3 server status and session information in tabular format."""
        from prettytable import PrettyTable, MARKDOWN

        status_table = PrettyTable(["Property", "Value"])
        if markdown:
            status_table.set_style(MARKDOWN)
        status_table.align = "l"
        status_table.title = f"POP3 Server Status ({self.name})"

        address = self.address
        status_table.add_row(["Service Name", self.name])
        status_table.add_row(["Running", "Yes" if self.running else "No"])
        status_table.add_row(["Address", f"{address[0]}:{address[1]}" if address else "not bound"])
        status_table.add_row(["Idle Timeout", f"{self.config.idle_timeout}s"])
        status_table.add_row(["Active Sessions", len(self.active_sessions)])
        status_table.add_row(["Total Mailboxes", len(self.mailbox_manager.mailboxes)])
        status_table.add_row(["Known Users", len(self.credentials.users)])

        print(status_table)

        if self.active_sessions:
            session_table = PrettyTable(["Session ID", "State", "Username", "Marked"])
            if markdown:
                session_table.set_style(MARKDOWN)
            session_table.align = "l"
            session_table.title = f"Active POP3 Sessions ({self.name})"

            for session_id, session in list(self.active_sessions.items()):
                session_table.add_row([
                    session_id[:8] + "...",
                    session.state.value,
                    session.username or "none",
                    len(session.marked),
                ])

            print(session_table)

    def show_mailbox(self, username: str = None, markdown: bool = False):
        """Display mailbox contents for a specific user or all users in tabular format."""
        from prettytable import PrettyTable, MARKDOWN

        if username:
            mailbox = self.mailbox_manager.get_mailbox(username)
            if not mailbox:
                print(f"Mailbox for user '{username}' not found")
                return

            messages = mailbox.get_messages()
            if not messages:
                print(f"{username}'s mailbox is empty")
                return

            msg_table = PrettyTable(["#", "From", "Subject", "Size", "UID"])
            if markdown:
                msg_table.set_style(MARKDOWN)
            msg_table.align = "l"
            msg_table.title = f"POP3 View: {username}'s Mailbox ({len(messages)} messages)"

            for i, msg in enumerate(messages, 1):
                msg_table.add_row([
                    i,
                    msg.sender[:20] + "..." if len(msg.sender) > 20 else msg.sender,
                    msg.subject[:30] + "..." if len(msg.subject) > 30 else msg.subject,
                    f"{msg.size} bytes",
                    msg.message_id,
                ])

            print(msg_table)
        else:
            if not self.mailbox_manager.mailboxes:
                print("No mailboxes found")
                return

            for name, mailbox in self.mailbox_manager.mailboxes.items():
                if mailbox.messages:
                    print(f"\n{'='*60}")
                    self.show_mailbox(name, markdown)

    def describe_state(self) -> Dict:
        """Describe the current state of the POP3 server."""
        address = self.address
        return {
            "name": self.name,
            "running": self.running,
            "address": f"{address[0]}:{address[1]}" if address else None,
            "active_sessions": len(self.active_sessions),
            "total_mailboxes": len(self.mailbox_manager.mailboxes),
            "total_messages": sum(mailbox.message_count for mailbox in self.mailbox_manager.mailboxes.values()),
        }
