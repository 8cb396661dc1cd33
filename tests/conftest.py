"""Pytest configuration for pop3-mail tests."""

from typing import List, Tuple
import socket

import pytest

from pop3_mail.config import load
from pop3_mail.network.protocols.message import EmailMessage
from pop3_mail.software.credentials import CredentialDirectory
from pop3_mail.software.mailbox import MailboxManager
from pop3_mail.software.pop3_server import POP3Server

TEST_USER = "hayley@proton.me"
TEST_PASSWORD = "u21528790"


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers for all test types."""
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "email_protocols: mark test as email protocol test"
    )


# Test collection customization
def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically based on location."""
    for item in items:
        test_path = str(item.fspath)

        if "unit_tests" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "integration_tests" in test_path:
            item.add_marker(pytest.mark.integration)

        if "pop3" in item.name:
            item.add_marker(pytest.mark.email_protocols)


class POP3TestClient:
    """Minimal line-oriented POP3 client used to drive the server over TCP."""

    def __init__(self, address: Tuple[str, int], timeout: float = 5.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self.reader = self.sock.makefile("rb")
        self.greeting = self.readline()

    def readline(self) -> str:
        return self.reader.readline().decode("utf-8")

    def send(self, line: str) -> None:
        self.sock.sendall(f"{line}\r\n".encode("utf-8"))

    def command(self, line: str) -> str:
        """Send a command and return its single-line response, including CRLF."""
        self.send(line)
        return self.readline()

    def multiline(self, line: str) -> List[str]:
        """Send a command and return every response line up to and including the terminator."""
        self.send(line)
        lines = [self.readline()]
        if not lines[0].startswith("+OK"):
            return lines
        while lines[-1] not in (".\r\n", ""):
            lines.append(self.readline())
        return lines

    def login(self, username: str = TEST_USER, password: str = TEST_PASSWORD) -> str:
        self.command(f"USER {username}")
        return self.command(f"PASS {password}")

    def close(self) -> None:
        self.reader.close()
        self.sock.close()


@pytest.fixture
def sample_email():
    """Create a sample email message for testing."""
    return EmailMessage(
        sender="test@example.com",
        recipients=["recipient@example.com"],
        subject="Test Email",
        body="This is a test email message."
    )


@pytest.fixture
def credentials():
    """Credential directory with two test users."""
    return CredentialDirectory(users={TEST_USER: TEST_PASSWORD, "bob@example.com": "hunter2"})


@pytest.fixture
def mailbox_manager():
    """Mailbox store seeded with three messages for the test user and an empty one for bob."""
    manager = MailboxManager()
    manager.create_mailbox("bob@example.com")
    for i in range(1, 4):
        manager.add_message(TEST_USER, EmailMessage(
            sender=f"sender{i}@example.com",
            subject=f"Message {i}",
            body="x" * (10 * i),
        ))
    return manager


@pytest.fixture
def pop3_server():
    """A POP3 server built from the packaged configuration, listening on an ephemeral port."""
    config = load()
    config.server.port = 0
    server = config.build_server()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def client_factory():
    """Factory fixture opening POP3 test clients against a given address."""
    clients = []

    def _connect(address: Tuple[str, int]) -> POP3TestClient:
        client = POP3TestClient(address)
        clients.append(client)
        return client

    yield _connect

    for client in clients:
        client.close()


@pytest.fixture
def pop3_client(pop3_server, client_factory):
    """Factory fixture opening clients against the running test server."""
    return lambda: client_factory(pop3_server.address)
