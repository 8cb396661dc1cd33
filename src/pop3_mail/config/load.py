"""Loading of pop3-mail YAML configuration files."""

from logging import getLogger
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, model_validator

from pop3_mail.network.protocols.message import EmailMessage
from pop3_mail.software.credentials import CredentialDirectory
from pop3_mail.software.mailbox import MailboxManager
from pop3_mail.software.pop3_server import POP3Server

_LOGGER = getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.yaml"


def default_config_path() -> Path:
    """Path of the configuration shipped with the package."""
    return _DEFAULT_CONFIG_PATH


class POP3MailConfig(BaseModel):
    """Validated contents of a pop3-mail configuration file."""

    server: POP3Server.ConfigSchema = Field(default_factory=lambda: POP3Server.ConfigSchema())
    users: Dict[str, str] = Field(default_factory=dict)
    mailboxes: Dict[str, List[EmailMessage]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_mailbox_owners(self) -> "POP3MailConfig":
        """Every seeded mailbox must belong to a configured user."""
        unknown = sorted(set(self.mailboxes) - set(self.users))
        if unknown:
            raise ValueError(f"Mailboxes configured for unknown users: {', '.join(unknown)}")
        return self

    def build_credentials(self) -> CredentialDirectory:
        return CredentialDirectory(users=self.users)

    def build_mailbox_manager(self) -> MailboxManager:
        """Create the mailbox store with an (initially empty) mailbox for every user."""
        manager = MailboxManager()
        for username in self.users:
            manager.create_mailbox(username)
        for username, messages in self.mailboxes.items():
            for message in messages:
                manager.add_message(username, message)
        return manager

    def build_server(self) -> POP3Server:
        """Create a POP3 server from this configuration. The server is not started."""
        return POP3Server(
            config=self.server,
            credentials=self.build_credentials(),
            mailbox_manager=self.build_mailbox_manager(),
        )


def load(file_path: Optional[Union[str, Path]] = None) -> POP3MailConfig:
    """
    Read a YAML configuration file.

    :param file_path: Path of the YAML file. Defaults to the packaged ``default_config.yaml``.
    :return: The validated configuration.
    :raises FileNotFoundError: If the file does not exist.
    :raises pydantic.ValidationError: If the file content is invalid.
    """
    file_path = Path(file_path) if file_path else _DEFAULT_CONFIG_PATH
    if not file_path.exists():
        msg = f"Cannot load the config file as it does not exist: {file_path}"
        _LOGGER.error(msg)
        raise FileNotFoundError(msg)

    with open(file_path, "r") as file:
        config: Dict[str, Any] = yaml.safe_load(file) or {}
    _LOGGER.debug(f"Loaded config from {file_path}")
    return POP3MailConfig.model_validate(config)
