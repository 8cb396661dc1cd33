"""Configuration loading for pop3-mail."""

from pop3_mail.config.load import default_config_path, load, POP3MailConfig

__all__ = ("default_config_path", "load", "POP3MailConfig")
