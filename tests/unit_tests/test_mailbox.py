"""Unit tests for mailbox functionality."""

import threading

from pop3_mail.network.protocols.message import EmailMessage
from pop3_mail.software.mailbox import Mailbox, MailboxManager


class TestMailbox:
    """Test cases for Mailbox class."""

    def test_mailbox_creation(self):
        mailbox = Mailbox(username="testuser")

        assert mailbox.username == "testuser"
        assert mailbox.message_count == 0
        assert mailbox.total_size == 0

    def test_add_message(self, sample_email):
        mailbox = Mailbox(username="testuser")

        assert mailbox.add_message(sample_email) is True
        assert mailbox.message_count == 1
        assert mailbox.total_size == sample_email.size

    def test_duplicate_message_rejected(self, sample_email):
        mailbox = Mailbox(username="testuser")
        mailbox.add_message(sample_email)

        assert mailbox.add_message(sample_email) is False
        assert mailbox.message_count == 1

    def test_get_messages_returns_snapshot(self, sample_email):
        mailbox = Mailbox(username="testuser")
        snapshot = mailbox.get_messages()
        mailbox.add_message(sample_email)

        assert snapshot == ()
        assert len(mailbox.get_messages()) == 1


class TestMailboxManager:
    """Test cases for MailboxManager class."""

    def test_create_mailbox(self):
        manager = MailboxManager()

        assert manager.create_mailbox("alice") is True
        assert manager.create_mailbox("alice") is False
        assert manager.get_mailbox("alice").username == "alice"

    def test_lookup_unknown_user_is_empty(self):
        manager = MailboxManager()

        assert manager.lookup("nobody") == ()
        assert manager.get_mailbox("nobody") is None

    def test_add_message_creates_mailbox(self, sample_email):
        manager = MailboxManager()

        assert manager.add_message("alice", sample_email) is True
        assert manager.lookup("alice") == (sample_email,)

    def test_commit_replaces_sequence(self, mailbox_manager):
        messages = mailbox_manager.lookup("hayley@proton.me")

        with mailbox_manager.lock("hayley@proton.me"):
            mailbox_manager.commit("hayley@proton.me", [messages[0], messages[2]])

        assert mailbox_manager.lookup("hayley@proton.me") == (messages[0], messages[2])

    def test_commit_does_not_alter_earlier_snapshots(self, mailbox_manager):
        snapshot = mailbox_manager.lookup("hayley@proton.me")

        with mailbox_manager.lock("hayley@proton.me"):
            mailbox_manager.commit("hayley@proton.me", [])

        assert len(snapshot) == 3
        assert mailbox_manager.lookup("hayley@proton.me") == ()

    def test_lock_is_per_user(self):
        manager = MailboxManager()

        assert manager.lock("alice") is manager.lock("alice")
        assert manager.lock("alice") is not manager.lock("bob")

    def test_expunge_by_id(self, mailbox_manager):
        messages = mailbox_manager.lookup("hayley@proton.me")

        removed = mailbox_manager.expunge("hayley@proton.me", [messages[1].message_id])

        assert removed == 1
        assert mailbox_manager.lookup("hayley@proton.me") == (messages[0], messages[2])

    def test_expunge_ignores_already_removed(self, mailbox_manager):
        messages = mailbox_manager.lookup("hayley@proton.me")
        mailbox_manager.expunge("hayley@proton.me", [messages[0].message_id])

        removed = mailbox_manager.expunge("hayley@proton.me", [messages[0].message_id, messages[1].message_id])

        assert removed == 1
        assert mailbox_manager.lookup("hayley@proton.me") == (messages[2],)

    def test_expunge_nothing(self, mailbox_manager):
        assert mailbox_manager.expunge("hayley@proton.me", []) == 0
        assert len(mailbox_manager.lookup("hayley@proton.me")) == 3

    def test_concurrent_expunge_loses_no_deletions(self):
        """Parallel commits for the same user each remove their own messages."""
        manager = MailboxManager()
        messages = [EmailMessage(sender="s@example.com", body=str(i)) for i in range(40)]
        for message in messages:
            manager.add_message("alice", message)

        def _remove(chunk):
            manager.expunge("alice", [message.message_id for message in chunk])

        threads = [threading.Thread(target=_remove, args=(messages[i::4],)) for i in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert manager.lookup("alice") == tuple(messages[3::4])
