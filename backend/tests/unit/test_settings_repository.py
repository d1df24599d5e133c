"""
Unit tests for SettingsRepository and OutboundEmailRepository.
"""
import threading

import pytest

from backend.core.database.models import User
from backend.core.database.repository import OutboundEmailRepository, SettingsRepository
from backend.core.expansions.services import RepositorySettingsService


@pytest.fixture
def repo(db_session, vault):
    return SettingsRepository(db_session, vault)


class TestUsers:
    def test_get_or_create_is_case_insensitive(self, repo, db_user):
        again = repo.get_or_create_user("ALICE@example.com")

        assert again.id == db_user.id
        assert repo.get_user_id_by_email("Alice@Example.com") == db_user.id

    def test_explicit_id(self, repo):
        user = repo.get_or_create_user("bob@example.com", user_id="user-bob")

        assert user.id == "user-bob"
        assert repo.get_or_create_user("other@example.com", user_id="user-bob").email == "bob@example.com"

    def test_unknown_email(self, repo):
        assert repo.get_user_id_by_email("nobody@example.com") is None


class TestSettings:
    def test_round_trip_through_vault(self, repo, db_user, db_session):
        repo.write_settings(db_user.id, {"core-slack": {"slackToken": "xoxb-123", "enabled": True}})

        stored = db_session.query(User).filter(User.id == db_user.id).one().expansion_settings
        assert stored["core-slack"]["slackToken"] != "xoxb-123"
        assert ":" in stored["core-slack"]["slackToken"]
        assert stored["core-slack"]["enabled"] is True

        assert repo.read_settings(db_user.id) == {"core-slack": {"slackToken": "xoxb-123", "enabled": True}}

    def test_write_merges_top_level_keys(self, repo, db_user):
        repo.write_settings(db_user.id, {"core-slack": {"slackToken": "a"}})
        merged = repo.write_settings(db_user.id, {"core-notion": {"notionKey": "b"}})

        assert merged == {"core-slack": {"slackToken": "a"}, "core-notion": {"notionKey": "b"}}
        assert repo.read_settings(db_user.id) == merged

    def test_write_replaces_subtree(self, repo, db_user):
        repo.write_settings(db_user.id, {"core-notion": {"notionKey": "b", "databaseId": "db"}})
        repo.write_settings(db_user.id, {"core-notion": {"notionKey": "c"}})

        assert repo.read_settings(db_user.id) == {"core-notion": {"notionKey": "c"}}

    def test_replace_settings(self, repo, db_user):
        repo.write_settings(db_user.id, {"a": "1"})
        repo.replace_settings(db_user.id, {"b": "2"})

        assert repo.read_settings(db_user.id) == {"b": "2"}

    def test_legacy_plaintext_is_readable(self, repo, db_user, db_session):
        db_user.expansion_settings = {"core-slack": {"slackToken": "plain-token"}}
        db_session.commit()

        assert repo.read_settings(db_user.id)["core-slack"]["slackToken"] == "plain-token"

    def test_unknown_user(self, repo):
        assert repo.read_settings("missing") == {}
        with pytest.raises(LookupError):
            repo.write_settings("missing", {"a": 1})

    def test_signature(self, repo, db_user):
        assert repo.get_signature(db_user.id) == ""
        repo.set_signature(db_user.id, "-- Alice")
        assert repo.get_signature(db_user.id) == "-- Alice"


class TestOutboundEmails:
    def test_lifecycle_statuses(self, db_session, db_user):
        repo = OutboundEmailRepository(db_session)
        email = repo.create(db_user.id, ["bob@example.com"], "Hi", "Body", cc=["c@example.com"])

        assert email.status == "pending"
        assert email.to_dict()["cc"] == ["c@example.com"]

        repo.mark_sent(email, "<abc@example.com>")

        stored = repo.get(email.id)
        assert stored.status == "sent"
        assert stored.sent_at is not None
        assert stored.to_dict()["messageId"] == "<abc@example.com>"

    def test_blocked_and_failed(self, db_session, db_user):
        repo = OutboundEmailRepository(db_session)

        blocked = repo.mark_blocked(repo.create(db_user.id, ["x@example.com"], "s", "b"), "DLP Block")
        failed = repo.mark_failed(repo.create(db_user.id, ["x@example.com"], "s", "b"), "SMTP down")

        assert (blocked.status, blocked.status_message) == ("blocked", "DLP Block")
        assert (failed.status, failed.status_message) == ("failed", "SMTP down")
        assert blocked.sent_at is None


class TestRepositorySettingsService:
    @pytest.mark.asyncio
    async def test_round_trip_in_worker_threads(self, session_factory, vault, db_user):
        threads = []

        def factory():
            threads.append(threading.get_ident())
            return session_factory()

        service = RepositorySettingsService(factory, vault)

        assert await service.get_id_by_email("alice@example.com") == db_user.id
        await service.update_settings(db_user.id, {"core-slack": {"slackToken": "xoxb-1"}})
        assert await service.get_settings(db_user.id) == {"core-slack": {"slackToken": "xoxb-1"}}

        assert len(threads) == 3
        assert threading.get_ident() not in threads
