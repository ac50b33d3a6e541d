import pytest
from datetime import datetime, timedelta

from storygen.api.dependencies.session import SessionManager, VersionNotFound
from storygen.pipeline.story.types import StoryAnalysis


@pytest.fixture
def manager():
    return SessionManager(session_timeout_minutes=30)


class TestSessionManager:

    def test_create_and_get(self, manager):
        session = manager.create_session(prompt="make a story", product_caption="A lama plush")

        fetched = manager.get_session(session.session_id)
        assert fetched is session
        assert fetched.prompt == "make a story"
        assert fetched.versions == []
        assert fetched.current_image_url is None

    def test_unknown_session(self, manager):
        assert manager.get_session("missing") is None

    def test_expired_session_is_dropped(self, manager):
        session = manager.create_session()
        session.last_accessed = datetime.utcnow() - timedelta(minutes=31)

        assert manager.get_session(session.session_id) is None
        assert manager.get_stats()["active_sessions"] == 0

    def test_access_extends_lifetime(self, manager):
        session = manager.create_session()
        session.last_accessed = datetime.utcnow() - timedelta(minutes=29)

        assert manager.get_session(session.session_id) is session
        assert datetime.utcnow() - session.last_accessed < timedelta(minutes=1)

    def test_creating_cleans_expired(self, manager):
        old = manager.create_session()
        old.last_accessed = datetime.utcnow() - timedelta(hours=2)

        manager.create_session()

        assert manager.get_stats()["active_sessions"] == 1

    def test_delete(self, manager):
        session = manager.create_session()

        assert manager.delete_session(session.session_id) is True
        assert manager.delete_session(session.session_id) is False


class TestVersionHistory:

    @pytest.fixture
    def session(self, manager):
        session = manager.create_session()
        session.start_versions("v1")
        return session

    def test_add_version_selects_it(self, session):
        session.add_version("v2")
        session.add_version("v3")

        assert session.versions == ["v1", "v2", "v3"]
        assert session.current_image_url == "v3"

    def test_select_older_version(self, session):
        session.add_version("v2")

        assert session.select_version(0) == "v1"
        assert session.current_image_url == "v1"

    def test_edit_from_older_version_appends(self, session):
        session.add_version("v2")
        session.select_version(0)
        session.add_version("v3")

        assert session.versions == ["v1", "v2", "v3"]
        assert session.current_version == 2

    @pytest.mark.parametrize("index", [-1, 1])
    def test_select_missing_version(self, session, index):
        with pytest.raises(VersionNotFound):
            session.select_version(index)

    def test_new_versions_clear_analysis(self, session):
        session.analysis = StoryAnalysis()
        session.change_prompt = "prompt"

        session.add_version("v2")
        assert session.analysis is None
        assert session.change_prompt is None

    def test_start_versions_resets_history(self, session):
        session.add_version("v2")
        session.start_versions("fresh")

        assert session.versions == ["fresh"]
        assert session.current_version == 0
