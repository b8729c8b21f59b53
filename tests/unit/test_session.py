"""Tests for bounded chat sessions and the session registry."""

import threading

import pytest

from tierchat.session import ChatSession, Message, SessionRegistry


class TestMessage:
    """Tests for Message."""

    def test_render(self):
        """Test the prompt line format."""
        assert Message("user", "hello").render() == "user: hello\n"

    def test_invalid_role(self):
        """Test that unknown roles are rejected."""
        with pytest.raises(ValueError, match="system"):
            Message("system", "be nice")


class TestChatSession:
    """Tests for ChatSession windowing."""

    def test_sliding_window(self):
        """Test that H + 3 appends keep the last H messages in order."""
        session = ChatSession("s1", max_history=4)
        for i in range(7):
            session.add_message("user", f"m{i}")

        assert [m.content for m in session.history] == ["m3", "m4", "m5", "m6"]
        assert len(session) == 4

    def test_get_prompt(self):
        """Test prompt rendering of the full history."""
        session = ChatSession("s1")
        session.add_message("user", "hello")
        session.add_message("assistant", "hi there")

        assert session.get_prompt() == "user: hello\nassistant: hi there\n"

    def test_get_prompt_with_pending(self):
        """Test that pending messages are windowed without being stored."""
        session = ChatSession("s1", max_history=2)
        session.add_message("user", "a")
        session.add_message("assistant", "b")

        prompt = session.get_prompt([Message("user", "c")])

        assert prompt == "assistant: b\nuser: c\n"
        assert len(session) == 2

    def test_history_is_a_copy(self):
        """Test that mutating the returned history does not affect the session."""
        session = ChatSession("s1")
        session.add_message("user", "a")

        session.history.clear()

        assert len(session) == 1

    def test_invalid_max_history(self):
        """Test that a window smaller than one message is rejected."""
        with pytest.raises(ValueError):
            ChatSession("s1", max_history=0)

    def test_record_round_trip(self):
        """Test serialization and restoration."""
        session = ChatSession("s1", max_history=3)
        session.add_message("user", "a")
        session.add_message("assistant", "b")

        restored = ChatSession.from_record(session.to_record())

        assert restored.session_id == "s1"
        assert restored.max_history == 3
        assert restored.history == session.history


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    @pytest.fixture
    def registry(self):
        """Provide a registry with a window of four messages."""
        return SessionRegistry(max_history=4)

    def test_lazy_creation(self, registry):
        """Test that sessions are created on first reference."""
        assert "s1" not in registry

        session = registry.get_or_create("s1")

        assert "s1" in registry
        assert registry.get_or_create("s1") is session
        assert session.max_history == 4

    def test_default_session(self, registry):
        """Test that no id selects the default session."""
        session = registry.get_or_create()

        assert session.session_id == "default"
        assert registry.get_or_create(None) is session

    def test_custom_default_session(self):
        """Test a configured default session id."""
        registry = SessionRegistry(default_session_id="main")

        assert registry.get_or_create().session_id == "main"

    def test_history_of_unknown_session(self, registry):
        """Test that an unknown session has no history and is not created."""
        assert registry.history("ghost") == []
        assert len(registry) == 0

    def test_add_turn(self, registry):
        """Test that a turn appends the user and assistant messages."""
        session = registry.get_or_create("s1")

        registry.add_turn(session, "hello", "hi")

        assert registry.history("s1") == [Message("user", "hello"), Message("assistant", "hi")]

    def test_sessions_are_isolated(self, registry):
        """Test that messages never cross sessions."""
        registry.add_message(registry.get_or_create("a"), "user", "for a")
        registry.add_message(registry.get_or_create("b"), "user", "for b")

        assert [m.content for m in registry.history("a")] == ["for a"]
        assert [m.content for m in registry.history("b")] == ["for b"]
        assert sorted(registry.session_ids()) == ["a", "b"]

    def test_prompt_for(self, registry):
        """Test rendering through the registry."""
        session = registry.get_or_create("s1")
        registry.add_turn(session, "hello", "hi")

        prompt = registry.prompt_for(session, [Message("user", "again")])

        assert prompt == "user: hello\nassistant: hi\nuser: again\n"

    def test_turns_never_interleave(self):
        """Test that concurrent turns keep user/assistant pairs adjacent."""
        registry = SessionRegistry(max_history=1000)
        session = registry.get_or_create("shared")

        def worker(n):
            for i in range(25):
                registry.add_turn(session, f"q{n}-{i}", f"a{n}-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        history = registry.history("shared")
        assert len(history) == 200
        for user, assistant in zip(history[::2], history[1::2]):
            assert user.role == "user"
            assert assistant.content == "a" + user.content[1:]

    def test_restore(self, registry):
        """Test that restoring records replaces sessions by id."""
        registry.add_message(registry.get_or_create("s1"), "user", "old")
        records = [
            {
                "session_id": "s1",
                "max_history": 4,
                "messages": [{"role": "user", "content": "new"}],
            }
        ]

        restored = registry.restore(records)

        assert restored == 1
        assert [m.content for m in registry.history("s1")] == ["new"]
