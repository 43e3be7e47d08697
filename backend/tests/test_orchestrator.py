"""
Unit tests for the session orchestrator.
Covers ordering, exclusivity, failure fallback, cancellation and queueing.
"""

import asyncio
import json
import pytest

from ailock.core.exceptions import (
    InvalidInputError, SessionNotFoundError, SessionBusyError, StorageError,
    ProviderError, ProviderUnreachableError,
)
from ailock.models import Mode, Role, GenerationState, UserLocation
from ailock.storage import (
    InMemorySessionStore, InMemoryUserContextProvider, LocalUserContextProvider, user_directory,
)

from conftest import FakeProvider, RecordingSink, make_orchestrator

FALLBACK = (
    "I apologize, but I'm experiencing some technical difficulties right now. "
    "Please try again in a moment."
)


class FailingStore(InMemorySessionStore):
    """Fails assistant writes."""

    async def append_turn(self, session_id, role, content):
        if role == Role.ASSISTANT:
            raise StorageError("disk full")
        return await super().append_turn(session_id, role, content)


class BrokenContextProvider(InMemoryUserContextProvider):
    """Raises on every lookup."""

    async def get_location(self, user_id):
        raise RuntimeError("profile service down")


class TestResolveSession:
    """Tests for start-or-resume."""

    @pytest.mark.asyncio
    async def test_same_pair_returns_same_session(self):
        orchestrator = make_orchestrator()
        first = await orchestrator.resolve_session("alice", Mode.CREATOR)
        second = await orchestrator.resolve_session("alice", "creator")
        assert first.session_id == second.session_id

    @pytest.mark.asyncio
    async def test_concurrent_resolve_creates_one(self):
        orchestrator = make_orchestrator()
        sessions = await asyncio.gather(*[
            orchestrator.resolve_session("alice", Mode.ANALYST) for _ in range(5)
        ])
        assert len({s.session_id for s in sessions}) == 1

    @pytest.mark.asyncio
    async def test_modes_are_separate(self):
        orchestrator = make_orchestrator()
        creator = await orchestrator.resolve_session("alice", Mode.CREATOR)
        analyst = await orchestrator.resolve_session("alice", Mode.ANALYST)
        assert creator.session_id != analyst.session_id

    @pytest.mark.asyncio
    async def test_unknown_mode(self):
        orchestrator = make_orchestrator()
        with pytest.raises(InvalidInputError):
            await orchestrator.resolve_session("alice", "poet")


class TestSubmitUserMessage:
    """Tests for the generation state machine."""

    @pytest.mark.asyncio
    async def test_success_flow(self):
        sink = RecordingSink()
        provider = FakeProvider(chunks=["Here are ", "some ideas..."])
        orchestrator = make_orchestrator(provider, sink)
        session = await orchestrator.resolve_session("alice", Mode.CREATOR)

        outcome = await orchestrator.submit_user_message(
            session.session_id, "I need help finding collaborators for my project"
        )

        assert outcome.success is True
        assert outcome.content == "Here are some ideas..."
        assert sink.types() == ["generation_started", "chunk", "chunk", "generation_complete"]
        complete = sink.events[-1][1]
        action_ids = [a.id for a in complete.actions]
        assert action_ids[:4] == ["create-intent", "brainstorm-ideas", "design-workflow", "generate-content"]
        assert "find-collaborators" in action_ids
        assert complete.usage == {"total_tokens": 7}

        history = await orchestrator.get_history(session.session_id)
        assert [t.role for t in history.turns] == [Role.USER, Role.ASSISTANT]
        assert history.turns[1].content == "Here are some ideas..."

    @pytest.mark.asyncio
    async def test_history_sent_to_provider(self):
        provider = FakeProvider(chunks=["ok"])
        orchestrator = make_orchestrator(provider)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        await orchestrator.submit_user_message(session.session_id, "first")
        await orchestrator.submit_user_message(session.session_id, "second")

        messages = provider.calls[-1]
        assert messages[0].role == "system"
        assert [(m.role, m.content) for m in messages[1:]] == [
            ("user", "first"), ("assistant", "ok"), ("user", "second"),
        ]

    @pytest.mark.asyncio
    async def test_history_limit(self):
        provider = FakeProvider(chunks=["ok"])
        orchestrator = make_orchestrator(provider, history_limit=3)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        for text in ("one", "two", "three"):
            await orchestrator.submit_user_message(session.session_id, text)
        assert len(provider.calls[-1]) == 1 + 3

    @pytest.mark.asyncio
    async def test_location_reaches_prompt_and_actions(self):
        user_context = InMemoryUserContextProvider()
        user_context.set_location("alice", UserLocation(city="Berlin", country="Germany"))
        provider = FakeProvider(chunks=["ok"])
        orchestrator = make_orchestrator(provider, user_context=user_context)
        session = await orchestrator.resolve_session("alice", Mode.ANALYST)

        outcome = await orchestrator.submit_user_message(session.session_id, "hi")
        assert "User location context: Berlin, Germany" in provider.calls[0][0].content
        assert [a["id"] for a in outcome.actions][-2:] == ["location-insights", "local-market-data"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_rejects_empty_text(self, text):
        orchestrator = make_orchestrator()
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        with pytest.raises(InvalidInputError):
            await orchestrator.submit_user_message(session.session_id, text)
        assert (await orchestrator.get_history(session.session_id)).turns == []

    @pytest.mark.asyncio
    async def test_unknown_session(self):
        orchestrator = make_orchestrator()
        with pytest.raises(SessionNotFoundError):
            await orchestrator.submit_user_message("missing", "hello")

    @pytest.mark.asyncio
    async def test_foreign_session(self):
        orchestrator = make_orchestrator()
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        with pytest.raises(SessionNotFoundError):
            await orchestrator.submit_user_message(session.session_id, "hello", user_id="mallory")

    @pytest.mark.asyncio
    async def test_provider_failure_persists_fallback(self, provider_error):
        sink = RecordingSink()
        orchestrator = make_orchestrator(FakeProvider(error=provider_error), sink)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        outcome = await orchestrator.submit_user_message(session.session_id, "hello")

        assert outcome.success is False
        assert outcome.content == FALLBACK
        assert outcome.actions == []
        assert sink.types().count("generation_failed") == 1
        assert "generation_complete" not in sink.types()
        turns = (await orchestrator.get_history(session.session_id)).turns
        assert [t.content for t in turns if t.role == Role.ASSISTANT] == [FALLBACK]

    @pytest.mark.asyncio
    async def test_mid_stream_failure_keeps_fallback(self):
        sink = RecordingSink()
        provider = FakeProvider(chunks=["partial", "rest"], error=ProviderError("cut"), error_after=1)
        orchestrator = make_orchestrator(provider, sink, retry_attempts=2)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        outcome = await orchestrator.submit_user_message(session.session_id, "hello")

        assert outcome.content == FALLBACK
        assert sink.types() == ["generation_started", "chunk", "generation_failed"]
        # No retry once a chunk was delivered
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_retry_before_first_chunk(self):
        provider = FakeProvider(chunks=["ok"], error=ProviderError("flaky"))
        orchestrator = make_orchestrator(provider, retry_attempts=2)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        original = provider.chat_completion_stream

        def recover_after_first(*args, **kwargs):
            if len(provider.calls) >= 1:
                provider.error = None
            return original(*args, **kwargs)

        provider.chat_completion_stream = recover_after_first
        outcome = await orchestrator.submit_user_message(session.session_id, "hello")
        assert outcome.success is True
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_unreachable_everywhere_falls_back(self):
        orchestrator = make_orchestrator(FakeProvider(error=ProviderUnreachableError("down")))
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        outcome = await orchestrator.submit_user_message(session.session_id, "hello")
        assert outcome.success is False

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self):
        orchestrator = make_orchestrator(store=FailingStore())
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        with pytest.raises(StorageError):
            await orchestrator.submit_user_message(session.session_id, "hello")
        assert orchestrator.get_state(session.session_id) == GenerationState.IDLE

    @pytest.mark.asyncio
    async def test_turns_alternate_and_are_ordered(self):
        orchestrator = make_orchestrator(FakeProvider(chunks=["reply"]))
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        for index in range(4):
            await orchestrator.submit_user_message(session.session_id, f"message {index}")

        turns = (await orchestrator.get_history(session.session_id)).turns
        assert [t.role for t in turns] == [Role.USER, Role.ASSISTANT] * 4
        timestamps = [t.created_at for t in turns]
        assert timestamps == sorted(timestamps)


class TestExclusivity:
    """Tests for one-generation-per-session and the bounded queue."""

    @pytest.mark.asyncio
    async def test_two_rapid_messages_run_sequentially(self):
        sink = RecordingSink()
        provider = FakeProvider(chunks=["a", "b"], delay=0.01)
        orchestrator = make_orchestrator(provider, sink)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        await asyncio.gather(
            orchestrator.submit_user_message(session.session_id, "first"),
            orchestrator.submit_user_message(session.session_id, "second"),
        )

        assert provider.max_active == 1
        types = sink.types()
        first_terminal = types.index("generation_complete")
        assert types.index("generation_started", 1) > first_terminal
        turns = (await orchestrator.get_history(session.session_id)).turns
        assert [t.content for t in turns if t.role == Role.USER] == ["first", "second"]
        assert [t.role for t in turns] == [Role.USER, Role.ASSISTANT] * 2

    @pytest.mark.asyncio
    async def test_queue_full_rejected(self):
        provider = FakeProvider(chunks=["slow"], delay=0.05)
        orchestrator = make_orchestrator(provider, queue_depth=1)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        first = asyncio.create_task(orchestrator.submit_user_message(session.session_id, "one"))
        second = asyncio.create_task(orchestrator.submit_user_message(session.session_id, "two"))
        await asyncio.sleep(0.01)
        with pytest.raises(SessionBusyError):
            await orchestrator.submit_user_message(session.session_id, "three")
        await asyncio.gather(first, second)

    @pytest.mark.asyncio
    async def test_queue_wait_timeout(self):
        provider = FakeProvider(chunks=["slow"], delay=0.2)
        orchestrator = make_orchestrator(provider, queue_timeout=0.05)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        first = asyncio.create_task(orchestrator.submit_user_message(session.session_id, "one"))
        await asyncio.sleep(0.01)
        with pytest.raises(SessionBusyError):
            await orchestrator.submit_user_message(session.session_id, "two")
        await first
        turns = (await orchestrator.get_history(session.session_id)).turns
        assert [t.content for t in turns if t.role == Role.USER] == ["one"]

    @pytest.mark.asyncio
    async def test_sessions_run_in_parallel(self):
        provider = FakeProvider(chunks=["a"], delay=0.05)
        orchestrator = make_orchestrator(provider)
        one = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        two = await orchestrator.resolve_session("bob", Mode.RESEARCHER)
        await asyncio.gather(
            orchestrator.submit_user_message(one.session_id, "hi"),
            orchestrator.submit_user_message(two.session_id, "hi"),
        )
        assert provider.max_active == 2

    @pytest.mark.asyncio
    async def test_state_while_generating(self):
        provider = FakeProvider(chunks=["a"], delay=0.05)
        orchestrator = make_orchestrator(provider)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        task = asyncio.create_task(orchestrator.submit_user_message(session.session_id, "hi"))
        await asyncio.sleep(0.01)
        assert orchestrator.get_state(session.session_id) == GenerationState.GENERATING
        await task
        assert orchestrator.get_state(session.session_id) == GenerationState.IDLE


class TestCancellationAndListeners:
    """Tests for explicit cancel and dropped listeners."""

    @pytest.mark.asyncio
    async def test_cancel_releases_and_discards(self):
        sink = RecordingSink()
        provider = FakeProvider(chunks=["a", "b", "c"], delay=0.03)
        orchestrator = make_orchestrator(provider, sink)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        task = asyncio.create_task(orchestrator.submit_user_message(session.session_id, "hi"))
        await asyncio.sleep(0.04)
        assert await orchestrator.cancel_generation(session.session_id) is True
        assert orchestrator.get_state(session.session_id) == GenerationState.IDLE

        outcome = await task
        assert outcome.discarded is True
        types = sink.types()
        assert "generation_cancelled" in types
        assert "generation_complete" not in types
        turns = (await orchestrator.get_history(session.session_id)).turns
        assert turns[-1].content == "abc"

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self):
        orchestrator = make_orchestrator()
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        assert await orchestrator.cancel_generation(session.session_id) is False

    @pytest.mark.asyncio
    async def test_no_listener_skips_chunks_but_persists(self):
        sink = RecordingSink(listening=False)
        orchestrator = make_orchestrator(FakeProvider(chunks=["x", "y"]), sink)
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)

        outcome = await orchestrator.submit_user_message(session.session_id, "hi")

        assert "chunk" not in sink.types()
        assert outcome.content == "xy"
        turns = (await orchestrator.get_history(session.session_id)).turns
        assert turns[-1].content == "xy"


class TestReadHelpers:
    """Tests for suggested actions and run_generation."""

    @pytest.mark.asyncio
    async def test_suggested_actions_cached_after_turn(self):
        orchestrator = make_orchestrator(FakeProvider(chunks=["let's build it"]))
        session = await orchestrator.resolve_session("alice", Mode.ANALYST)
        await orchestrator.submit_user_message(session.session_id, "hi")
        actions = await orchestrator.get_suggested_actions(session.session_id)
        assert "create-project-plan" in [a.id for a in actions]

    @pytest.mark.asyncio
    async def test_suggested_actions_without_turns(self):
        orchestrator = make_orchestrator()
        session = await orchestrator.resolve_session("alice", Mode.CREATOR)
        actions = await orchestrator.get_suggested_actions(session.session_id)
        assert [a.id for a in actions][0] == "create-intent"

    @pytest.mark.asyncio
    async def test_run_generation_regenerates(self):
        orchestrator = make_orchestrator(FakeProvider(chunks=["again"]))
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        await orchestrator.submit_user_message(session.session_id, "hi")
        outcome = await orchestrator.run_generation(session.session_id)
        assert outcome.content == "again"
        turns = (await orchestrator.get_history(session.session_id)).turns
        assert len(turns) == 3


class TestUserContextFailures:
    """A broken user context never costs the reply."""

    @pytest.mark.asyncio
    async def test_malformed_profile_still_replies(self, tmp_path):
        profile_dir = tmp_path / "users" / user_directory("alice")
        profile_dir.mkdir(parents=True)
        (profile_dir / "profile.json").write_text(json.dumps({"location": {"latitude": "north"}}))

        sink = RecordingSink()
        orchestrator = make_orchestrator(
            FakeProvider(chunks=["ok"]), sink, user_context=LocalUserContextProvider(str(tmp_path)),
        )
        session = await orchestrator.resolve_session("alice", Mode.RESEARCHER)
        outcome = await orchestrator.submit_user_message(session.session_id, "hello")

        assert outcome.success is True
        assert sink.types() == ["generation_started", "chunk", "generation_complete"]
        turns = (await orchestrator.get_history(session.session_id)).turns
        assert [t.role for t in turns] == [Role.USER, Role.ASSISTANT]

    @pytest.mark.asyncio
    async def test_failing_provider_drops_location_only(self):
        sink = RecordingSink()
        provider = FakeProvider(chunks=["ok"])
        orchestrator = make_orchestrator(provider, sink, user_context=BrokenContextProvider())
        session = await orchestrator.resolve_session("alice", Mode.ANALYST)

        outcome = await orchestrator.submit_user_message(session.session_id, "hello")

        assert outcome.success is True
        assert sink.types()[-1] == "generation_complete"
        assert "User location context" not in provider.calls[0][0].content
        actions = await orchestrator.get_suggested_actions(session.session_id)
        assert "location-insights" not in [a.id for a in actions]


class TestBookkeeping:
    """Per-key state does not outlive its use."""

    @pytest.mark.asyncio
    async def test_resolve_guards_released(self):
        orchestrator = make_orchestrator()
        await asyncio.gather(*[
            orchestrator.resolve_session(f"user-{i % 3}", Mode.CREATOR) for i in range(9)
        ])
        assert orchestrator._resolve_guards == {}

    @pytest.mark.asyncio
    async def test_resolve_guard_released_on_error(self):
        class ExplodingStore(InMemorySessionStore):
            async def latest_session(self, user_id, mode):
                raise StorageError("down")

        orchestrator = make_orchestrator(store=ExplodingStore())
        with pytest.raises(StorageError):
            await orchestrator.resolve_session("alice", Mode.CREATOR)
        assert orchestrator._resolve_guards == {}

    @pytest.mark.asyncio
    async def test_action_cache_is_bounded(self):
        orchestrator = make_orchestrator(FakeProvider(chunks=["ok"]), action_cache_size=2)
        sessions = [await orchestrator.resolve_session(f"user-{i}", Mode.CREATOR) for i in range(3)]
        for session in sessions:
            await orchestrator.submit_user_message(session.session_id, "hi")

        assert list(orchestrator._actions) == [s.session_id for s in sessions[1:]]
        # Evicted entries are recomputed on demand
        actions = await orchestrator.get_suggested_actions(sessions[0].session_id)
        assert [a.id for a in actions][0] == "create-intent"
        assert len(orchestrator._actions) == 2

    @pytest.mark.asyncio
    async def test_slots_released_after_generation(self):
        orchestrator = make_orchestrator(FakeProvider(chunks=["ok"]))
        session = await orchestrator.resolve_session("alice", Mode.CREATOR)
        await orchestrator.submit_user_message(session.session_id, "hi")
        assert orchestrator._slots == {}
