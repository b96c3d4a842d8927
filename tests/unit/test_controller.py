"""Unit tests for the session controller turn state machine."""

import asyncio
from collections.abc import Callable

import pytest
import pytest_check as check

from src.chat.controller import ChatEventHandlers, SessionController, compose_prompt
from src.chat.errors import EmptyTurn, NothingToSave, TransportError, TurnInProgress
from src.models.schemas import DocumentContent, Message, Role, TurnState
from src.storage.session_store import SessionStore
from tests.fakes import FakeClock, FakeTransport, done_frame, encode_frame, text_frame


class Recorder:
    """Collects controller events."""

    def __init__(self) -> None:
        self.appended: list[Message] = []
        self.updated: list[tuple[str, str]] = []
        self.failed: list[str] = []
        self.completed: list[Message] = []

    def handlers(self) -> ChatEventHandlers:
        return ChatEventHandlers(
            on_message_appended=self.appended.append,
            on_message_updated=lambda mid, text: self.updated.append((mid, text)),
            on_turn_failed=self.failed.append,
            on_turn_completed=self.completed.append,
        )


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_controller(
    memory_store: SessionStore, fixed_clock: FakeClock, recorder: Recorder
) -> Callable[..., SessionController]:
    def _make(transport: FakeTransport) -> SessionController:
        return SessionController(
            transport, memory_store, clock=fixed_clock, handlers=recorder.handlers()
        )

    return _make


async def _wait_for(predicate: Callable[[], bool]) -> None:
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def _texts(controller: SessionController) -> list[tuple[Role, str]]:
    return [(m.role, m.text) for m in controller.transcript()]


class TestHappyPath:
    """Tests for successful turns."""

    async def test_two_frames_build_transcript_and_token(
        self, make_controller, recorder: Recorder
    ) -> None:
        """Two frames produce one user and one assistant message plus the token."""
        transport = FakeTransport(
            [
                encode_frame(**{"text-fragment": "Hi", "done": False}),
                encode_frame(**{"text-fragment": " there", "done": True, "token": [1, 2, 3]}),
            ]
        )
        controller = make_controller(transport)

        ok = await controller.submit("hello", [])

        check.is_true(ok)
        check.equal(_texts(controller), [(Role.USER, "hello"), (Role.ASSISTANT, "Hi there")])
        check.equal(controller.context.token, [1, 2, 3])
        check.equal(controller.turn_state, TurnState.IDLE)
        check.equal(len(recorder.completed), 1)
        check.equal(recorder.completed[0].text, "Hi there")
        check.equal(recorder.failed, [])
        check.equal(transport.closed, 1)

    async def test_events_follow_stream(self, make_controller, recorder: Recorder) -> None:
        """Appended and updated events track the transcript as it grows."""
        controller = make_controller(
            FakeTransport([text_frame("a"), text_frame("b"), done_frame("c", context=[1])])
        )

        await controller.submit("go")

        reply_id = controller.transcript()[-1].id
        check.equal([m.role for m in recorder.appended], [Role.USER, Role.ASSISTANT])
        check.equal(recorder.appended[1].text, "")
        check.equal(recorder.updated, [(reply_id, "a"), (reply_id, "ab"), (reply_id, "abc")])

    async def test_state_moves_through_awaiting_and_streaming(self, make_controller) -> None:
        """The first record switches awaiting_first_byte to streaming."""
        hold = asyncio.Event()
        controller = make_controller(FakeTransport([hold, text_frame("x"), hold, done_frame()]))

        task = controller.begin_turn("hi")
        check.equal(controller.turn_state, TurnState.AWAITING_FIRST_BYTE)
        hold.set()
        await task

        check.equal(controller.turn_state, TurnState.IDLE)

    async def test_context_token_sent_on_next_turn(self, make_controller) -> None:
        """The previous turn's token is passed to the transport."""
        transport = FakeTransport(
            [done_frame("one", context=[10, 11])],
            [done_frame("two", context=[12])],
        )
        controller = make_controller(transport)

        await controller.submit("first")
        await controller.submit("second")

        check.is_none(transport.requests[0]["context"])
        check.equal(transport.requests[1]["context"], [10, 11])
        check.equal(controller.context.token, [12])

    async def test_done_without_token_keeps_previous_token(self, make_controller) -> None:
        transport = FakeTransport([done_frame("one", context=[5])], [done_frame("two")])
        controller = make_controller(transport)

        await controller.submit("first")
        await controller.submit("second")

        assert controller.context.token == [5]

    async def test_malformed_frame_does_not_fail_turn(
        self, make_controller, recorder: Recorder
    ) -> None:
        controller = make_controller(
            FakeTransport([text_frame("a"), b"{broken\n", done_frame("b", context=[1])])
        )

        ok = await controller.submit("hi")

        check.is_true(ok)
        check.equal(controller.transcript()[-1].text, "ab")
        check.equal(recorder.failed, [])

    async def test_documents_prefix_prompt_but_not_transcript(self, make_controller) -> None:
        """Document text goes to the model; the transcript keeps the user's words."""
        transport = FakeTransport([done_frame("ok", context=[1])])
        controller = make_controller(transport)
        document = DocumentContent(name="notes.txt", text="The sky is green.", pages=1)

        await controller.submit("What colour is the sky?", documents=[document])

        check.is_in("The sky is green.", transport.requests[0]["prompt"])
        check.is_in("--- notes.txt ---", transport.requests[0]["prompt"])
        check.equal(controller.transcript()[0].text, "What colour is the sky?")


class TestAttachments:
    """Tests for image carry-over between turns."""

    async def test_single_image_carried_to_text_only_turn(self, make_controller) -> None:
        """Turn 2 without images resends exactly the image from turn 1."""
        transport = FakeTransport(
            [done_frame("a cat", context=[1])],
            [done_frame("black", context=[2])],
        )
        controller = make_controller(transport)

        await controller.submit("what is this?", ["img-1"])
        await controller.submit("what colour is it?")

        check.equal(transport.requests[0]["images"], ["img-1"])
        check.equal(transport.requests[1]["images"], ["img-1"])
        check.equal(controller.transcript()[0].attachments, ["img-1"])
        check.equal(controller.transcript()[2].attachments, [])

    async def test_only_latest_image_is_carried(self, make_controller) -> None:
        transport = FakeTransport(
            [done_frame("1", context=[1])],
            [done_frame("2", context=[2])],
            [done_frame("3", context=[3])],
        )
        controller = make_controller(transport)

        await controller.submit("first", ["img-1"])
        await controller.submit("second", ["img-2"])
        await controller.submit("third")

        assert transport.requests[2]["images"] == ["img-2"]

    async def test_image_only_turn_is_allowed(self, make_controller) -> None:
        transport = FakeTransport([done_frame("a dog", context=[1])])
        controller = make_controller(transport)

        assert await controller.submit("", ["img-1"]) is True

    async def test_failed_turn_does_not_carry_image(self, make_controller) -> None:
        """Attachments are only carried forward when the turn completes."""
        transport = FakeTransport(
            [TransportError("refused")],
            [done_frame("hi", context=[1])],
        )
        controller = make_controller(transport)

        await controller.submit("look", ["img-1"])
        await controller.submit("anything?")

        check.equal(controller.context.carried_attachments, [])
        check.equal(transport.requests[1]["images"], [])


class TestFollowUpTurns:
    """Tests for a turn started the moment the previous one finishes."""

    async def test_turn_started_by_idle_waiter_keeps_streaming(
        self, make_controller, recorder: Recorder
    ) -> None:
        """Cleanup of the finished turn does not touch the next one."""
        hold = asyncio.Event()
        transport = FakeTransport(
            [done_frame("one", context=[1])],
            [text_frame("two"), hold, done_frame(" done", context=[2])],
        )
        controller = make_controller(transport)

        async def follow_up() -> asyncio.Task[bool]:
            await _wait_for(lambda: controller.turn_state is TurnState.IDLE)
            return controller.begin_turn("second")

        first = controller.begin_turn("first")
        waiter = asyncio.create_task(follow_up())
        check.is_true(await first)
        second = await waiter
        await _wait_for(lambda: controller.transcript()[-1].text == "two")

        check.equal(recorder.failed, [])
        check.equal(controller.turn_state, TurnState.STREAMING)
        with pytest.raises(TurnInProgress):
            controller.begin_turn("third")

        hold.set()
        check.is_true(await second)
        check.equal(controller.transcript()[-1].text, "two done")
        check.equal(controller.context.token, [2])
        check.equal(recorder.failed, [])

    async def test_turn_started_from_completion_handler(self, memory_store, fixed_clock) -> None:
        hold = asyncio.Event()
        transport = FakeTransport(
            [done_frame("one", context=[1])],
            [text_frame("two"), hold, done_frame(context=[2])],
        )
        follow_ups: list[asyncio.Task[bool]] = []
        failed: list[str] = []

        def start_follow_up(message: Message) -> None:
            if not follow_ups:
                follow_ups.append(controller.begin_turn("second"))

        controller = SessionController(
            transport,
            memory_store,
            clock=fixed_clock,
            handlers=ChatEventHandlers(
                on_turn_failed=failed.append, on_turn_completed=start_follow_up
            ),
        )

        check.is_true(await controller.submit("first"))
        await _wait_for(lambda: controller.transcript()[-1].text == "two")

        check.equal(failed, [])
        check.equal(controller.turn_state, TurnState.STREAMING)

        hold.set()
        check.is_true(await follow_ups[0])
        check.equal(failed, [])
        check.equal(transport.closed, 2)
        check.equal(controller.context.token, [2])


class TestFailures:
    """Tests for failed, empty and cancelled turns."""

    async def test_mid_stream_transport_failure_keeps_partial_text(
        self, make_controller, recorder: Recorder
    ) -> None:
        """Partial text survives, the failure event fires and the token is unchanged."""
        transport = FakeTransport(
            [done_frame("warm-up", context=[9])],
            [text_frame("Partial"), TransportError("connection dropped")],
        )
        controller = make_controller(transport)
        await controller.submit("first")

        ok = await controller.submit("second")

        check.is_false(ok)
        check.equal(controller.transcript()[-1].role, Role.ASSISTANT)
        check.equal(controller.transcript()[-1].text, "Partial")
        check.equal(recorder.failed, ["connection dropped"])
        check.equal(controller.context.token, [9])
        check.equal(controller.turn_state, TurnState.IDLE)

    async def test_failure_before_any_text_removes_placeholder(
        self, make_controller, recorder: Recorder
    ) -> None:
        controller = make_controller(FakeTransport([TransportError("refused")]))

        await controller.submit("hello")

        check.equal(_texts(controller), [(Role.USER, "hello")])
        check.equal(len(recorder.failed), 1)

    async def test_premature_termination_fails_turn(
        self, make_controller, recorder: Recorder
    ) -> None:
        """A stream that ends without done=true is a failed turn."""
        controller = make_controller(FakeTransport([text_frame("cut")]))

        ok = await controller.submit("hello")

        check.is_false(ok)
        check.equal(controller.transcript()[-1].text, "cut")
        check.equal(len(recorder.failed), 1)
        check.is_none(controller.context.token)

    async def test_service_error_frame_fails_turn(
        self, make_controller, recorder: Recorder
    ) -> None:
        controller = make_controller(FakeTransport([encode_frame(error="model not found")]))

        ok = await controller.submit("hello")

        check.is_false(ok)
        check.is_in("model not found", recorder.failed[0])
        check.equal(len(controller.transcript()), 1)

    async def test_empty_turn_rejected_without_side_effects(
        self, make_controller, recorder: Recorder
    ) -> None:
        transport = FakeTransport()
        controller = make_controller(transport)
        before = controller.session

        with pytest.raises(EmptyTurn):
            await controller.submit("   ", [])

        check.equal(controller.transcript(), [])
        check.equal(controller.session.continuation, before.continuation)
        check.equal(transport.requests, [])
        check.equal(recorder.appended, [])
        check.is_false(controller.is_dirty)

    async def test_submit_while_in_flight_raises(self, make_controller) -> None:
        hold = asyncio.Event()
        controller = make_controller(FakeTransport([text_frame("a"), hold, done_frame()]))

        task = controller.begin_turn("first")
        with pytest.raises(TurnInProgress):
            await controller.submit("second")

        hold.set()
        await task
        check.equal(len(controller.transcript()), 2)

    async def test_cancel_turn_releases_transport_and_aborts_once(
        self, make_controller, recorder: Recorder
    ) -> None:
        hold = asyncio.Event()
        transport = FakeTransport([text_frame("Part"), hold, done_frame()])
        controller = make_controller(transport)

        task = controller.begin_turn("hello")
        await _wait_for(lambda: controller.turn_state is TurnState.STREAMING)
        await _wait_for(lambda: controller.transcript()[-1].text == "Part")

        cancelled = await controller.cancel_turn()

        check.is_true(cancelled)
        check.is_true(task.cancelled())
        check.equal(transport.closed, 1)
        check.equal(controller.turn_state, TurnState.IDLE)
        check.equal(controller.transcript()[-1].text, "Part")
        check.equal(recorder.failed, ["Turn cancelled"])
        check.is_false(await controller.cancel_turn())
        check.equal(len(recorder.failed), 1)

    async def test_cancel_before_first_step_still_aborts(
        self, make_controller, recorder: Recorder
    ) -> None:
        controller = make_controller(FakeTransport([done_frame()]))

        controller.begin_turn("hello")
        await controller.cancel_turn()

        check.equal(controller.turn_state, TurnState.IDLE)
        check.equal(_texts(controller), [(Role.USER, "hello")])
        check.equal(len(recorder.failed), 1)

    async def test_handler_exception_does_not_break_turn(self, memory_store, fixed_clock) -> None:
        def boom(*args: object) -> None:
            raise RuntimeError("renderer crashed")

        handlers = ChatEventHandlers(on_message_updated=boom, on_turn_completed=boom)
        controller = SessionController(
            FakeTransport([text_frame("a"), done_frame("b", context=[1])]),
            memory_store,
            clock=fixed_clock,
            handlers=handlers,
        )

        assert await controller.submit("hi") is True


class TestSessions:
    """Tests for save, load, reset and delete."""

    async def test_save_requires_user_message(self, make_controller) -> None:
        controller = make_controller(FakeTransport())

        with pytest.raises(NothingToSave):
            controller.save_active()

    async def test_first_save_derives_title_and_marks_clean(
        self, make_controller, memory_store: SessionStore
    ) -> None:
        controller = make_controller(FakeTransport([done_frame("Hi!", context=[1])]))
        await controller.submit("hello there")
        check.is_true(controller.is_dirty)

        stored = controller.save_active()

        check.equal(stored.title, "hello there")
        check.is_false(controller.is_dirty)
        check.is_true(controller.is_persisted)
        check.equal(memory_store.get(stored.id).continuation.token, [1])
        check.equal([s.title for s in controller.session_summaries()], ["hello there"])

    async def test_second_save_upserts_same_id(self, make_controller) -> None:
        controller = make_controller(
            FakeTransport([done_frame("1", context=[1])], [done_frame("2", context=[2])])
        )
        await controller.submit("first question")
        first = controller.save_active()
        await controller.submit("second question")

        second = controller.save_active()

        check.equal(second.id, first.id)
        check.equal(second.title, "first question")
        check.equal(second.created_at, first.created_at)
        check.equal(len(second.messages), 4)
        check.equal(len(controller.session_summaries()), 1)

    async def test_save_rejected_mid_turn(self, make_controller) -> None:
        hold = asyncio.Event()
        controller = make_controller(FakeTransport([hold, done_frame()]))
        task = controller.begin_turn("hello")

        with pytest.raises(TurnInProgress):
            controller.save_active()

        hold.set()
        await task

    async def test_load_session_restores_transcript_and_context(self, make_controller) -> None:
        transport = FakeTransport(
            [done_frame("a cat", context=[4, 2])],
            [done_frame("black", context=[5])],
        )
        controller = make_controller(transport)
        await controller.submit("what is this?", ["img-1"])
        saved = controller.save_active()
        await controller.reset_active()
        check.equal(controller.transcript(), [])
        check.is_none(controller.context.token)

        loaded = controller.load_session(saved.id)
        await controller.submit("and the colour?")

        check.equal(loaded.id, saved.id)
        check.equal(transport.requests[1]["context"], [4, 2])
        check.equal(transport.requests[1]["images"], ["img-1"])
        check.equal(len(controller.transcript()), 4)

    async def test_load_unknown_session_changes_nothing(self, make_controller) -> None:
        controller = make_controller(FakeTransport([done_frame("hi", context=[1])]))
        await controller.submit("hello")
        before = controller.session

        check.is_none(controller.load_session("missing"))
        check.equal(controller.session, before)

    async def test_load_rejected_mid_turn(self, make_controller) -> None:
        hold = asyncio.Event()
        controller = make_controller(FakeTransport([hold, done_frame()]))
        task = controller.begin_turn("hello")

        with pytest.raises(TurnInProgress):
            controller.load_session("anything")

        hold.set()
        await task

    async def test_reset_mid_stream_cancels_turn(
        self, make_controller, recorder: Recorder
    ) -> None:
        hold = asyncio.Event()
        transport = FakeTransport([text_frame("x"), hold, done_frame()])
        controller = make_controller(transport)
        old_id = controller.session.id
        controller.begin_turn("hello")
        await _wait_for(lambda: controller.turn_state is TurnState.STREAMING)

        await controller.reset_active()

        check.equal(controller.turn_state, TurnState.IDLE)
        check.equal(controller.transcript(), [])
        check.not_equal(controller.session.id, old_id)
        check.is_false(controller.is_persisted)
        check.equal(transport.closed, 1)
        check.equal(len(recorder.failed), 1)

    async def test_delete_active_session_resets(self, make_controller, memory_store) -> None:
        controller = make_controller(FakeTransport([done_frame("hi", context=[1])]))
        await controller.submit("hello")
        saved = controller.save_active()

        await controller.delete_session(saved.id)

        check.is_none(memory_store.get(saved.id))
        check.equal(controller.transcript(), [])
        check.not_equal(controller.session.id, saved.id)
        check.is_none(controller.context.token)

    async def test_delete_other_session_keeps_active(self, make_controller, memory_store) -> None:
        controller = make_controller(
            FakeTransport([done_frame("1", context=[1])], [done_frame("2", context=[2])])
        )
        await controller.submit("first chat")
        other = controller.save_active()
        await controller.reset_active()
        await controller.submit("second chat")

        await controller.delete_session(other.id)

        check.equal(len(controller.transcript()), 2)
        check.equal(controller.context.token, [2])


def test_compose_prompt_without_documents_is_identity() -> None:
    assert compose_prompt("just text") == "just text"
