"""Session state machine tests."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from conftest import DummyClient
from modules.pipelines.gemini_client import GenerationError
from modules.services import session as session_mod
from modules.services.models import AspectRatio, GenerationSettings, SettingsValidationError
from modules.services.session import (
    PromptValidationError,
    Session,
    SessionController,
    SessionStatus,
    UnknownHistoryEntryError,
)
from modules.utils.image_utils import ImageData


def build_controller(client: DummyClient) -> SessionController:
    ids = (f"entry{n}" for n in itertools.count(1))
    ticks = itertools.count(1000)
    return SessionController(
        client,
        clock=lambda: float(next(ticks)),
        id_factory=lambda: next(ids),
    )


def assert_invariants(session: Session) -> None:
    ids = [entry.id for entry in session.history]
    assert len(ids) == len(set(ids))
    if session.current_selection is not None:
        assert session.current_selection in ids
    if session.comparison_visible:
        assert session.current_entry is not None
        assert session.current_entry.original_image is not None
    assert (session.pending_request is not None) == (session.status is SessionStatus.GENERATING)
    assert (session.error is not None) == (session.status is SessionStatus.FAILED)


def test_initial_session_is_idle():
    controller = build_controller(DummyClient())
    session = controller.session

    assert session.status is SessionStatus.IDLE
    assert session.history == ()
    assert session.current_selection is None
    assert session.comparison_visible is False
    assert_invariants(session)


def test_text_only_generation_appends_and_selects(png_image):
    client = DummyClient(result=png_image)
    controller = build_controller(client)
    controller.set_prompt("sunset city")
    controller.set_settings(GenerationSettings(aspect_ratio=AspectRatio.SQUARE, temperature=1.0))

    entry = asyncio.run(controller.start_generation())

    session = controller.session
    assert entry is not None
    assert session.history == (entry,)
    assert entry.image == png_image
    assert entry.original_image is None
    assert entry.source_prompt == "sunset city"
    assert entry.created_at == 1000.0
    assert session.current_selection == entry.id
    assert session.comparison_visible is False
    assert session.status is SessionStatus.SUCCEEDED
    assert client.calls == [("sunset city", None, GenerationSettings(AspectRatio.SQUARE, 1.0))]
    assert_invariants(session)


def test_failure_keeps_history_and_surfaces_message(reference_image, png_image):
    client = DummyClient(result=png_image)
    controller = build_controller(client)
    controller.set_prompt("first")
    asyncio.run(controller.start_generation())
    before = controller.session

    client.error = GenerationError("content filtered")
    controller.set_prompt("add a hat")
    controller.set_uploaded_image(reference_image)
    entry = asyncio.run(controller.start_generation())

    session = controller.session
    assert entry is None
    assert session.status is SessionStatus.FAILED
    assert session.error == "content filtered"
    assert session.history == before.history
    assert session.current_selection == before.current_selection
    assert_invariants(session)


def test_unexpected_client_exception_becomes_failure():
    controller = build_controller(DummyClient(error=ValueError("boom")))
    controller.set_prompt("prompt")

    assert asyncio.run(controller.start_generation()) is None
    assert controller.session.status is SessionStatus.FAILED
    assert controller.session.error == "boom"


def test_retry_after_failure_succeeds(failing_client):
    controller = build_controller(failing_client)
    controller.set_prompt("retry me")
    asyncio.run(controller.start_generation())
    assert controller.session.status is SessionStatus.FAILED

    failing_client.error = None
    entry = asyncio.run(controller.start_generation())

    assert entry is not None
    assert controller.session.status is SessionStatus.SUCCEEDED
    assert controller.session.error is None
    assert len(failing_client.calls) == 2


@pytest.mark.parametrize("prompt", ["", "   "])
def test_empty_prompt_is_rejected_before_calling_client(prompt):
    client = DummyClient()
    controller = build_controller(client)
    controller.set_prompt(prompt)

    with pytest.raises(PromptValidationError):
        asyncio.run(controller.start_generation())

    assert client.calls == []
    assert controller.session.status is SessionStatus.IDLE


def test_duplicate_start_while_generating_is_ignored():
    async def scenario():
        client = DummyClient()
        client.gate = asyncio.Event()
        controller = build_controller(client)
        controller.set_prompt("sunset city")

        first = asyncio.create_task(controller.start_generation())
        await asyncio.sleep(0)
        assert controller.session.status is SessionStatus.GENERATING
        snapshot = controller.session

        duplicate = await controller.start_generation()
        assert duplicate is None
        assert controller.session is snapshot
        assert len(client.calls) == 1

        client.gate.set()
        entry = await first
        return controller, client, entry

    controller, client, entry = asyncio.run(scenario())
    assert entry is not None
    assert len(controller.session.history) == 1
    assert len(client.calls) == 1


def test_settings_snapshot_taken_at_call_time(reference_image):
    async def scenario():
        client = DummyClient()
        client.gate = asyncio.Event()
        controller = build_controller(client)
        controller.set_prompt("add a hat")
        controller.set_uploaded_image(reference_image)
        controller.set_settings(GenerationSettings(AspectRatio.WIDE, 0.5))

        task = asyncio.create_task(controller.start_generation())
        await asyncio.sleep(0)
        controller.set_settings(GenerationSettings(AspectRatio.TALL, 1.8))
        controller.set_prompt("something else")
        controller.set_uploaded_image(None)
        client.gate.set()
        return await task

    entry = asyncio.run(scenario())
    assert entry.settings == GenerationSettings(AspectRatio.WIDE, 0.5)
    assert entry.source_prompt == "add a hat"
    assert entry.original_image == reference_image


def test_cancel_discards_late_completion():
    async def scenario():
        client = DummyClient()
        client.gate = asyncio.Event()
        controller = build_controller(client)
        controller.set_prompt("slow")

        task = asyncio.create_task(controller.start_generation())
        await asyncio.sleep(0)
        controller.cancel_generation()
        assert controller.session.status is SessionStatus.IDLE
        client.gate.set()
        return controller, await task

    controller, entry = asyncio.run(scenario())
    assert entry is None
    assert controller.session.history == ()
    assert controller.session.status is SessionStatus.IDLE
    assert_invariants(controller.session)


def test_task_cancellation_resets_status():
    async def scenario():
        client = DummyClient()
        client.gate = asyncio.Event()
        controller = build_controller(client)
        controller.set_prompt("slow")

        task = asyncio.create_task(controller.start_generation())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return controller

    controller = asyncio.run(scenario())
    assert controller.session.status is SessionStatus.IDLE
    assert_invariants(controller.session)


def test_selecting_history_while_generating_discards_result():
    async def scenario():
        client = DummyClient()
        controller = build_controller(client)
        controller.set_prompt("first")
        first = await controller.start_generation()

        client.gate = asyncio.Event()
        task = asyncio.create_task(controller.start_generation())
        await asyncio.sleep(0)
        controller.select_history_entry(first.id)
        assert controller.session.status is SessionStatus.SUCCEEDED
        client.gate.set()
        return controller, first, await task

    controller, first, late = asyncio.run(scenario())
    assert late is None
    assert controller.session.history == (first,)
    assert controller.session.current_selection == first.id
    assert_invariants(controller.session)


def test_select_history_resets_failed_status_and_comparison(reference_image):
    client = DummyClient()
    controller = build_controller(client)
    controller.set_prompt("edit")
    controller.set_uploaded_image(reference_image)
    first = asyncio.run(controller.start_generation())
    controller.set_uploaded_image(None)
    second = asyncio.run(controller.start_generation())

    controller.select_history_entry(first.id)
    controller.toggle_comparison(True)
    assert controller.session.comparison_visible is True

    client.error = GenerationError("quota exceeded")
    asyncio.run(controller.start_generation())
    assert controller.session.status is SessionStatus.FAILED
    assert controller.session.comparison_visible is False

    controller.select_history_entry(second.id)
    session = controller.session
    assert session.status is SessionStatus.SUCCEEDED
    assert session.error is None
    assert session.current_selection == second.id
    assert session.comparison_visible is False
    assert_invariants(session)


def test_select_unknown_entry_raises():
    controller = build_controller(DummyClient())
    with pytest.raises(UnknownHistoryEntryError):
        controller.select_history_entry("missing")


def test_toggle_comparison_requires_original(reference_image):
    client = DummyClient()
    controller = build_controller(client)

    controller.toggle_comparison(True)
    assert controller.session.comparison_visible is False

    controller.set_prompt("text only")
    asyncio.run(controller.start_generation())
    controller.toggle_comparison(True)
    assert controller.session.comparison_visible is False

    controller.set_uploaded_image(reference_image)
    asyncio.run(controller.start_generation())
    controller.toggle_comparison(True)
    assert controller.session.comparison_visible is True
    controller.toggle_comparison(False)
    assert controller.session.comparison_visible is False


def test_new_generation_hides_comparison(reference_image):
    controller = build_controller(DummyClient())
    controller.set_prompt("edit")
    controller.set_uploaded_image(reference_image)
    asyncio.run(controller.start_generation())
    controller.toggle_comparison(True)

    async def scenario():
        controller._client.gate = asyncio.Event()
        task = asyncio.create_task(controller.start_generation())
        await asyncio.sleep(0)
        assert controller.session.comparison_visible is False
        controller._client.gate.set()
        await task

    asyncio.run(scenario())
    assert controller.session.comparison_visible is False


def test_history_length_matches_successes():
    client = DummyClient()
    controller = build_controller(client)
    controller.set_prompt("mixed")
    outcomes = [True, False, True, True, False]
    lengths = []

    for success in outcomes:
        client.error = None if success else GenerationError("nope")
        asyncio.run(controller.start_generation())
        lengths.append(len(controller.session.history))
        assert_invariants(controller.session)

    assert lengths == [1, 1, 2, 3, 3]
    assert [entry.id for entry in controller.session.history] == ["entry1", "entry2", "entry3"]


def test_stale_completion_is_ignored_by_pure_transition(png_image):
    session = Session(prompt="p")
    session, request = session_mod.begin_generation(session)
    session = session_mod.cancel_generation(session)
    session, newer = session_mod.begin_generation(session)

    unchanged = session_mod.complete_generation(session, request, png_image, entry_id="old", created_at=1.0)
    assert unchanged is session
    assert session_mod.fail_generation(session, request.request_id, "late") is session

    applied = session_mod.complete_generation(session, newer, png_image, entry_id="new", created_at=2.0)
    assert [entry.id for entry in applied.history] == ["new"]
    assert applied.current_selection == "new"


def test_setters_do_not_touch_history_or_selection(png_image):
    session = Session(prompt="p")
    session, request = session_mod.begin_generation(session)
    session = session_mod.complete_generation(session, request, png_image, entry_id="a", created_at=1.0)

    updated = session_mod.set_prompt(session, "other")
    updated = session_mod.set_settings(updated, GenerationSettings(AspectRatio.LANDSCAPE, 0.0))
    updated = session_mod.set_uploaded_image(updated, ImageData(b"ref", "image/jpeg"))

    assert updated.history == session.history
    assert updated.current_selection == "a"
    assert updated.status is SessionStatus.SUCCEEDED


@pytest.mark.parametrize(
    "aspect_ratio, temperature",
    [("2:1", 1.0), ("1:1", -0.1), ("1:1", 2.5), ("1:1", None)],
)
def test_invalid_settings_are_rejected(aspect_ratio, temperature):
    with pytest.raises(SettingsValidationError):
        GenerationSettings.from_inputs(aspect_ratio, temperature)


def test_settings_accept_string_ratio():
    settings = GenerationSettings.from_inputs("16:9", 2)
    assert settings.aspect_ratio is AspectRatio.WIDE
    assert settings.temperature == 2.0
