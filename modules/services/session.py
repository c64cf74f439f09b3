"""Generation session state machine.

A :class:`Session` is an immutable snapshot of everything the UI renders. The
module-level transition functions take a session and return the next one, so
each rule can be exercised without a UI or network. :class:`SessionController`
owns the current session, issues the single outstanding generation request and
applies its completion only while that request is still the pending one.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from modules.pipelines.gemini_client import GenerationClient, GenerationError
from modules.services.models import GeneratedImage, GenerationSettings, ValidationError
from modules.utils.image_utils import ImageData

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Failed to generate image"


class PromptValidationError(ValidationError):
    """Raised when a generation is requested with an empty prompt."""


class UnknownHistoryEntryError(KeyError):
    """Raised when selecting an id that is not in the history."""


class SessionStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Everything captured at the moment a generation starts."""

    request_id: int
    prompt: str
    reference_image: Optional[ImageData]
    settings: GenerationSettings


@dataclass(frozen=True, slots=True)
class Session:
    """State of one running instance of the tool."""

    prompt: str = ""
    settings: GenerationSettings = field(default_factory=GenerationSettings)
    uploaded_image: Optional[ImageData] = None
    status: SessionStatus = SessionStatus.IDLE
    error: Optional[str] = None
    history: tuple[GeneratedImage, ...] = ()
    current_selection: Optional[str] = None
    comparison_visible: bool = False
    pending_request: Optional[int] = None
    request_counter: int = 0

    def find_entry(self, entry_id: Optional[str]) -> Optional[GeneratedImage]:
        if entry_id is None:
            return None
        for entry in self.history:
            if entry.id == entry_id:
                return entry
        return None

    @property
    def current_entry(self) -> Optional[GeneratedImage]:
        return self.find_entry(self.current_selection)

    @property
    def is_generating(self) -> bool:
        return self.status is SessionStatus.GENERATING


# Transitions ------------------------------------------------------------------


def set_prompt(session: Session, text: str) -> Session:
    return replace(session, prompt=text or "")


def set_settings(session: Session, settings: GenerationSettings) -> Session:
    return replace(session, settings=settings)


def set_uploaded_image(session: Session, image: Optional[ImageData]) -> Session:
    return replace(session, uploaded_image=image)


def begin_generation(session: Session) -> tuple[Session, Optional[GenerationRequest]]:
    """Move to GENERATING and describe the request to issue.

    Returns ``(session, None)`` unchanged while a request is already in flight.
    """
    if session.is_generating:
        return session, None
    if not session.prompt.strip():
        raise PromptValidationError("Please enter a prompt before generating.")

    request_id = session.request_counter + 1
    request = GenerationRequest(
        request_id=request_id,
        prompt=session.prompt,
        reference_image=session.uploaded_image,
        settings=session.settings,
    )
    updated = replace(
        session,
        status=SessionStatus.GENERATING,
        error=None,
        comparison_visible=False,
        pending_request=request_id,
        request_counter=request_id,
    )
    return updated, request


def _is_pending(session: Session, request_id: int) -> bool:
    return session.is_generating and session.pending_request == request_id


def complete_generation(
    session: Session,
    request: GenerationRequest,
    image: ImageData,
    *,
    entry_id: str,
    created_at: float,
) -> Session:
    """Append the new entry and select it, unless ``request`` is stale."""
    if not _is_pending(session, request.request_id):
        return session
    if session.find_entry(entry_id) is not None:
        raise ValueError(f"Duplicate history entry id {entry_id!r}")

    entry = GeneratedImage(
        id=entry_id,
        image=image,
        source_prompt=request.prompt,
        original_image=request.reference_image,
        created_at=created_at,
        settings=request.settings,
    )
    return replace(
        session,
        history=session.history + (entry,),
        current_selection=entry.id,
        status=SessionStatus.SUCCEEDED,
        error=None,
        pending_request=None,
    )


def fail_generation(session: Session, request_id: int, message: str) -> Session:
    if not _is_pending(session, request_id):
        return session
    return replace(
        session,
        status=SessionStatus.FAILED,
        error=message or DEFAULT_FAILURE_MESSAGE,
        pending_request=None,
    )


def cancel_generation(session: Session, request_id: Optional[int] = None) -> Session:
    """Abandon the in-flight request; its late completion will be ignored."""
    if not session.is_generating:
        return session
    if request_id is not None and session.pending_request != request_id:
        return session
    status = SessionStatus.SUCCEEDED if session.current_selection else SessionStatus.IDLE
    return replace(session, status=status, error=None, pending_request=None)


def select_history_entry(session: Session, entry_id: str) -> Session:
    if session.find_entry(entry_id) is None:
        raise UnknownHistoryEntryError(entry_id)
    updated = replace(session, current_selection=entry_id, comparison_visible=False)
    if session.status in (SessionStatus.FAILED, SessionStatus.GENERATING):
        updated = replace(updated, status=SessionStatus.SUCCEEDED, error=None, pending_request=None)
    return updated


def toggle_comparison(session: Session, show: bool) -> Session:
    entry = session.current_entry
    if entry is None or not entry.has_original:
        return session
    return replace(session, comparison_visible=bool(show))


# Controller -------------------------------------------------------------------


class SessionController:
    """Single owner of a :class:`Session` and its outstanding request."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        initial_settings: Optional[GenerationSettings] = None,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._client = client
        self._clock = clock
        self._id_factory = id_factory
        self._session = Session(settings=initial_settings or GenerationSettings())

    @property
    def session(self) -> Session:
        return self._session

    @property
    def current_entry(self) -> Optional[GeneratedImage]:
        return self._session.current_entry

    def set_prompt(self, text: str) -> None:
        self._session = set_prompt(self._session, text)

    def set_settings(self, settings: GenerationSettings) -> None:
        self._session = set_settings(self._session, settings)

    def set_uploaded_image(self, image: Optional[ImageData]) -> None:
        self._session = set_uploaded_image(self._session, image)

    def select_history_entry(self, entry_id: str) -> None:
        self._session = select_history_entry(self._session, entry_id)
        logger.debug("Selected history entry %s", entry_id)

    def toggle_comparison(self, show: bool) -> None:
        self._session = toggle_comparison(self._session, show)

    def cancel_generation(self) -> None:
        if self._session.is_generating:
            logger.info("Cancelling generation request %s", self._session.pending_request)
        self._session = cancel_generation(self._session)

    async def start_generation(self) -> Optional[GeneratedImage]:
        """Issue one generation request and apply its outcome.

        Returns the new history entry, or ``None`` when nothing was appended
        (duplicate trigger, failure, or a completion that arrived stale).
        """
        self._session, request = begin_generation(self._session)
        if request is None:
            logger.info("Generation already in progress; ignoring duplicate request")
            return None

        logger.info("Starting generation request %s", request.request_id)
        try:
            image = await self._client.generate(request.prompt, request.reference_image, request.settings)
        except GenerationError as exc:
            logger.warning("Generation request %s failed: %s", request.request_id, exc.message)
            self._session = fail_generation(self._session, request.request_id, exc.message)
            return None
        except asyncio.CancelledError:
            self._session = cancel_generation(self._session, request.request_id)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Generation request %s raised unexpectedly", request.request_id)
            self._session = fail_generation(
                self._session, request.request_id, str(exc) or DEFAULT_FAILURE_MESSAGE
            )
            return None

        if not _is_pending(self._session, request.request_id):
            logger.info("Discarding stale result for request %s", request.request_id)
            return None

        self._session = complete_generation(
            self._session,
            request,
            image,
            entry_id=self._id_factory(),
            created_at=self._clock(),
        )
        logger.info("Generation request %s succeeded (%d entries)", request.request_id, len(self._session.history))
        return self._session.current_entry
