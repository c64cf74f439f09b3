"""Before/after comparison view with a draggable divider."""

from __future__ import annotations

import html
import itertools
import json
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from modules.utils.image_utils import ImageData

DEFAULT_SPLIT = 50.0


def clamp_split(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


@dataclass(frozen=True, slots=True)
class ContainerRect:
    """Horizontal extent of the comparison container in viewport coordinates."""

    left: float
    width: float


def split_position_for(pointer_x: float, rect: ContainerRect) -> Optional[float]:
    """Map a pointer x coordinate to a split percentage; ``None`` for an empty container."""
    if rect.width <= 0:
        return None
    return clamp_split((pointer_x - rect.left) / rect.width * 100.0)


# Rendering --------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ImageLayer:
    image: ImageData
    label: str
    clip_width_percent: float


@dataclass(frozen=True, slots=True)
class ComparisonLayout:
    """Two stacked layers: generated underneath, original clipped from the left."""

    base: ImageLayer
    overlay: ImageLayer
    divider_percent: float


def render_comparison(original: ImageData, generated: ImageData, split: float) -> ComparisonLayout:
    position = clamp_split(split)
    return ComparisonLayout(
        base=ImageLayer(image=generated, label="Generated", clip_width_percent=100.0),
        overlay=ImageLayer(image=original, label="Original", clip_width_percent=position),
        divider_percent=position,
    )


def to_html(layout: ComparisonLayout, height: str = "60vh") -> str:
    """Render the layout as an HTML fragment."""
    base_src = html.escape(layout.base.image.to_data_url(), quote=True)
    overlay_src = html.escape(layout.overlay.image.to_data_url(), quote=True)
    hidden_right = 100.0 - layout.overlay.clip_width_percent
    divider = layout.divider_percent
    image_style = "position:absolute;top:0;left:0;width:100%;height:100%;object-fit:contain;pointer-events:none;"
    label_style = (
        "position:absolute;top:12px;padding:2px 8px;border-radius:4px;"
        "font-size:12px;color:#fff;pointer-events:none;"
    )
    return (
        f'<div class="bananagen-compare" data-split="{divider:.2f}" '
        f'style="position:relative;width:100%;height:{html.escape(height)};overflow:hidden;user-select:none;">'
        f'<img src="{base_src}" alt="{layout.base.label}" style="{image_style}">'
        f'<div class="bananagen-compare-original" '
        f'style="position:absolute;inset:0;clip-path:inset(0 {hidden_right:.2f}% 0 0);">'
        f'<img src="{overlay_src}" alt="{layout.overlay.label}" style="{image_style}">'
        f'<span style="{label_style}left:12px;background:rgba(0,0,0,0.5);">{layout.overlay.label}</span>'
        "</div>"
        f'<span style="{label_style}right:12px;background:rgba(234,179,8,0.8);">{layout.base.label}</span>'
        f'<div class="bananagen-compare-handle" '
        f'style="position:absolute;top:0;bottom:0;left:{divider:.2f}%;width:20px;'
        'margin-left:-10px;cursor:col-resize;touch-action:none;'
        'background:linear-gradient(to right,transparent 8px,#fff 8px,#fff 12px,transparent 12px);'
        'filter:drop-shadow(0 0 5px rgba(0,0,0,0.5));"></div>'
        "</div>"
    )


# Pointer handling -------------------------------------------------------------


class PointerEventKind(str, Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"
    CANCEL = "cancel"
    LOST_CAPTURE = "lost_capture"


class PointerType(str, Enum):
    MOUSE = "mouse"
    TOUCH = "touch"


@dataclass(frozen=True, slots=True)
class PointerEvent:
    kind: PointerEventKind
    x: float
    pointer_type: PointerType = PointerType.MOUSE


PointerHandler = Callable[[PointerEvent], None]

_END_KINDS = (PointerEventKind.UP, PointerEventKind.CANCEL, PointerEventKind.LOST_CAPTURE)


class PointerHub:
    """Viewport-wide pointer event source."""

    def __init__(self) -> None:
        self._handlers: Dict[int, tuple[frozenset[PointerEventKind], PointerHandler]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, kinds: Iterable[PointerEventKind], handler: PointerHandler) -> int:
        token = next(self._ids)
        self._handlers[token] = (frozenset(kinds), handler)
        return token

    def unsubscribe(self, token: int) -> None:
        self._handlers.pop(token, None)

    def subscriber_count(self) -> int:
        return len(self._handlers)

    def dispatch(self, event: PointerEvent) -> None:
        for kinds, handler in list(self._handlers.values()):
            if event.kind in kinds:
                handler(event)


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


class DragController:
    """Divider drag state machine.

    Entering DRAGGING subscribes to move/end events on the hub; leaving it
    unsubscribes, so a pointer released anywhere in the viewport ends the drag.
    """

    def __init__(
        self,
        hub: PointerHub,
        rect_provider: Callable[[], ContainerRect],
        *,
        initial: float = DEFAULT_SPLIT,
        on_change: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.hub = hub
        self._rect_provider = rect_provider
        self._on_change = on_change
        self.position = clamp_split(initial)
        self.state = DragState.IDLE
        self._subscriptions: list[int] = []

    @property
    def dragging(self) -> bool:
        return self.state is DragState.DRAGGING

    def handle_pointer_down(self, event: PointerEvent) -> None:
        """Pointer pressed on the divider handle."""
        if self.dragging:
            return
        self.state = DragState.DRAGGING
        self._subscriptions = [
            self.hub.subscribe([PointerEventKind.MOVE], self._on_move),
            self.hub.subscribe(_END_KINDS, self._on_end),
        ]

    def set_position(self, value: float) -> None:
        position = clamp_split(value)
        if position == self.position:
            return
        self.position = position
        if self._on_change is not None:
            self._on_change(position)

    def close(self) -> None:
        self._exit_dragging()

    def _on_move(self, event: PointerEvent) -> None:
        if not self.dragging:
            return
        position = split_position_for(event.x, self._rect_provider())
        if position is not None:
            self.set_position(position)

    def _on_end(self, event: PointerEvent) -> None:
        self._exit_dragging()

    def _exit_dragging(self) -> None:
        for token in self._subscriptions:
            self.hub.unsubscribe(token)
        self._subscriptions = []
        self.state = DragState.IDLE


class ComparisonView:
    """A mounted comparison; the split starts centred on every mount."""

    def __init__(
        self,
        hub: Optional[PointerHub] = None,
        rect_provider: Optional[Callable[[], ContainerRect]] = None,
    ) -> None:
        self.hub = hub or PointerHub()
        self.rect = ContainerRect(left=0.0, width=100.0)
        self.drag = DragController(self.hub, rect_provider or (lambda: self.rect))

    @property
    def split_position(self) -> float:
        return self.drag.position

    def jump_to(self, value: float) -> float:
        """Set the split from a non-pointer control such as a slider."""
        self.drag.set_position(value)
        return self.drag.position

    def render(self, original: ImageData, generated: ImageData) -> ComparisonLayout:
        return render_comparison(original, generated, self.split_position)

    def render_html(self, original: ImageData, generated: ImageData) -> str:
        return to_html(self.render(original, generated))

    def handle_pointer(self, event: PointerEvent, rect: Optional[ContainerRect] = None) -> float:
        """Feed a browser pointer event into the drag state machine."""
        if rect is not None:
            self.rect = rect
        if event.kind is PointerEventKind.DOWN:
            self.drag.handle_pointer_down(event)
        else:
            self.hub.dispatch(event)
        return self.split_position

    def close(self) -> None:
        self.drag.close()


# Browser bridge ---------------------------------------------------------------

POINTER_INPUT_ID = "bananagen-pointer"

# Pointer events are forwarded into a hidden textbox as JSON; the server side
# decides whether a drag is active.
POINTER_BRIDGE_JS = """
() => {
  const send = (kind, e) => {
    const box = document.querySelector('#%(input_id)s textarea');
    const container = document.querySelector('.bananagen-compare');
    if (!box || !container) return;
    const rect = container.getBoundingClientRect();
    const setValue = Object.getOwnPropertyDescriptor(
      window.HTMLTextAreaElement.prototype, 'value').set;
    setValue.call(box, JSON.stringify({
      kind: kind,
      x: e.clientX ?? 0,
      pointer_type: e.pointerType === 'touch' ? 'touch' : 'mouse',
      left: rect.left,
      width: rect.width,
    }));
    box.dispatchEvent(new Event('input', { bubbles: true }));
  };
  let dragging = false;
  let frame = null;
  document.addEventListener('pointerdown', (e) => {
    if (!e.target.closest || !e.target.closest('.bananagen-compare-handle')) return;
    e.preventDefault();
    dragging = true;
    send('down', e);
  });
  window.addEventListener('pointermove', (e) => {
    if (!dragging || frame !== null) return;
    frame = requestAnimationFrame(() => { frame = null; send('move', e); });
  });
  const finish = (kind) => (e) => {
    if (!dragging) return;
    dragging = false;
    send(kind, e);
  };
  window.addEventListener('pointerup', finish('up'));
  window.addEventListener('pointercancel', finish('cancel'));
  window.addEventListener('blur', finish('lost_capture'));
}
""" % {"input_id": POINTER_INPUT_ID}

POINTER_BRIDGE_CSS = f"#{POINTER_INPUT_ID} {{ display: none !important; }}"


def pointer_event_from_payload(payload: str) -> tuple[PointerEvent, ContainerRect]:
    """Decode a pointer event posted by the browser bridge.

    Raises ``ValueError`` for anything that is not a well-formed event.
    """
    try:
        data = json.loads(payload)
        event = PointerEvent(
            kind=PointerEventKind(data["kind"]),
            x=float(data["x"]),
            pointer_type=PointerType(data.get("pointer_type", PointerType.MOUSE.value)),
        )
        rect = ContainerRect(left=float(data.get("left", 0.0)), width=float(data.get("width", 0.0)))
    except (TypeError, KeyError, AttributeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Malformed pointer event: {payload!r}") from exc
    return event, rect
