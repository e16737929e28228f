from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence

TOOLTIP_WIDTH = 320
TOOLTIP_GAP = 12
SPOTLIGHT_PADDING = 4
NARROW_MAX_WIDTH = 768
MID_MAX_WIDTH = 1024
SIDES = ('top', 'right', 'bottom', 'left')


@dataclass(frozen=True)
class TourStep:
    target_id: str
    title: str
    content: str
    side: str = 'right'
    route: str | None = None


TOUR_STEPS: tuple[TourStep, ...] = (
    TourStep(
        target_id='nav-dashboard',
        title='Dashboard Overview',
        content='Get a quick glance at the active trade, totals and the latest submissions here.',
        route='/dashboard',
    ),
    TourStep(
        target_id='nav-trades',
        title='Manage Trades',
        content='Create, edit and close trades. This is where you set the ACTIVE trade for the week.',
        route='/dashboard/trades',
    ),
    TourStep(
        target_id='nav-pooling-schedule',
        title='Pooling Schedule',
        content='Set up collection points and dates and link them to a trade so sellers know where to go.',
        route='/dashboard/pooling',
    ),
    TourStep(
        target_id='nav-dropdowns',
        title='Dropdown Options',
        content='Manage the choices offered in the booking form (depots, types, details) without touching code.',
        route='/dashboard/dropdowns',
    ),
    TourStep(
        target_id='nav-submissions',
        title='View Submissions',
        content='See every booking. Filter, export to CSV or JSON, and spot repeat devices.',
        route='/dashboard/submissions',
    ),
    TourStep(
        target_id='nav-weekly-reset',
        title='Weekly Reset',
        content='Close the current trade and open the next one in a single step.',
        route='/dashboard/reset',
    ),
    TourStep(
        target_id='nav-settings',
        title='Global Settings',
        content='Set the next opening date shown on the public form and restart this tour.',
        route='/dashboard/settings',
    ),
)


@dataclass(frozen=True)
class TourState:
    active: bool = False
    step_index: int = 0


class Tour:
    """Guided tour over a fixed list of steps.

    Closing mid-tour discards the position; the next ``start`` begins at step 0.
    """

    def __init__(self, steps: Sequence[TourStep] = TOUR_STEPS, state: TourState | None = None) -> None:
        if not steps:
            raise ValueError('A tour needs at least one step')
        self.steps = tuple(steps)
        self.state = state or TourState()

    @property
    def active(self) -> bool:
        return self.state.active

    @property
    def step_index(self) -> int:
        return self.state.step_index

    @property
    def is_last_step(self) -> bool:
        return self.state.step_index == len(self.steps) - 1

    @property
    def current_step(self) -> TourStep | None:
        if not self.state.active:
            return None
        return self.steps[self.state.step_index]

    def start(self) -> TourState:
        self.state = TourState(active=True, step_index=0)
        return self.state

    def next(self) -> TourState:
        if not self.state.active:
            return self.state
        if self.state.step_index + 1 < len(self.steps):
            self.state = replace(self.state, step_index=self.state.step_index + 1)
        else:
            self.state = TourState()
        return self.state

    def prev(self) -> TourState:
        if self.state.active:
            self.state = replace(self.state, step_index=max(0, self.state.step_index - 1))
        return self.state

    def stop(self) -> TourState:
        self.state = TourState()
        return self.state

    def navigation_target(self, current_path: str | None) -> str | None:
        step = self.current_step
        if step is None or not step.route:
            return None
        if (current_path or '').rstrip('/') == step.route.rstrip('/'):
            return None
        return step.route

    def encode(self) -> str:
        return f'{self.state.step_index}' if self.state.active else ''

    @classmethod
    def decode(cls, raw: str | None, steps: Sequence[TourStep] = TOUR_STEPS) -> 'Tour':
        value = (raw or '').strip()
        if not value.isdigit() or int(value) >= len(steps):
            return cls(steps)
        return cls(steps, TourState(active=True, step_index=int(value)))


@dataclass(frozen=True)
class Rect:
    top: float
    left: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def right(self) -> float:
        return self.left + self.width


def effective_side(viewport_width: float, side: str) -> str:
    if viewport_width < NARROW_MAX_WIDTH:
        return 'bottom'
    if viewport_width < MID_MAX_WIDTH:
        return 'left'
    return side if side in SIDES else 'right'


def _clamp_left(left: float, viewport_width: float) -> float:
    return min(max(TOOLTIP_GAP, left), viewport_width - TOOLTIP_WIDTH - TOOLTIP_GAP)


def resolve_placement(
    rect: Rect,
    *,
    viewport_width: float,
    viewport_height: float | None = None,
    side: str = 'right',
) -> dict:
    """Geometry for the spotlight cut-out and the tooltip card around ``rect``."""
    resolved = effective_side(viewport_width, side)
    spotlight = {
        'top': rect.top - SPOTLIGHT_PADDING,
        'left': rect.left - SPOTLIGHT_PADDING,
        'width': rect.width + 2 * SPOTLIGHT_PADDING,
        'height': rect.height + 2 * SPOTLIGHT_PADDING,
    }
    tooltip: dict[str, float | None] = {'top': None, 'left': None, 'right': None, 'bottom': None}

    if resolved == 'bottom':
        tooltip['top'] = rect.bottom + TOOLTIP_GAP
        tooltip['left'] = _clamp_left(rect.left, viewport_width)
    elif resolved == 'top':
        if viewport_height is not None:
            tooltip['bottom'] = viewport_height - rect.top + TOOLTIP_GAP
        else:
            tooltip['top'] = max(TOOLTIP_GAP, rect.top - TOOLTIP_GAP)
        tooltip['left'] = _clamp_left(rect.left, viewport_width)
    elif resolved == 'left':
        tooltip['top'] = rect.top
        tooltip['left'] = max(TOOLTIP_GAP, rect.left - TOOLTIP_WIDTH - TOOLTIP_GAP)
    else:
        tooltip['top'] = rect.top
        if rect.right + TOOLTIP_WIDTH > viewport_width:
            tooltip['right'] = TOOLTIP_GAP
        else:
            tooltip['left'] = rect.right + TOOLTIP_GAP

    return {'side': resolved, 'spotlight': spotlight, 'tooltip': tooltip}
