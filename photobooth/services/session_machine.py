"""Two-shot session state machine.

:class:`SessionStateMachine` is a pure transition function: it maps the
current :class:`SessionState` and an event to the next state plus a list of
effects, and never touches a collaborator. :class:`SessionController` owns
the state on the control lane, executes the effects (timers, capture,
compositing, capture source) and publishes every new state to listeners.

Phases per shot::

    Idle -> Armed -> Tracking -> Countdown -> Capturing -> Processing
         -> Armed(1) after shot 0, Completed after shot 1

Any (phase, event) pair missing from the table is an explicit no-op.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from ..core.constants import (
    COUNTDOWN_TICKS, PROMPT_CAPTURE_FAILED, PROMPT_COMPLETED, PROMPT_FIRST_SHOT,
    PROMPT_PROCESSING_FAILED, PROMPT_SECOND_SHOT, SHOT_COUNT,
)
from ..core.entities import (
    CaptureResult, CompositeResult, DetectionResult, Phase, ScreenRegion, SessionState, Size,
)
from ..core.exceptions import ApplicationError, CaptureFailed
from ..core.logging_config import clear_session_id, set_session_id
from ..core.scheduler import CountdownTimer
from ..utils.image_utils import draw_cutout

logger = logging.getLogger(__name__)


# Events

@dataclass(frozen=True)
class StartRequested:
    pass


@dataclass(frozen=True)
class SubjectDetected:
    region: ScreenRegion
    aligned: bool
    framing: Optional[ScreenRegion] = None


@dataclass(frozen=True)
class SubjectLost:
    pass


@dataclass(frozen=True)
class CountdownTick:
    remaining: int


@dataclass(frozen=True)
class CaptureCompleted:
    result: CaptureResult


@dataclass(frozen=True)
class ProcessingFinished:
    result: Optional[CompositeResult] = None
    reference: Optional[ScreenRegion] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class DetectionRearmed:
    pass


@dataclass(frozen=True)
class ResetRequested:
    pass


# Effects

class EffectKind(Enum):
    BEGIN_SESSION = "begin_session"
    START_COUNTDOWN = "start_countdown"
    INVOKE_CAPTURE = "invoke_capture"
    RUN_COMPOSITING = "run_compositing"
    SCHEDULE_REARM = "schedule_rearm"
    SCHEDULE_AUTO_RESET = "schedule_auto_reset"
    STOP_CAPTURE_SOURCE = "stop_capture_source"
    CANCEL_TIMERS = "cancel_timers"
    END_SESSION = "end_session"


@dataclass(frozen=True)
class Effect:
    kind: EffectKind
    value: Any = None


@dataclass(frozen=True)
class Transition:
    state: SessionState
    effects: Tuple[Effect, ...] = ()


def _prompt_for(shot_index: int) -> str:
    return PROMPT_FIRST_SHOT if shot_index == 0 else PROMPT_SECOND_SHOT


class SessionStateMachine:
    """Pure transition function of the two-shot session."""

    def __init__(self, rearm_delay_s: float = 2.0, auto_reset_delay_s: Optional[float] = 2.0,
                 countdown_ticks: int = COUNTDOWN_TICKS):
        self.rearm_delay_s = rearm_delay_s
        self.auto_reset_delay_s = auto_reset_delay_s
        self.countdown_ticks = countdown_ticks
        self._handlers: Dict[Tuple[Phase, type], Callable[[SessionState, Any], Transition]] = {
            (Phase.IDLE, StartRequested): self._start,
            (Phase.ARMED, SubjectDetected): self._armed_detected,
            (Phase.TRACKING, SubjectDetected): self._tracking_detected,
            (Phase.TRACKING, SubjectLost): self._subject_lost,
            (Phase.ARMED, DetectionRearmed): self._rearmed,
            (Phase.TRACKING, DetectionRearmed): self._rearmed,
            (Phase.COUNTDOWN, CountdownTick): self._tick,
            (Phase.CAPTURING, CaptureCompleted): self._captured,
            (Phase.PROCESSING, ProcessingFinished): self._processed,
        }
        for phase in Phase:
            self._handlers[(phase, ResetRequested)] = self._reset

    def transition(self, state: SessionState, event) -> Transition:
        """Compute the next state and the effects to run.

        Args:
            state: Current session state
            event: One of the event dataclasses of this module

        Returns:
            Transition: the new state (identical object on no-op) and its effects
        """
        handler = self._handlers.get((state.phase, type(event)))
        if handler is None:
            logger.debug(f"No effect: {type(event).__name__} in phase {state.phase.value}")
            return Transition(state)
        return handler(state, event)

    def _start(self, state, event) -> Transition:
        armed = SessionState(phase=Phase.ARMED, shot_index=0, can_detect=True, prompt=_prompt_for(0))
        return Transition(armed, (Effect(EffectKind.BEGIN_SESSION),))

    def _armed_detected(self, state, event: SubjectDetected) -> Transition:
        if state.shot_index > 0 and not event.aligned:
            # outside the stored reference: overlay update only
            return Transition(replace(state, region=event.region, framing=state.framing or event.framing))
        tracking = replace(
            state,
            phase=Phase.TRACKING,
            region=event.region,
            framing=state.framing or event.framing,
            error=None,
        )
        return self._tracking_detected(tracking, event)

    def _tracking_detected(self, state, event: SubjectDetected) -> Transition:
        state = replace(state, region=event.region, framing=state.framing or event.framing)
        if state.shot_index > 0 and not event.aligned:
            return Transition(replace(state, phase=Phase.ARMED))
        if not (event.aligned and state.can_detect):
            return Transition(state)
        countdown = replace(
            state,
            phase=Phase.COUNTDOWN,
            can_detect=False,
            countdown=self.countdown_ticks,
            prompt=str(self.countdown_ticks),
        )
        return Transition(countdown, (Effect(EffectKind.START_COUNTDOWN),))

    def _subject_lost(self, state, event) -> Transition:
        return Transition(replace(state, phase=Phase.ARMED, region=None))

    def _rearmed(self, state, event) -> Transition:
        if state.can_detect:
            return Transition(state)
        return Transition(replace(state, can_detect=True))

    def _tick(self, state, event: CountdownTick) -> Transition:
        if event.remaining > 0:
            return Transition(replace(state, countdown=event.remaining, prompt=str(event.remaining)))
        capturing = replace(state, phase=Phase.CAPTURING, countdown=0, prompt="")
        return Transition(capturing, (Effect(EffectKind.INVOKE_CAPTURE),))

    def _captured(self, state, event: CaptureCompleted) -> Transition:
        result = event.result
        if result.ok:
            processing = replace(state, phase=Phase.PROCESSING)
            return Transition(processing, (Effect(EffectKind.RUN_COMPOSITING, result.image),))
        retry = replace(
            state,
            phase=Phase.ARMED,
            can_detect=True,
            region=None,
            prompt=PROMPT_CAPTURE_FAILED,
            error=result.error or "Capture failed",
        )
        return Transition(retry)

    def _processed(self, state, event: ProcessingFinished) -> Transition:
        if event.error is not None or event.result is None:
            retry = replace(
                state,
                phase=Phase.ARMED,
                can_detect=True,
                region=None,
                prompt=PROMPT_PROCESSING_FAILED,
                error=event.error or "Compositing produced no result",
            )
            return Transition(retry)

        next_shot = state.shot_index + 1
        if next_shot < SHOT_COUNT:
            immediate = self.rearm_delay_s <= 0
            armed = replace(
                state,
                phase=Phase.ARMED,
                shot_index=next_shot,
                can_detect=immediate,
                stored_mask=event.result.mask_used,
                stored_geometry=event.reference,
                region=None,
                prompt=_prompt_for(next_shot),
                error=None,
            )
            effects = () if immediate else (Effect(EffectKind.SCHEDULE_REARM, self.rearm_delay_s),)
            return Transition(armed, effects)

        completed = replace(
            state,
            phase=Phase.COMPLETED,
            can_detect=False,
            region=None,
            prompt=PROMPT_COMPLETED,
            error=None,
        )
        effects = [Effect(EffectKind.STOP_CAPTURE_SOURCE)]
        if self.auto_reset_delay_s is not None:
            effects.append(Effect(EffectKind.SCHEDULE_AUTO_RESET, self.auto_reset_delay_s))
        return Transition(completed, tuple(effects))

    def _reset(self, state, event) -> Transition:
        return Transition(SessionState(), (Effect(EffectKind.CANCEL_TIMERS), Effect(EffectKind.END_SESSION)))


class SessionController:
    """Owns the session state on the control lane and runs transition effects."""

    def __init__(self, machine: SessionStateMachine, policy, pipeline, capture_source, lane,
                 throttle=None, executor: Optional[Executor] = None, viewport: Optional[Size] = None):
        """Initialize the controller.

        Args:
            machine: Transition function
            policy: Geometry policy producing regions and alignment decisions
            pipeline: Compositing pipeline run after each capture
            capture_source: Provides ``capture_frame()`` and stream start/stop
            lane: Control lane; every state change happens there
            throttle: Frame analysis throttle armed from ``state.can_detect``
            executor: Worker for capture and compositing jobs
            viewport: Fixed overlay size; the analysed frame size is used when omitted
        """
        self.machine = machine
        self.policy = policy
        self.pipeline = pipeline
        self.capture_source = capture_source
        self.lane = lane
        self.throttle = throttle
        self.viewport = viewport
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="session-worker")

        self._state = SessionState()
        self._timer = CountdownTimer(lane, ticks=machine.countdown_ticks)
        self._rearm_call = None
        self._reset_call = None
        self._last_viewport: Optional[Size] = viewport
        self._listeners: List[Callable[[SessionState], None]] = []
        self._transitions = 0
        self._sessions = 0

    @property
    def state(self) -> SessionState:
        return self._state

    def attach_throttle(self, throttle) -> None:
        self.throttle = throttle
        self._sync_throttle()

    def add_listener(self, callback: Callable[[SessionState], None]) -> None:
        """Add a listener for session state updates."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[SessionState], None]) -> None:
        """Remove a session state listener."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    # Requests from the UI collaborator; executed on the control lane

    def start(self) -> None:
        self.lane.post(self.dispatch, StartRequested())

    def reset(self) -> None:
        self.lane.post(self.dispatch, ResetRequested())

    def restart(self) -> None:
        """Full reset followed by a new session armed for the first shot."""
        self.lane.post(self._restart)

    def _restart(self) -> None:
        self.dispatch(ResetRequested())
        self.dispatch(StartRequested())

    def on_detection(self, result: Optional[DetectionResult], frame_size: Size) -> None:
        """Turn a detection into a session event. Runs on the control lane."""
        viewport = self.viewport or frame_size
        self._last_viewport = viewport
        state = self._state
        if not state.is_waiting_for_subject:
            logger.debug(f"Ignoring detection in phase {state.phase.value}")
            return

        subject = result.primary if result is not None else None
        if subject is None:
            self.dispatch(SubjectLost())
            return

        region = self.policy.region_for(subject, viewport)
        if region is None:
            logger.debug("Detection produced no usable region")
            return
        aligned = self.policy.alignment_test(region, state.stored_geometry, state.shot_index)
        framing = self.policy.framing_for(region) if state.framing is None else None
        self.dispatch(SubjectDetected(region=region, aligned=aligned, framing=framing))

    def dispatch(self, event) -> SessionState:
        """Apply one event. Must be called on the control lane."""
        previous = self._state
        transition = self.machine.transition(previous, event)
        if transition.state is previous:
            return previous

        self._state = transition.state
        self._transitions += 1
        if transition.state.phase is not previous.phase or transition.state.shot_index != previous.shot_index:
            logger.info(f"Session {previous.phase.value}({previous.shot_index}) -> "
                        f"{transition.state.phase.value}({transition.state.shot_index}) on {type(event).__name__}")
        if transition.state.error and transition.state.error != previous.error:
            logger.warning(f"Shot {transition.state.shot_index} attempt failed: {transition.state.error}")

        for effect in transition.effects:
            self._execute(effect)
        self._sync_throttle()
        self._notify()
        return self._state

    def _execute(self, effect: Effect) -> None:
        kind = effect.kind
        if kind is EffectKind.BEGIN_SESSION:
            self._sessions += 1
            sid = set_session_id()
            logger.info(f"Photo session {sid} started")
            if self.capture_source is not None and not self.capture_source.is_streaming():
                self.capture_source.start_stream()
        elif kind is EffectKind.START_COUNTDOWN:
            self._timer.start(self._on_countdown_tick)
        elif kind is EffectKind.INVOKE_CAPTURE:
            self._submit(self._capture_job)
        elif kind is EffectKind.RUN_COMPOSITING:
            state = self._state
            viewport = self._last_viewport or self._image_size(effect.value)
            self._submit(self._composite_job, effect.value, state.shot_index, state.stored_mask,
                         state.region, viewport)
        elif kind is EffectKind.SCHEDULE_REARM:
            self._rearm_call = self.lane.call_later(effect.value, self.dispatch, DetectionRearmed())
        elif kind is EffectKind.SCHEDULE_AUTO_RESET:
            self._reset_call = self.lane.call_later(effect.value, self.dispatch, ResetRequested())
        elif kind is EffectKind.STOP_CAPTURE_SOURCE:
            if self.capture_source is not None:
                self.capture_source.stop_stream()
        elif kind is EffectKind.CANCEL_TIMERS:
            self._cancel_timers()
        elif kind is EffectKind.END_SESSION:
            clear_session_id()

    def _on_countdown_tick(self, remaining: int) -> None:
        self.dispatch(CountdownTick(remaining))

    def _cancel_timers(self) -> None:
        self._timer.cancel()
        for call in (self._rearm_call, self._reset_call):
            if call is not None:
                call.cancel()
        self._rearm_call = None
        self._reset_call = None

    def _submit(self, fn, *args) -> None:
        try:
            self._executor.submit(fn, *args)
        except RuntimeError as e:
            logger.error(f"Session worker rejected job: {e}")

    def _capture(self) -> np.ndarray:
        """Ask the capture source for a photo, reporting every failure as CaptureFailed."""
        try:
            image = self.capture_source.capture_frame()
        except CaptureFailed:
            raise
        except Exception as e:
            raise CaptureFailed(f"Capture source error: {e}") from e
        if image is None:
            raise CaptureFailed("No frame available from capture source")
        return image

    def _capture_job(self) -> None:
        image = error = None
        try:
            image = self._capture()
        except CaptureFailed as e:
            logger.error(f"Capture failed: {e}")
            error = str(e)
        self.lane.post(self.dispatch, CaptureCompleted(CaptureResult(image, error, time.time())))

    def _composite_job(self, image, shot_index, stored_mask, region, viewport) -> None:
        result = reference = error = None
        try:
            result = self.pipeline.process(image, shot_index, stored_mask)
            if shot_index == 0:
                reference = self.policy.reference_for(region, result.mask_used, viewport)
        except ApplicationError as e:
            logger.warning(f"Processing shot {shot_index} failed: {e}")
            result, error = None, str(e)
        except Exception as e:
            logger.exception(f"Unexpected error while processing shot {shot_index}: {e}")
            result, error = None, str(e)
        self.lane.post(self.dispatch, ProcessingFinished(result=result, reference=reference, error=error))

    @staticmethod
    def _image_size(image) -> Size:
        h, w = image.shape[:2]
        return (w, h)

    def _sync_throttle(self) -> None:
        if self.throttle is not None:
            self.throttle.set_armed(self._state.can_detect and self._state.is_waiting_for_subject)

    def _notify(self) -> None:
        state = self._state
        for callback in list(self._listeners):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in session listener: {e}")

    # Overlay sink helpers

    def overlay(self, viewport: Optional[Size] = None) -> Optional[ScreenRegion]:
        """Region to draw on the live preview for the current state."""
        viewport = viewport or self._last_viewport
        if viewport is None:
            return None
        return self.policy.overlay_for(self._state.region, self._state.stored_geometry, viewport)

    def cutout_mask(self, viewport: Optional[Size] = None) -> Optional[np.ndarray]:
        """Cut-out of the face-framing oval, or of the overlay region before it exists."""
        viewport = viewport or self._last_viewport
        if viewport is None:
            return None
        if self._state.framing is not None:
            return draw_cutout(self._state.framing, viewport, self.policy.mask_threshold)
        return self.policy.cutout_mask(self.overlay(viewport), viewport)

    def shutdown(self) -> None:
        """Cancel timers and release worker threads this controller created."""
        self._cancel_timers()
        if self.throttle is not None:
            self.throttle.shutdown()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def get_stats(self) -> dict:
        """Get controller statistics."""
        return {
            'phase': self._state.phase.value,
            'shot_index': self._state.shot_index,
            'can_detect': self._state.can_detect,
            'transitions': self._transitions,
            'sessions': self._sessions,
            'listeners': len(self._listeners),
            'countdown_active': self._timer.active,
        }
