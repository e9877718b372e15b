"""
PIN entry session.
- Owns one PinEntryState and one Mode for a single open entry surface.
- Collects digits, verifies or creates the PIN against the secure store,
  enforces the attempt-counted lockout and runs its countdown.
- Store calls suspend; while one is pending, input is frozen. Results that
  arrive after the surface was closed (or reopened) are discarded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from photolab.countdown import CountdownScheduler
from photolab.pin_state import (
    LOCKOUT_DURATION_MS,
    MAX_ATTEMPTS,
    MSG_MISMATCH,
    MSG_STORE_ERROR,
    PIN_LENGTH,
    Action,
    AddDigit,
    Check,
    ClearDigits,
    Confirm,
    Create,
    IncrementAttempts,
    Initialize,
    Mode,
    PinEntryState,
    RemoveDigit,
    ResetLockout,
    SetError,
    initial_state,
    pin_reducer,
)
from photolab.secure_store import SECURE_KEY, SecureStore
from photolab.utils import logger, now_ms


@dataclass
class PinPolicy:
    """Policy parameters for PIN entry."""
    pin_length: int = PIN_LENGTH
    max_attempts: int = MAX_ATTEMPTS
    lockout_duration_ms: int = LOCKOUT_DURATION_MS
    auto_submit: bool = True        # verify as soon as the buffer is full
    tick_interval_s: float = 0.1    # countdown recompute period


_SUBTITLES = {
    "check": "Please enter your {n}-digit PIN to continue.",
    "create": "Please create a new {n}-digit PIN.",
    "confirm": "Please confirm your PIN by entering it again.",
}
_ACTION_LABELS = {
    # mode -> (buffer incomplete, buffer complete)
    "check": ("Enter PIN", "Continue"),
    "create": ("Create PIN", "Next"),
    "confirm": ("Confirm PIN", "Confirm PIN"),
}


class PinEntrySession:
    """
    Entry-surface controller.

    Callbacks:
    - on_matches(pin): a Check succeeded or a new PIN was confirmed and stored.
    - on_pin_complete(pin): the buffer just became full while input was allowed.
    - on_invalid(): shake/vibrate feedback for every counted failure.
    - on_countdown(seconds): lockout seconds remaining, only when it changes.
    """

    def __init__(
        self,
        store: SecureStore,
        *,
        policy: Optional[PinPolicy] = None,
        on_matches: Optional[Callable[[str], None]] = None,
        on_pin_complete: Optional[Callable[[str], None]] = None,
        on_invalid: Optional[Callable[[], None]] = None,
        on_countdown: Optional[Callable[[int], None]] = None,
        clock: Callable[[], float] = now_ms,
        secure_key: str = SECURE_KEY,
    ) -> None:
        self.store = store
        self.policy = policy or PinPolicy()
        self.on_matches = on_matches
        self.on_pin_complete = on_pin_complete
        self.on_invalid = on_invalid
        self.on_countdown = on_countdown
        self.clock = clock
        self.secure_key = secure_key

        # runtime
        self.state: PinEntryState = initial_state(self.policy.pin_length)
        self.mode: Optional[Mode] = None
        self.countdown: int = 0
        self.is_open: bool = False
        self.authenticated: bool = False
        self._busy: bool = False
        self._generation: int = 0
        self._scheduler: Optional[CountdownScheduler] = None

    # ------------- state helpers -------------
    def _dispatch(self, action: Action) -> None:
        self.state = pin_reducer(self.state, action)

    @property
    def is_verifying(self) -> bool:
        return self._busy

    @property
    def is_action_disabled(self) -> bool:
        """True while input must be ignored: closed, probing, verifying or locked."""
        return (
            not self.is_open
            or self.mode is None
            or self._busy
            or self.state.is_locked
            or self.countdown > 0
        )

    # ------------- lockout / countdown -------------
    def _expire_lockout_if_due(self) -> None:
        end = self.state.lockout_end_time
        if end is not None and self.clock() >= end:
            self._on_lockout_expired(self._generation)

    def _on_lockout_expired(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("[PinSession] Ignoring countdown from a closed surface")
            return
        self._stop_countdown()
        self.countdown = 0
        self._dispatch(ResetLockout())
        logger.info("[PinSession] Lockout expired")

    def _on_countdown_tick(self, generation: int, seconds: int) -> None:
        if generation != self._generation:
            return
        self.countdown = seconds
        if self.on_countdown:
            self.on_countdown(seconds)

    def _start_countdown(self) -> None:
        self._stop_countdown()
        end = self.state.lockout_end_time
        if end is None:
            return
        gen = self._generation
        self._scheduler = CountdownScheduler(
            end,
            clock=self.clock,
            on_tick=lambda s: self._on_countdown_tick(gen, s),
            on_expire=lambda: self._on_lockout_expired(gen),
            interval_s=self.policy.tick_interval_s,
        )
        # first tick runs inline so the UI sees the countdown immediately
        if self._scheduler.tick():
            self._scheduler.start()

    def _stop_countdown(self) -> None:
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.cancel()

    def _increment_attempts(self) -> None:
        self._dispatch(IncrementAttempts(
            max_attempts=self.policy.max_attempts,
            lockout_duration_ms=self.policy.lockout_duration_ms,
            now=self.clock(),
        ))
        if self.state.is_locked:
            logger.warning(
                "[PinSession] Locked out after %s failed attempts for %sms",
                self.state.attempts, self.policy.lockout_duration_ms,
            )
            self._start_countdown()
        else:
            logger.info("[PinSession] Incorrect PIN (attempt %s/%s)", self.state.attempts, self.policy.max_attempts)
        if self.on_invalid:
            self.on_invalid()

    # ------------- lifecycle -------------
    async def open(self) -> Dict[str, Any]:
        """Show the entry surface: fresh state, then probe whether a PIN exists."""
        self._stop_countdown()
        self._generation += 1
        gen = self._generation
        self.is_open = True
        self.authenticated = False
        self.countdown = 0
        self.mode = None
        self._busy = True
        self._dispatch(Initialize(initial_state(self.policy.pin_length)))

        try:
            stored = await self.store.get(self.secure_key)
        except Exception as e:
            if gen != self._generation:
                return self.snapshot()
            logger.error("[PinSession] Credential probe failed: %s", e)
            self.mode = Check()
            self._dispatch(SetError(MSG_STORE_ERROR))
            self._busy = False
            return self.snapshot()

        if gen != self._generation:
            logger.debug("[PinSession] Discarding probe result for a closed surface")
            return self.snapshot()
        self.mode = Check() if stored else Create()
        self._busy = False
        logger.info("[PinSession] Entry surface opened in %s mode", self.mode.name)
        return self.snapshot()

    def close(self) -> None:
        """Hide the entry surface and drop its state."""
        self._stop_countdown()
        self._generation += 1
        self.is_open = False
        self.authenticated = False
        self.countdown = 0
        self.mode = None
        self._busy = False
        self.state = initial_state(self.policy.pin_length)
        logger.info("[PinSession] Entry surface closed")

    # ------------- input -------------
    async def add_digit(self, digit: int | str) -> Dict[str, Any]:
        self._expire_lockout_if_due()
        if self.is_action_disabled:
            return self.snapshot()
        was_complete = self.state.is_complete
        self._dispatch(AddDigit(digit))
        if self.state.is_complete and not was_complete:
            pin = self.state.pin
            if self.on_pin_complete:
                self.on_pin_complete(pin)
            if self.policy.auto_submit:
                await self.submit()
        return self.snapshot()

    def remove_digit(self) -> Dict[str, Any]:
        self._expire_lockout_if_due()
        if not self.is_action_disabled:
            self._dispatch(RemoveDigit())
        return self.snapshot()

    def clear_digits(self) -> Dict[str, Any]:
        self._expire_lockout_if_due()
        if not self.is_action_disabled:
            self._dispatch(ClearDigits())
        return self.snapshot()

    async def press(self, symbol: str) -> Dict[str, Any]:
        """Feed one keypad symbol: a digit, BACKSPACE, CLEAR or ENTER."""
        if len(symbol) == 1 and symbol.isdigit():
            return await self.add_digit(symbol)
        if symbol == "BACKSPACE":
            return self.remove_digit()
        if symbol == "CLEAR":
            return self.clear_digits()
        if symbol == "ENTER":
            await self.submit()
            return self.snapshot()
        raise ValueError(f"Unknown keypad symbol: {symbol!r}")

    # ------------- submission -------------
    async def submit(self) -> Dict[str, Any]:
        """Evaluate a full buffer against the current mode."""
        self._expire_lockout_if_due()
        if not self.state.is_complete or self.is_action_disabled:
            return self.snapshot()

        mode = self.mode
        pin = self.state.pin

        if isinstance(mode, Create):
            self.mode = Confirm(pending_pin=pin)
            self._dispatch(ClearDigits())
            logger.info("[PinSession] New PIN collected; awaiting confirmation")
            return self.snapshot()

        gen = self._generation
        self._busy = True
        matched = False
        try:
            if isinstance(mode, Check):
                stored = await self.store.get(self.secure_key)
                if gen != self._generation:
                    logger.debug("[PinSession] Discarding verification for a closed surface")
                    return self.snapshot()
                matched = stored is not None and stored == pin
                if not matched:
                    self._increment_attempts()
            elif isinstance(mode, Confirm):
                if pin != mode.pending_pin:
                    self._dispatch(ClearDigits())
                    self._dispatch(SetError(MSG_MISMATCH))
                    self.mode = Create()
                    logger.info("[PinSession] Confirmation mismatch; back to create")
                else:
                    await self.store.set(self.secure_key, pin)
                    if gen != self._generation:
                        logger.debug("[PinSession] PIN stored after the surface closed")
                        return self.snapshot()
                    matched = True
                    self.mode = Check()
                    logger.info("[PinSession] New PIN stored")
        except Exception as e:
            if gen != self._generation:
                return self.snapshot()
            logger.error("[PinSession] Secure store call failed: %s", e)
            self._dispatch(SetError(MSG_STORE_ERROR))
        finally:
            if gen == self._generation:
                self._busy = False

        if matched:
            self._dispatch(SetError(None))
            self.authenticated = True
            logger.info("[PinSession] PIN accepted")
            if self.on_matches:
                self.on_matches(pin)
        return self.snapshot()

    async def forget_pin(self) -> bool:
        """
        Delete the stored PIN so a new one can be created.
        Only allowed after a successful match in the current open cycle.
        """
        if not self.is_open or not self.authenticated or self._busy:
            return False
        gen = self._generation
        self._busy = True
        try:
            await self.store.delete(self.secure_key)
        except Exception as e:
            if gen == self._generation:
                logger.error("[PinSession] Failed to delete stored PIN: %s", e)
                self._dispatch(SetError(MSG_STORE_ERROR))
            return False
        finally:
            if gen == self._generation:
                self._busy = False
        if gen != self._generation:
            return False
        self.authenticated = False
        self.mode = Create()
        self._dispatch(Initialize(initial_state(self.policy.pin_length)))
        logger.info("[PinSession] Stored PIN removed; awaiting a new one")
        return True

    # ------------- snapshot -------------
    def snapshot(self) -> Dict[str, Any]:
        """UI-facing view of the current session."""
        self._expire_lockout_if_due()
        disabled = self.is_action_disabled
        st = self.state
        mode_name = self.mode.name if self.mode is not None else None
        resp: Dict[str, Any] = {
            "open": self.is_open,
            "mode": mode_name,
            "digits": list(st.digits),
            "filled": st.filled,
            "complete": st.is_complete,
            "attempts": st.attempts,
            "is_locked": st.is_locked,
            "lockout_end_time": st.lockout_end_time,
            "countdown": self.countdown,
            "error": st.error,
            "verifying": self._busy,
            "action_disabled": disabled,
            "authenticated": self.authenticated,
        }
        if mode_name is not None:
            resp["subtitle"] = _SUBTITLES[mode_name].format(n=self.policy.pin_length)
            resp["action_label"] = _ACTION_LABELS[mode_name][1 if st.is_complete else 0]
        return resp
