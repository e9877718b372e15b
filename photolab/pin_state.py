"""
PIN entry state and its reducer.
- PinEntryState is an immutable snapshot; every action yields a new one.
- Mode is a small sum type: Check | Create | Confirm(pending_pin).
- All timestamps are milliseconds on the owning session's clock.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Union


PIN_LENGTH = 6
MAX_ATTEMPTS = 3
LOCKOUT_DURATION_MS = 30_000

MSG_MISMATCH = "PINs do not match. Please try again."
MSG_STORE_ERROR = "An error occurred. Please try again."


def _format_seconds(duration_ms: int) -> str:
    # 30000 -> "30", 1500 -> "1.5", 1234567 -> "1234.567"
    if float(duration_ms).is_integer() and int(duration_ms) % 1000 == 0:
        return str(int(duration_ms) // 1000)
    return f"{duration_ms / 1000:.15g}"


def lockout_message(lockout_duration_ms: int) -> str:
    return f"Too many attempts. Try again in {_format_seconds(lockout_duration_ms)} seconds."


def attempts_message(remaining: int) -> str:
    return f"Incorrect PIN. {remaining} attempts remaining."


# ----------------------------
# State
# ----------------------------
@dataclass(frozen=True)
class PinEntryState:
    digits: Tuple[str, ...] = ("",) * PIN_LENGTH
    attempts: int = 0
    is_locked: bool = False
    lockout_end_time: Optional[float] = None
    error: Optional[str] = None

    @property
    def pin(self) -> str:
        return "".join(self.digits)

    @property
    def filled(self) -> int:
        return sum(1 for d in self.digits if d)

    @property
    def is_complete(self) -> bool:
        return self.filled == len(self.digits)

    @property
    def is_empty(self) -> bool:
        return self.filled == 0


def initial_state(pin_length: int = PIN_LENGTH) -> PinEntryState:
    """Fresh state: empty digits, no attempts, unlocked, no error."""
    if pin_length < 1:
        raise ValueError("pin_length must be >= 1")
    return PinEntryState(digits=("",) * pin_length)


# ----------------------------
# Modes
# ----------------------------
@dataclass(frozen=True)
class Check:
    """A credential exists; verifying entry."""
    name: str = field(default="check", init=False)


@dataclass(frozen=True)
class Create:
    """No credential exists; collecting a new one."""
    name: str = field(default="create", init=False)


@dataclass(frozen=True)
class Confirm:
    """A new PIN was collected and waits for re-entry."""
    pending_pin: str
    name: str = field(default="confirm", init=False)

    def __post_init__(self) -> None:
        if not self.pending_pin:
            raise ValueError("Confirm requires a pending PIN")

    def __repr__(self) -> str:
        return "Confirm(pending_pin=***)"


Mode = Union[Check, Create, Confirm]


# ----------------------------
# Actions
# ----------------------------
@dataclass(frozen=True)
class Initialize:
    payload: PinEntryState


@dataclass(frozen=True)
class AddDigit:
    digit: Union[int, str]


@dataclass(frozen=True)
class RemoveDigit:
    pass


@dataclass(frozen=True)
class ClearDigits:
    pass


@dataclass(frozen=True)
class IncrementAttempts:
    max_attempts: int
    lockout_duration_ms: int
    now: float


@dataclass(frozen=True)
class ResetLockout:
    pass


@dataclass(frozen=True)
class SetError:
    error: Optional[str]


Action = Union[Initialize, AddDigit, RemoveDigit, ClearDigits, IncrementAttempts, ResetLockout, SetError]


def _normalize_digit(digit: Union[int, str]) -> str:
    if isinstance(digit, bool):
        raise ValueError(f"Not a decimal digit: {digit!r}")
    if isinstance(digit, int):
        if 0 <= digit <= 9:
            return str(digit)
        raise ValueError(f"Not a decimal digit: {digit!r}")
    if isinstance(digit, str) and len(digit) == 1 and digit in "0123456789":
        return digit
    raise ValueError(f"Not a decimal digit: {digit!r}")


# ----------------------------
# Reducer
# ----------------------------
def pin_reducer(state: PinEntryState, action: Action) -> PinEntryState:
    """Return the state that results from applying ``action`` to ``state``."""
    if isinstance(action, Initialize):
        return action.payload

    if isinstance(action, AddDigit):
        d = _normalize_digit(action.digit)
        digits = list(state.digits)
        try:
            idx = digits.index("")
        except ValueError:
            # full buffer: no-op
            return state
        digits[idx] = d
        return replace(state, digits=tuple(digits), error=None)

    if isinstance(action, RemoveDigit):
        digits = list(state.digits)
        for idx in range(len(digits) - 1, -1, -1):
            if digits[idx]:
                digits[idx] = ""
                return replace(state, digits=tuple(digits), error=None)
        return state

    if isinstance(action, ClearDigits):
        return replace(state, digits=("",) * len(state.digits), error=None)

    if isinstance(action, IncrementAttempts):
        attempts = state.attempts + 1
        should_lock = attempts >= action.max_attempts
        if should_lock:
            end_time: Optional[float] = action.now + action.lockout_duration_ms
            error = lockout_message(action.lockout_duration_ms)
        else:
            end_time = None
            error = attempts_message(action.max_attempts - attempts)
        return replace(
            state,
            attempts=attempts,
            is_locked=should_lock,
            lockout_end_time=end_time,
            error=error,
            digits=("",) * len(state.digits),
        )

    if isinstance(action, ResetLockout):
        if not state.is_locked and state.lockout_end_time is None and state.error is None:
            return state
        return replace(state, is_locked=False, lockout_end_time=None, error=None)

    if isinstance(action, SetError):
        return replace(state, error=action.error)

    raise TypeError(f"Unknown action: {action!r}")
