import math
import time
from dataclasses import asdict, dataclass
from typing import Callable, Mapping, Optional

from security.attempt_store import AttemptRecord, AttemptStore, AttemptUnitOfWork

UNKNOWN_CLIENT = "unknown"

# Most trusted first: CDN edge header, then proxy chain, then the nginx-style header
DEFAULT_CLIENT_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int = 15 * 60 * 1000
    max_attempts: int = 5
    block_duration_ms: int = 30 * 60 * 1000

    @classmethod
    def from_mapping(cls, config: Mapping) -> "RateLimitConfig":
        return cls(
            window_ms=int(config.get("LOGIN_RATE_WINDOW_MS", cls.window_ms)),
            max_attempts=int(config.get("LOGIN_RATE_MAX_ATTEMPTS", cls.max_attempts)),
            block_duration_ms=int(config.get("LOGIN_RATE_BLOCK_MS", cls.block_duration_ms)),
        )


@dataclass
class RateLimitDecision:
    success: bool
    remaining: int
    reset_in: int  # seconds
    blocked: bool
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def seconds_until(target_ms: int, now_ms: int) -> int:
    return max(0, math.ceil((target_ms - now_ms) / 1000))


def _minutes(seconds: int) -> str:
    minutes = math.ceil(seconds / 60)
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


def _attempts_left(remaining: int) -> str:
    noun = "attempt" if remaining == 1 else "attempts"
    return f"{remaining} login {noun} remaining."


def _system_clock() -> int:
    return int(time.time() * 1000)


def derive_client_identifier(headers: Mapping, trusted_headers=DEFAULT_CLIENT_HEADERS) -> str:
    """
    Pick the client address from request headers. The first populated
    header in `trusted_headers` wins; X-Forwarded-For contributes only its
    left-most entry.
    """
    lowered = None
    for name in trusted_headers:
        value = headers.get(name)
        if value is None and not hasattr(headers, "getlist"):
            # plain dicts are case-sensitive, Werkzeug Headers are not
            if lowered is None:
                lowered = {str(k).lower(): v for k, v in headers.items()}
            value = lowered.get(name.lower())

        if not value:
            continue
        if name.lower() == "x-forwarded-for":
            value = value.split(",")[0]
        value = value.strip()
        if value:
            return value

    return UNKNOWN_CLIENT


class LoginAttemptGuard:
    """
    Brute-force guard for login attempts.

    Failures are counted per identifier inside a window of
    `config.window_ms`. Reaching `config.max_attempts` blocks the identifier
    for `config.block_duration_ms`. Expiry is evaluated lazily against the
    stored timestamps; nothing runs in the background.
    """

    def __init__(self, store: AttemptStore, config: Optional[RateLimitConfig] = None,
                 clock: Optional[Callable[[], int]] = None):
        self.store = store
        self.config = config or RateLimitConfig()
        self.clock = clock or _system_clock

    # -- decisions --------------------------------------------------------

    def _fresh(self, now: int, remaining: int, message: Optional[str] = None) -> RateLimitDecision:
        return RateLimitDecision(
            success=True,
            remaining=remaining,
            reset_in=seconds_until(now + self.config.window_ms, now),
            blocked=False,
            message=message,
        )

    def _blocked(self, blocked_until: int, now: int, locked_now: bool = False) -> RateLimitDecision:
        reset_in = seconds_until(blocked_until, now)
        if locked_now:
            message = f"Too many login attempts. Locked for {_minutes(reset_in)}."
        else:
            message = f"Too many login attempts. Try again in {_minutes(reset_in)}."
        return RateLimitDecision(success=False, remaining=0, reset_in=reset_in, blocked=True, message=message)

    def _is_blocked(self, record: AttemptRecord, now: int) -> bool:
        return record.blocked_until is not None and record.blocked_until > now

    def _is_stale(self, record: AttemptRecord, now: int) -> bool:
        # An elapsed block counts as a fresh start, same as an elapsed window
        if record.blocked_until is not None and record.blocked_until <= now:
            return True
        return now > record.first_attempt_at + self.config.window_ms

    @staticmethod
    def _require(identifier: str) -> None:
        if not isinstance(identifier, str) or not identifier:
            raise ValueError("identifier must be a non-empty string")

    # -- operations -------------------------------------------------------

    def check(self, identifier: str) -> RateLimitDecision:
        """Read-only lookup; never mutates the stored record."""
        self._require(identifier)
        now = self.clock()
        record = self.store.find(identifier)

        if record is None:
            return self._fresh(now, self.config.max_attempts)

        if self._is_blocked(record, now):
            return self._blocked(record.blocked_until, now)

        if self._is_stale(record, now):
            return self._fresh(now, self.config.max_attempts)

        window_ends = record.first_attempt_at + self.config.window_ms
        remaining = self.config.max_attempts - record.count
        if remaining <= 0:
            return RateLimitDecision(
                success=False,
                remaining=0,
                reset_in=seconds_until(window_ends, now),
                blocked=False,
                message="Too many login attempts. Try again later.",
            )

        return RateLimitDecision(
            success=True,
            remaining=remaining,
            reset_in=seconds_until(window_ends, now),
            blocked=False,
        )

    def record_failure(self, identifier: str) -> RateLimitDecision:
        """Count a failed login. Runs under the store's per-identifier lock."""
        self._require(identifier)
        return self.store.transact(identifier, self._record_failure)

    def _record_failure(self, work: AttemptUnitOfWork) -> RateLimitDecision:
        now = self.clock()
        record = work.record
        max_attempts = self.config.max_attempts

        if record is None:
            work.insert(AttemptRecord(
                identifier=work.identifier,
                count=1,
                first_attempt_at=now,
                last_attempt_at=now,
                blocked_until=None,
            ))
            return self._fresh(now, max_attempts - 1)

        if self._is_blocked(record, now):
            return self._blocked(record.blocked_until, now)

        if self._is_stale(record, now):
            work.update(count=1, first_attempt_at=now, last_attempt_at=now, blocked_until=None)
            return self._fresh(now, max_attempts - 1)

        new_count = record.count + 1
        if new_count >= max_attempts:
            blocked_until = now + self.config.block_duration_ms
            work.update(count=new_count, last_attempt_at=now, blocked_until=blocked_until)
            return self._blocked(blocked_until, now, locked_now=True)

        work.update(count=new_count, last_attempt_at=now)
        remaining = max_attempts - new_count
        return RateLimitDecision(
            success=True,
            remaining=remaining,
            reset_in=seconds_until(record.first_attempt_at + self.config.window_ms, now),
            blocked=False,
            message=_attempts_left(remaining) if remaining <= 2 else None,
        )

    def clear(self, identifier: str) -> None:
        """Forget the identifier entirely after a successful login."""
        self._require(identifier)
        self.store.delete(identifier)
