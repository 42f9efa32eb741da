"""
Session and rest timers for Workout Tracker

Timers keep only timestamps from a monotonic clock; elapsed and remaining
time are derived whenever they are read. The page redraws them once a second,
so no thread ever outlives the editor that owns the timers.
"""

import time
from typing import Callable, Dict, Hashable, List, Optional

Clock = Callable[[], float]


def format_duration(seconds: int) -> str:
    """Session clock: MM:SS, or H:MM:SS from one hour on"""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_countdown(seconds: int) -> str:
    """Rest countdown: M:SS"""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}:{secs:02d}"


class SessionTimer:
    """
    Elapsed time of the workout being edited

    Pausing folds the running stretch into the accumulated total; resuming
    starts a new stretch from the current clock reading.
    """

    def __init__(self, clock: Clock = time.monotonic, elapsed: int = 0):
        self.clock = clock
        self._accumulated = float(elapsed or 0)
        self._started_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> int:
        total = self._accumulated
        if self._started_at is not None:
            total += self.clock() - self._started_at
        return int(total)

    @property
    def display(self) -> str:
        return format_duration(self.elapsed)

    def seed(self, seconds: Optional[int]):
        """Continue from a previously recorded duration"""
        self._accumulated = float(seconds or 0)
        if self._started_at is not None:
            self._started_at = self.clock()

    def start(self):
        if self._started_at is None:
            self._started_at = self.clock()

    resume = start

    def pause(self):
        if self._started_at is not None:
            self._accumulated += self.clock() - self._started_at
            self._started_at = None

    def toggle(self) -> bool:
        """Pause if running, resume otherwise; returns the new running state"""
        if self.running:
            self.pause()
        else:
            self.resume()
        return self.running

    def stop(self) -> int:
        """Stop the clock and return the final elapsed seconds"""
        self.pause()
        return self.elapsed


class RestTimer:
    """Countdown shown next to one set, started when the set is filled in"""

    def __init__(self, key: Hashable, duration: int, clock: Clock = time.monotonic):
        self.key = key
        self.duration = int(duration)
        self.clock = clock
        self.started_at = clock()

    @property
    def remaining(self) -> int:
        return max(0, self.duration - int(self.clock() - self.started_at))

    @property
    def finished(self) -> bool:
        return self.remaining <= 0

    @property
    def display(self) -> str:
        return format_countdown(self.remaining)


class RestTimers:
    """
    All rest countdowns, one per set key

    Starting a countdown for a key replaces the existing one. `poll` drops
    countdowns that reached zero and queues one sound alert for each.
    """

    def __init__(self, duration: int = 90, play_sound: bool = True,
                 clock: Clock = time.monotonic):
        self.duration = duration
        self.play_sound = play_sound
        self.clock = clock
        self.timers: Dict[Hashable, RestTimer] = {}
        self.pending_alerts = 0

    def start(self, key: Hashable) -> RestTimer:
        timer = RestTimer(key, self.duration, self.clock)
        self.timers[key] = timer
        return timer

    def poll(self) -> List[Hashable]:
        """
        Remove expired countdowns

        Returns:
            Keys of the countdowns that expired since the last poll
        """
        expired = [key for key, timer in self.timers.items() if timer.finished]
        for key in expired:
            del self.timers[key]
        if self.play_sound:
            self.pending_alerts += len(expired)
        return expired

    def cancel(self, key: Hashable):
        self.timers.pop(key, None)

    def cancel_all(self):
        self.timers.clear()

    def display(self, key: Hashable) -> Optional[str]:
        timer = self.timers.get(key)
        if timer is None or timer.finished:
            return None
        return timer.display

    def take_alerts(self) -> int:
        """Poll, then return and reset the number of sound alerts due"""
        self.poll()
        alerts = self.pending_alerts
        self.pending_alerts = 0
        return alerts
