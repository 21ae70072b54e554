"""Application logic layer."""

from .engine import Engine
from .principal import PrincipalProvider
from .quotes import QuoteBook, QuoteEntry, parse_generated
from .tasks import TaskBoard
from .timer import IntervalTicker, SessionCompleted, SessionTimerEngine, Ticker
from .timer_settings import TimerSettingsStore

__all__ = [
    "Engine",
    "IntervalTicker",
    "PrincipalProvider",
    "QuoteBook",
    "QuoteEntry",
    "SessionCompleted",
    "SessionTimerEngine",
    "Ticker",
    "TaskBoard",
    "TimerSettingsStore",
    "parse_generated",
]
