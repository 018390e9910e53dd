"""
logreplay - replay recorded HTTP access logs against a target server,
keeping the original spacing between requests.
"""

from logreplay.entry import AccessEntry
from logreplay.errors import EmptyOrInvalidInput, MalformedEntry, ReplayError
from logreplay.timeline import Timeline, build_timeline, parse_shift
from logreplay.dispatcher import Dispatcher, TargetConfig
from logreplay.runner import CancellationToken, Runner, RunnerConfig, RunState, run

__version__ = "0.1.0"

__all__ = [
    "AccessEntry",
    "CancellationToken",
    "Dispatcher",
    "EmptyOrInvalidInput",
    "MalformedEntry",
    "ReplayError",
    "RunState",
    "Runner",
    "RunnerConfig",
    "TargetConfig",
    "Timeline",
    "build_timeline",
    "parse_shift",
    "run",
]
