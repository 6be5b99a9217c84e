"""
preset-relay: priority task queue and multi-backend generation dispatcher.
"""

from preset_relay.adapters.base import CancellationToken, HostGenerator
from preset_relay.dispatcher import GenerationDispatcher
from preset_relay.presets import ApiConfig, ApiMode, Preset, PresetRegistry
from preset_relay.scheduler import TaskOutcome, TaskRunner
from preset_relay.task_queue import Task, TaskQueue

__all__ = [
    "ApiConfig",
    "ApiMode",
    "CancellationToken",
    "GenerationDispatcher",
    "HostGenerator",
    "Preset",
    "PresetRegistry",
    "Task",
    "TaskOutcome",
    "TaskQueue",
    "TaskRunner",
]
