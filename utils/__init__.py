"""
Utility modules for the command assistant.
"""
from .event_logger import EventLogger, TaskEvent, TaskEventType
from .sanitizer import sanitize_text, find_selector_injections, find_sensitive_data

__all__ = [
    "EventLogger",
    "TaskEvent",
    "TaskEventType",
    "sanitize_text",
    "find_selector_injections",
    "find_sensitive_data",
]
