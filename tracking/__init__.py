"""
Tracking Module
Per-subject head pose sessions and the registry that owns them

Modules:
- tracking_session: One skeleton bound to one pose estimator
- session_registry: Session lifecycle, format invalidation, pose forwarding
"""

from .tracking_session import TrackingSession

from .session_registry import (
    SessionRegistry,
    DEFAULT_MAX_MISSED_FRAMES
)

# Export all
__all__ = [
    'TrackingSession',
    'SessionRegistry',
    'DEFAULT_MAX_MISSED_FRAMES',
]
