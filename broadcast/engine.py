"""
Composite BroadcastEngine assembled from smaller mixins.

Each mixin owns one concern (resolution, checkpointing, the master and feeder
processes, playlist advance, transitions, polling); all of them share the
state declared in ``BaseState`` and serialize on its ``lock``.
"""

from .base_state import BaseState
from .logging_mixin import LoggingMixin
from .resolver_mixin import ResolverMixin
from .checkpoint_mixin import CheckpointMixin
from .master_mixin import MasterMixin
from .feeder_mixin import FeederMixin
from .playlist_mixin import PlaylistMixin
from .control_mixin import ControlMixin
from .poller_mixin import PollerMixin


class BroadcastEngine(
    BaseState,
    LoggingMixin,
    ResolverMixin,
    CheckpointMixin,
    MasterMixin,
    FeederMixin,
    PlaylistMixin,
    ControlMixin,
    PollerMixin,
):
    """Broadcast coordinator: one master encoder, one feeder at a time."""
