"""Runtime state tracked per entity by the synchronization engine."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class EntityRuntimeState:
    """Last published state and availability of one entity.

    The ``*_known`` flags are False until the first successful publish,
    so the first observation is always published.
    """
    last_state: Optional[str] = None
    state_known: bool = False
    last_available: bool = False
    availability_known: bool = False
    last_refresh: Optional[float] = None  # monotonic seconds of last poll attempt

    def state_changed(self, state: str) -> bool:
        """Check whether a state value needs publishing."""
        return not self.state_known or self.last_state != state

    def availability_changed(self, available: bool) -> bool:
        """Check whether an availability value needs publishing."""
        return not self.availability_known or self.last_available != available

    def refresh_due(self, now: float, interval: float) -> bool:
        """Check whether the entity should be polled at ``now``."""
        if not self.state_known or not self.availability_known:
            return True
        if interval <= 0:
            return False
        return self.last_refresh is None or now >= self.last_refresh + interval
