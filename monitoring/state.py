"""
============================================================================
STATUS MONITOR - RUNTIME STATE
============================================================================
Per-service failure bookkeeping kept in memory by the scheduler.

One down notification and one up notification per failure episode:

    failure → counter += 1; if counter > retry_count and not notified_down
              → notified_down = True, emit DOWN
    success → counter = 0;  if notified_down
              → notified_down = False, emit UP

The state is not durable. A restart forgets the current streak and the
next failure episode notifies again.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from dataclasses import dataclass
from typing import Optional

from config.constants import TransitionType


@dataclass
class ServiceRuntimeState:
    """
    Bookkeeping for one scheduled service.

    Attributes
    ----------
    last_success : Optional[bool]
        Outcome of the latest cycle; None before the first check.
    consecutive_failures : int
        Length of the current failure streak.
    notified_down : bool
        True while a down notification is outstanding.
    """
    last_success: Optional[bool] = None
    consecutive_failures: int = 0
    notified_down: bool = False

    def apply(self, success: bool, retry_count: int) -> TransitionType:
        """
        Fold one check outcome into the state.

        Parameters
        ----------
        success : bool
            Outcome of the cycle's final probe.
        retry_count : int
            Number of consecutive failures tolerated before notifying.

        Returns
        -------
        TransitionType
            DOWN or UP when a notification episode must fire, else NONE.
        """
        self.last_success = success

        if success:
            self.consecutive_failures = 0
            if self.notified_down:
                self.notified_down = False
                return TransitionType.UP
            return TransitionType.NONE

        self.consecutive_failures += 1
        if self.consecutive_failures > retry_count and not self.notified_down:
            self.notified_down = True
            return TransitionType.DOWN
        return TransitionType.NONE
