"""Process liveness probe."""

import logging
import os

logger = logging.getLogger(__name__)


def is_alive(pid: int) -> bool:
    """Return True if a process with *pid* exists.

    Sends signal 0, which performs the existence and permission checks without
    delivering anything. Never raises: a missing process is a plain False and
    any other failure is logged and also reported as False, so a lock held by
    an unverifiable owner can be reclaimed.
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except (OSError, OverflowError, ValueError) as e:
        logger.warning("Liveness probe for pid %s failed, assuming dead: %s", pid, e)
        return False
    return True
