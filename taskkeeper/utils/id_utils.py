"""Identifier generation for tasks and subtasks."""

import random
import time

TASK_ID_PREFIX = "tid"
SUB_TASK_ID_PREFIX = "stid"


def generate_unique_id(prefix: str = TASK_ID_PREFIX) -> str:
    """
    Generate an id from the current time in milliseconds plus a random offset.

    The offset is drawn from [0, 1000). Ids are unique enough for a single
    writer creating items at human pace; they are not collision resistant
    under concurrent creation.

    Args:
        prefix: String prepended to the numeric part

    Returns:
        Id string such as ``"tid1718022334123"``
    """
    timestamp_ms = int(time.time() * 1000)
    return f"{prefix}{timestamp_ms + random.randrange(1000)}"
