"""Shared constants for the stepgraph engine."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone

# New sequences are picked up by the scheduler this long after creation.
DEFAULT_AUTO_EXECUTION_DELAY = timedelta(hours=1)

# Schedule of sequences that have nothing left to do on their own.
NEVER = datetime.max.replace(tzinfo=timezone.utc)

# Distance reported when two steps never converge.
NO_DISTANCE = sys.maxsize

DEFAULT_CONFIG_PATH = "stepgraph.yaml"
DEFAULT_POLL_INTERVAL = 60.0
