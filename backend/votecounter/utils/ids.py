"""
VoteCounter Session ID Utilities
Generate unique identifiers for opened snapshots.
"""
import uuid
from datetime import datetime


def generate_snapshot_id(prefix: str = "snap") -> str:
    """
    Generate a unique snapshot session ID.

    Args:
        prefix: Leading tag of the identifier

    Returns:
        Unique ID string such as ``snap-20240101120000-1a2b3c4d``
    """
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    short_uuid = str(uuid.uuid4())[:8]
    return f"{prefix}-{timestamp}-{short_uuid}"
