"""
Progress normalisation for the three phases of a conversion.

Upload bytes, the server-reported percent and download bytes all end up as a
ProgressEvent(step, percent, message). Percent is always None or a float in
[0, 100]. Nothing here touches the network or timers.
"""

import math
from typing import NamedTuple, Optional

from cloudconvert.models import FINISHED_STEP

UPLOAD_STEP = "upload"
DOWNLOAD_STEP = "download"
FINISHED_MESSAGE = "Conversion finished!"

_TRANSFER_VERBS = {
    UPLOAD_STEP: "Uploading",
    DOWNLOAD_STEP: "Downloading",
}


class ProgressEvent(NamedTuple):
    step: Optional[str]
    percent: Optional[float]
    message: Optional[str]


def format_bytes(bytes_value):
    """Format bytes into human-readable string (e.g., '1.5 MB')"""
    if bytes_value is None:
        return None

    if bytes_value == 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB', 'TB']
    unit_index = 0
    size = float(bytes_value)

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    # Format with 1 decimal place for MB and above, no decimals for B and KB
    if unit_index <= 1:
        return f"{int(size)} {units[unit_index]}"
    else:
        return f"{size:.1f} {units[unit_index]}"


def normalize_percent(value) -> Optional[float]:
    """Coerce a raw percent into [0, 100], or None when it is not a usable number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        percent = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(percent):
        return None
    return min(max(percent, 0.0), 100.0)


def transfer_progress(step: str, transferred: int, total: Optional[int]) -> ProgressEvent:
    """
    Progress of an upload or download.

    Args:
        step: UPLOAD_STEP or DOWNLOAD_STEP
        transferred: Bytes sent or received so far
        total: Expected size in bytes; None or <= 0 when unknown

    Returns:
        ProgressEvent: percent is None when the total is unknown
    """
    if total is None or total <= 0:
        percent = None
        total_text = "?"
    else:
        percent = normalize_percent(transferred / total * 100)
        total_text = format_bytes(total)

    verb = _TRANSFER_VERBS.get(step, step.capitalize())
    message = f"{verb} ({format_bytes(transferred)} / {total_text}) ..."
    return ProgressEvent(step, percent, message)


def remote_progress(snapshot) -> ProgressEvent:
    """Progress reported by the server in a status snapshot."""
    return ProgressEvent(snapshot.step, normalize_percent(snapshot.percent), snapshot.message)


def finished_progress() -> ProgressEvent:
    return ProgressEvent(FINISHED_STEP, 100.0, FINISHED_MESSAGE)
