"""
Health check helpers.

Used by the HTTP receiver's /health endpoint and by the CLI.
"""

import time
from typing import Dict

from ..version import __version__, get_version_info as _get_version_info

# Track process start time
_start_time = time.time()


def get_health_status() -> Dict:
    """
    Get health check status.

    Returns:
        Health status dictionary
    """
    uptime = time.time() - _start_time

    return {
        "status": "healthy",
        "uptime_seconds": round(uptime, 2),
        "service": "pipeline-doctor",
        "version": __version__
    }


def get_version_info() -> Dict:
    """Version information with the API revision."""
    info = _get_version_info()
    info["api_version"] = "v1"
    return info
