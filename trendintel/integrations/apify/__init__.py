"""
Apify integration: HTTP client plus the video-source adapters built on it.
"""

from trendintel.integrations.apify.client import (
    ApifyClient,
    ApifyError,
    ApifyTimeoutError,
    RunInfo,
)
from trendintel.integrations.apify.video_source import (
    ApifyVideoSource,
    StaticVideoSource,
    VideoFilter,
    VideoSource,
)

__all__ = [
    "ApifyClient",
    "ApifyError",
    "ApifyTimeoutError",
    "ApifyVideoSource",
    "RunInfo",
    "StaticVideoSource",
    "VideoFilter",
    "VideoSource",
]
