"""YouTube Data API v3 client for resolving channels and fetching uploads."""

import logging
import re
from typing import Any

import httpx

from kiddos.errors import (
    ChannelNotFound,
    InvalidIdentifier,
    NotConfigured,
    QuotaExceeded,
    UpstreamError,
)
from kiddos.youtube.models import ChannelInfo, VideoInfo

logger = logging.getLogger(__name__)

CHANNEL_ID_PATTERN = re.compile(r"^UC[\w-]{21}[AQgw]$")

_URL_PATTERNS = [
    (re.compile(r"youtube\.com/channel/(UC[\w-]{21}[AQgw])"), "id"),
    (re.compile(r"youtube\.com/@([\w.-]+)"), "handle"),
    (re.compile(r"youtube\.com/c/([\w-]+)"), "username"),
    (re.compile(r"youtube\.com/user/([\w-]+)"), "username"),
]

# Query parameter used by the channels endpoint for each identifier kind
_LOOKUP_PARAMS = {"id": "id", "handle": "forHandle", "username": "forUsername"}

MAX_RESULTS_LIMIT = 50


def parse_channel_input(text: str) -> tuple[str, str]:
    """Classify user input as a channel id, handle or legacy username.

    Accepts a raw ``UC...`` id, an ``@handle``, or a youtube.com channel URL.

    Returns:
        Tuple of (kind, value) where kind is "id", "handle" or "username"

    Raises:
        InvalidIdentifier: If the input matches none of the accepted forms
    """
    text = text.strip()

    if CHANNEL_ID_PATTERN.match(text):
        return "id", text

    if text.startswith("@") and len(text) > 1:
        return "handle", text[1:]

    for pattern, kind in _URL_PATTERNS:
        if match := pattern.search(text):
            return kind, match.group(1)

    raise InvalidIdentifier(
        "Invalid YouTube channel format. Use channel ID, @handle, or valid YouTube URL"
    )


def _best_thumbnail(thumbnails: dict[str, Any]) -> str | None:
    """Pick the largest available thumbnail URL."""
    for size in ("maxres", "high", "medium", "default"):
        if url := thumbnails.get(size, {}).get("url"):
            return url
    return None


def _count(value: Any) -> int:
    """Parse a statistics counter, which the API returns as a string."""
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


class YouTubeClient:
    """Client for the parts of YouTube Data API v3 the catalog needs.

    Every failure is translated into the catalog error taxonomy: HTTP 403
    becomes QuotaExceeded, everything else UpstreamError (or
    ChannelNotFound / InvalidIdentifier for channel lookups).
    """

    BASE = "https://www.googleapis.com/youtube/v3"

    def __init__(self, api_key: str, timeout: float = 15.0):
        """Initialize the client.

        Args:
            api_key: YouTube Data API key
            timeout: Per-request timeout in seconds
        """
        self._api_key = api_key
        self._timeout = timeout

    async def _get(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Issue a GET against the API and return the decoded body."""
        if not self._api_key:
            raise NotConfigured()

        try:
            r = await client.get(
                f"{self.BASE}/{endpoint}", params={**params, "key": self._api_key}
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"YouTube API request failed: {exc}") from exc

        if r.status_code == 403:
            raise QuotaExceeded("YouTube API quota exceeded")
        if r.status_code == 400:
            raise InvalidIdentifier("Invalid channel identifier")

        try:
            r.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"YouTube API returned HTTP {r.status_code} for {endpoint}"
            ) from exc

        return r.json()

    async def fetch_channel_info(self, identifier: str) -> ChannelInfo:
        """Resolve a channel id, handle or URL to its channel attributes.

        Raises:
            InvalidIdentifier: If the identifier cannot be parsed or is rejected
            ChannelNotFound: If YouTube has no matching channel
            QuotaExceeded: If the API quota is exhausted
            UpstreamError: For any other API failure
        """
        kind, value = parse_channel_input(identifier)
        params = {
            "part": "snippet,statistics,contentDetails",
            _LOOKUP_PARAMS[kind]: value,
        }

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            data = await self._get(client, "channels", params)

        items = data.get("items") or []
        if not items:
            raise ChannelNotFound("Channel not found on YouTube")

        channel = items[0]
        snippet = channel.get("snippet", {})
        statistics = channel.get("statistics", {})
        try:
            uploads = channel["contentDetails"]["relatedPlaylists"]["uploads"]
        except KeyError as exc:
            raise UpstreamError("Channel has no uploads playlist") from exc

        return ChannelInfo(
            id=channel["id"],
            name=snippet.get("title", ""),
            custom_url=snippet.get("customUrl") or None,
            thumbnail_url=_best_thumbnail(snippet.get("thumbnails", {})),
            description=snippet.get("description", ""),
            subscriber_count=_count(statistics.get("subscriberCount")),
            video_count=_count(statistics.get("videoCount")),
            uploads_playlist_id=uploads,
        )

    async def fetch_videos(
        self, playlist_id: str, max_results: int = MAX_RESULTS_LIMIT
    ) -> list[VideoInfo]:
        """Fetch the most recent uploads of a playlist with full details.

        Two calls are made: playlistItems for the video ids, then videos for
        snippet, statistics and duration of those ids.

        Args:
            playlist_id: The channel's uploads playlist id
            max_results: Number of uploads to fetch (1-50)

        Raises:
            QuotaExceeded: If the API quota is exhausted
            UpstreamError: For any other API failure
        """
        max_results = min(max(max_results, 1), MAX_RESULTS_LIMIT)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                playlist = await self._get(
                    client,
                    "playlistItems",
                    {
                        "part": "contentDetails",
                        "playlistId": playlist_id,
                        "maxResults": max_results,
                    },
                )
            except InvalidIdentifier as exc:
                raise UpstreamError(f"Invalid playlist id: {playlist_id}") from exc

            video_ids = [
                it["contentDetails"]["videoId"]
                for it in playlist.get("items", [])
                if it.get("contentDetails", {}).get("videoId")
            ]
            if not video_ids:
                return []

            try:
                data = await self._get(
                    client,
                    "videos",
                    {
                        "part": "snippet,statistics,contentDetails",
                        "id": ",".join(video_ids),
                    },
                )
            except InvalidIdentifier as exc:
                raise UpstreamError("YouTube API rejected video lookup") from exc

        videos: list[VideoInfo] = []
        for it in data.get("items", []):
            snippet = it.get("snippet", {})
            statistics = it.get("statistics", {})
            try:
                videos.append(
                    VideoInfo(
                        id=it["id"],
                        title=snippet["title"],
                        description=snippet.get("description", ""),
                        thumbnail_url=_best_thumbnail(snippet.get("thumbnails", {})),
                        published_at=snippet["publishedAt"],
                        view_count=_count(statistics.get("viewCount")),
                        like_count=_count(statistics.get("likeCount")),
                        duration=it.get("contentDetails", {}).get("duration", ""),
                    )
                )
            except (KeyError, ValueError):
                # Skip malformed entries
                logger.warning(f"Skipping malformed video entry in playlist {playlist_id}")
                continue

        return videos
