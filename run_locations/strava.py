from __future__ import annotations

import sys
import time
from collections import deque
from collections.abc import Callable
from typing import Any

import requests

from .config import Settings

STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
STRAVA_API_BASE = "https://www.strava.com/api/v3"

MAX_RETRIES = 5
BASE_DELAY = 15  # seconds
TOKEN_EXPIRY_MARGIN = 5 * 60  # seconds


class StravaError(RuntimeError):
    pass


class StravaRateLimiter:
    """Client-side budget for Strava's 15-minute and daily request quotas.

    ``acquire`` is called before every API request. It sleeps until the
    oldest request in the 15-minute window ages out when that window is full,
    and raises ``StravaError`` once the daily budget is spent.
    """

    WINDOW_SECONDS = 15 * 60
    DAY_SECONDS = 24 * 60 * 60

    def __init__(
        self,
        window_limit: int = 100,
        daily_limit: int = 1000,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if window_limit < 1 or daily_limit < 1:
            raise ValueError("rate limits must be at least 1")
        self.window_limit = window_limit
        self.daily_limit = daily_limit
        self.clock = clock
        self.sleep = sleep
        self.sent: deque[float] = deque()

    @classmethod
    def from_settings(cls, settings: Settings) -> StravaRateLimiter:
        return cls(window_limit=settings.rate_limit_window, daily_limit=settings.rate_limit_daily)

    def acquire(self) -> None:
        now = self.clock()
        while self.sent and now - self.sent[0] >= self.DAY_SECONDS:
            self.sent.popleft()
        if len(self.sent) >= self.daily_limit:
            raise StravaError(
                f"Daily budget of {self.daily_limit} Strava requests used; retry after the daily window resets."
            )

        in_window = [sent_at for sent_at in self.sent if now - sent_at < self.WINDOW_SECONDS]
        if len(in_window) >= self.window_limit:
            wait = in_window[-self.window_limit] + self.WINDOW_SECONDS - now
            print(
                f"Strava 15-minute budget of {self.window_limit} requests used; sleeping {int(wait) + 1}s.",
                file=sys.stderr,
            )
            self.sleep(wait)
        self.sent.append(self.clock())


class StravaClient:
    """Strava API client that owns its access token.

    ``get_valid_token`` refreshes through the OAuth token endpoint whenever the
    held token is missing or expires within ``TOKEN_EXPIRY_MARGIN`` seconds.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        session: requests.Session | None = None,
        rate_limiter: StravaRateLimiter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter
        self.clock = clock
        self.access_token: str | None = None
        self.expires_at: float = 0.0

    def get_valid_token(self) -> str:
        if self.access_token and self.expires_at > self.clock() + TOKEN_EXPIRY_MARGIN:
            return self.access_token

        response = self.session.post(
            STRAVA_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            timeout=60,
        )
        if response.status_code != 200:
            print(f"Error fetching token: {response.status_code} - {response.text}", file=sys.stderr)
        response.raise_for_status()

        payload = response.json()
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise StravaError("Token response did not include an access_token")

        self.access_token = access_token
        expires_at = payload.get("expires_at")
        if isinstance(expires_at, (int, float)) and not isinstance(expires_at, bool):
            self.expires_at = float(expires_at)
        else:
            self.expires_at = self.clock() + float(payload.get("expires_in") or 0)
        # Strava may rotate the refresh token on every exchange.
        rotated = payload.get("refresh_token")
        if isinstance(rotated, str) and rotated:
            self.refresh_token = rotated
        return access_token

    def request_json(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{STRAVA_API_BASE}{endpoint}"

        for attempt in range(MAX_RETRIES):
            token = self.get_valid_token()
            if self.rate_limiter:
                self.rate_limiter.acquire()

            response = self.session.get(
                url,
                headers={"Authorization": f"Bearer {token}"},
                params=params,
                timeout=30,
            )

            if response.status_code == 429:
                delay = BASE_DELAY * (2**attempt)
                print(f"Rate limited. Waiting {delay}s before retry ({attempt + 1}/{MAX_RETRIES})...")
                time.sleep(delay)
                continue

            if response.status_code >= 400:
                usage = response.headers.get("x-ratelimit-usage")
                usage_text = f" (rate limit usage: {usage})" if usage else ""
                print(
                    f"Request failed ({response.status_code}) for {url}{usage_text}: {response.text}",
                    file=sys.stderr,
                )
                response.raise_for_status()

            return response.json()

        raise StravaError(f"Rate limit exceeded after {MAX_RETRIES} retries. Try again later.")

    def fetch_activities_after(
        self,
        after: int | None,
        per_page: int = 200,
        max_pages: int = 50,
    ) -> list[dict[str, Any]]:
        """Page through ``/athlete/activities`` until an empty page or ``max_pages``."""
        activities: list[dict[str, Any]] = []
        page = 1
        while page <= max_pages:
            params: dict[str, int] = {"page": page, "per_page": per_page}
            if after is not None:
                params["after"] = after

            batch = self.request_json("/athlete/activities", params)
            if not isinstance(batch, list):
                raise StravaError("Unexpected activities response from Strava API")
            if not batch:
                return activities

            activities.extend(activity for activity in batch if isinstance(activity, dict))
            page += 1

        print(
            f"Stopped after {max_pages} pages; raise max_pages to fetch older activities.",
            file=sys.stderr,
        )
        return activities
