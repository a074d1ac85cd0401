"""GitHub contribution-calendar fetcher.

Queries the GraphQL API for a user's contribution calendar (roughly the last
year, grouped into weeks of days) and flattens it into an ActivityCalendar.
The streak itself is derived by services.streaks.calculate_streak.

SCALABILITY:
- Circuit breaker fails fast when GitHub is unavailable (5 failures -> 60s)
- A GITHUB_TOKEN raises the GraphQL rate limit; without one GitHub may
  answer 401 for the GraphQL endpoint
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any

import httpx
from circuitbreaker import CircuitBreaker
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core import get_logger
from services.streaks import ActivityCalendar, calculate_streak
from services.upstream import (
    FetchError,
    UpstreamNoDataError,
    UpstreamNotFoundError,
    UpstreamProtocolError,
    call_upstream,
    new_circuit_breaker,
    raise_for_status,
)

logger = get_logger(__name__)

SOURCE = "github"
USER_AGENT = "StreakWidget/1.0"

CONTRIBUTION_CALENDAR_QUERY = """query($login: String!) {
  user(login: $login) {
    contributionsCollection {
      contributionCalendar {
        weeks {
          contributionDays {
            date
            contributionCount
          }
        }
      }
    }
  }
}"""


class _GraphQLModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ContributionDay(_GraphQLModel):
    day: str | None = Field(default=None, alias="date")
    count: int | None = Field(default=None, alias="contributionCount")


class ContributionWeek(_GraphQLModel):
    days: list[ContributionDay] | None = Field(default=None, alias="contributionDays")


class ContributionCalendar(_GraphQLModel):
    weeks: list[ContributionWeek] | None = None


class ContributionsCollection(_GraphQLModel):
    calendar: ContributionCalendar | None = Field(
        default=None, alias="contributionCalendar"
    )


class GraphQLUser(_GraphQLModel):
    contributions: ContributionsCollection | None = Field(
        default=None, alias="contributionsCollection"
    )


class GraphQLData(_GraphQLModel):
    user: GraphQLUser | None = None


class GraphQLError(_GraphQLModel):
    message: str = ""
    type: str | None = None


class GraphQLResponse(_GraphQLModel):
    data: GraphQLData | None = None
    errors: list[GraphQLError] | None = None


def utc_today() -> date:
    return datetime.now(UTC).date()


def flatten_calendar(calendar: ContributionCalendar | None) -> dict[date, bool]:
    """Flatten weeks of days into a day -> active mapping.

    Days without a parseable date or count are left out (unknown). Days may
    arrive in any order; a repeated date is active if any copy is.
    """
    flat: dict[date, bool] = {}
    if calendar is None:
        return flat

    for week in calendar.weeks or []:
        for day in week.days or []:
            if day.day is None or day.count is None:
                continue
            try:
                parsed = date.fromisoformat(day.day)
            except ValueError:
                continue
            flat[parsed] = flat.get(parsed, False) or day.count > 0
    return flat


class GitHubCalendarClient:
    """Fetches contribution calendars from the GitHub GraphQL API."""

    source = SOURCE

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        graphql_url: str,
        token: str = "",
        today: Callable[[], date] = utc_today,
        breaker: CircuitBreaker | None = None,
    ):
        self._http_client = http_client
        self._graphql_url = graphql_url
        self._token = token.strip()
        self._today = today
        self._breaker = breaker or new_circuit_breaker("github_graphql_circuit")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _post_query(self, login: str) -> httpx.Response:
        payload = {
            "query": CONTRIBUTION_CALENDAR_QUERY,
            "variables": {"login": login},
        }
        response = await self._http_client.post(
            self._graphql_url, json=payload, headers=self._headers()
        )
        raise_for_status(response, SOURCE)
        return response

    async def fetch_calendar(self, login: str) -> ActivityCalendar:
        """Fetch the contribution calendar for ``login``.

        Raises:
            FetchError: One of its subclasses, see services.upstream.
        """
        try:
            response = await call_upstream(
                self._breaker, SOURCE, lambda: self._post_query(login)
            )
            calendar = _parse_calendar(response, login)
        except FetchError as e:
            logger.warning(
                "github.fetch.failed",
                subject=login,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        logger.debug("github.fetch.ok", subject=login, days=len(calendar))
        return calendar

    async def fetch_streak(self, login: str) -> int:
        calendar = await self.fetch_calendar(login)
        return calculate_streak(calendar, self._today())


def _parse_calendar(response: httpx.Response, login: str) -> dict[date, bool]:
    try:
        body: Any = response.json()
    except ValueError as e:
        raise UpstreamProtocolError(
            "GitHub returned a response that is not JSON", source=SOURCE
        ) from e

    try:
        parsed = GraphQLResponse.model_validate(body)
    except ValidationError as e:
        raise UpstreamProtocolError(
            "GitHub returned an unexpected response shape", source=SOURCE
        ) from e

    if parsed.errors:
        first = parsed.errors[0]
        if first.type == "NOT_FOUND":
            raise UpstreamNotFoundError(
                f"GitHub user not found: {login}", source=SOURCE
            )
        raise UpstreamProtocolError(
            f"GitHub GraphQL error: {first.message}", source=SOURCE
        )

    if parsed.data is None:
        raise UpstreamProtocolError("GitHub response has no data", source=SOURCE)
    if parsed.data.user is None:
        raise UpstreamNotFoundError(f"GitHub user not found: {login}", source=SOURCE)

    contributions = parsed.data.user.contributions
    calendar = flatten_calendar(contributions.calendar if contributions else None)
    if not calendar:
        raise UpstreamNoDataError(
            f"No contribution data returned for user: {login}", source=SOURCE
        )
    return calendar
