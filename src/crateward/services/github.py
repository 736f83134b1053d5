"""GitHub API client — OAuth login and team membership.

Everything GitHub-facing lives here:
- OAuth web flow: authorize URL → code exchange → GET /user
- Team membership checks used by the rights resolver

Transport failures and unreadable responses surface as
DependencyFailure: an answer we could not get from GitHub is never
read as "no".
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from crateward.auth.rights import Team, TeamDirectory
from crateward.config import settings
from crateward.db.models import User
from crateward.errors import DependencyFailure, Forbidden

logger = structlog.get_logger()


@dataclass
class GitHubUser:
    """The subset of GitHub's /user payload we reconcile."""

    id: int
    login: str
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class GitHubClient:
    """Thin async client over the GitHub REST and OAuth endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        api_url: str = "https://api.github.com",
        oauth_url: str = "https://github.com/login/oauth",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_url = api_url.rstrip("/")
        self.oauth_url = oauth_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    @staticmethod
    def _auth_headers(access_token: str) -> dict:
        return {
            "Authorization": f"token {access_token}",
            "Accept": "application/vnd.github+json",
        }

    # ─── OAuth ─────────────────────────────────────────────

    def authorize_url(self, state: str) -> str:
        url = httpx.URL(
            f"{self.oauth_url}/authorize",
            params={"client_id": self.client_id, "state": state, "scope": "read:org"},
        )
        return str(url)

    async def exchange_code(self, code: str) -> str:
        """Trade an OAuth callback code for the user's access token."""
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.oauth_url}/access_token",
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                    },
                    headers={"Accept": "application/json"},
                )
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("github.exchange_failed", error=str(e))
            raise DependencyFailure("Error contacting GitHub") from e

        access_token = payload.get("access_token")
        if not access_token:
            # GitHub answers 200 with an "error" field for bad or reused codes
            raise Forbidden(f"invalid GitHub authorization code: {payload.get('error')}")
        return access_token

    async def fetch_user(self, access_token: str) -> GitHubUser:
        try:
            async with self._client() as client:
                resp = await client.get(
                    f"{self.api_url}/user", headers=self._auth_headers(access_token)
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("github.fetch_user_failed", error=str(e))
            raise DependencyFailure("Error contacting GitHub") from e

        return GitHubUser(
            id=data["id"],
            login=data["login"],
            name=data.get("name"),
            email=data.get("email"),
            avatar_url=data.get("avatar_url"),
        )

    # ─── Teams ─────────────────────────────────────────────

    async def team_membership_state(
        self, team_github_id: int, login: str, access_token: str
    ) -> Optional[str]:
        """Return the membership state ("active", "pending") or None if not a member."""
        url = f"{self.api_url}/teams/{team_github_id}/memberships/{login}"
        try:
            async with self._client() as client:
                resp = await client.get(url, headers=self._auth_headers(access_token))
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                return resp.json().get("state")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "github.team_membership_failed",
                team_id=team_github_id,
                login=login,
                error=str(e),
            )
            raise DependencyFailure("Error checking team membership with GitHub") from e


class GitHubTeamDirectory(TeamDirectory):
    """Team membership answered by GitHub, using the user's own token."""

    def __init__(self, github: GitHubClient):
        self.github = github

    async def is_member(self, team: Team, user: User) -> bool:
        state = await self.github.team_membership_state(
            team.github_id, user.gh_login, user.gh_access_token
        )
        return state == "active"


def get_github() -> GitHubClient:
    """FastAPI dependency — GitHub client built from settings."""
    return GitHubClient(
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        api_url=settings.github_api_url,
        oauth_url=settings.github_oauth_url,
        timeout=settings.github_timeout_seconds,
    )


def get_team_directory() -> TeamDirectory:
    """FastAPI dependency — where team membership questions go."""
    return GitHubTeamDirectory(get_github())
