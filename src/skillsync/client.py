from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable
from urllib.parse import quote

import httpx

from .config import DEFAULT_API_URL, DEFAULT_GITHUB_API_URL, DEFAULT_TIMEOUT_S
from .errors import SkillsyncError, SkillsyncHTTPError

logger = logging.getLogger(__name__)

DEFAULT_BRANCHES = ("main", "master")


@dataclass(frozen=True)
class UpdateCheckItem:
    name: str
    source: str
    skill_folder_hash: str
    path: str | None = None

    def to_json(self) -> dict[str, Any]:
        item: dict[str, Any] = {"name": self.name, "source": self.source, "skillFolderHash": self.skill_folder_hash}
        if self.path:
            item["path"] = self.path
        return item


@dataclass(frozen=True)
class RemoteUpdate:
    name: str
    source: str
    current_hash: str
    latest_hash: str


@dataclass(frozen=True)
class UpdateCheckResponse:
    updates: tuple[RemoteUpdate, ...]
    errors: tuple[tuple[str, str], ...]  # (skill name, message)


def _parse_update(raw: Any) -> RemoteUpdate | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
        return None
    return RemoteUpdate(
        name=raw["name"],
        source=str(raw.get("source", "")),
        current_hash=str(raw.get("currentHash", "")),
        latest_hash=str(raw.get("latestHash", "")),
    )


def _folder_from_skill_path(skill_path: str) -> str:
    folder = skill_path.replace("\\", "/")
    if folder.endswith("SKILL.md"):
        folder = folder[: -len("SKILL.md")]
    return folder.strip("/")


class SkillsyncClient:
    """
    HTTP side of the update protocol: the hash-comparison endpoint and GitHub tree lookups.
    """

    def __init__(
        self,
        *,
        api_url: str = DEFAULT_API_URL,
        github_api_url: str = DEFAULT_GITHUB_API_URL,
        github_token: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.github_api_url = github_api_url.rstrip("/")
        self.github_token = github_token
        self.timeout_s = timeout_s
        self._default_headers = dict(default_headers or {})

        self._http = httpx.Client(timeout=timeout_s, follow_redirects=True)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "SkillsyncClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def request(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        req_headers = dict(self._default_headers)
        if headers:
            req_headers.update(headers)
        try:
            resp = self._http.request(method.upper(), url, params=params, json=json_body, headers=req_headers)
        except httpx.HTTPError as e:
            raise SkillsyncError(f"Request failed: {e}") from e

        if resp.status_code >= 400:
            raise SkillsyncHTTPError(resp.status_code, resp.text)
        return resp

    def check_updates(self, items: Iterable[UpdateCheckItem], *, force_refresh: bool = True) -> UpdateCheckResponse:
        """
        Ask the server which skills have a different upstream folder hash than the recorded one.

        `force_refresh` makes the server recompute upstream hashes instead of answering from its cache.
        One request per call, no retries.
        """
        payload = {"skills": [i.to_json() for i in items], "forceRefresh": force_refresh}
        resp = self.request(method="POST", url=f"{self.api_url}/check-updates", json_body=payload)
        try:
            data = resp.json()
        except ValueError as e:
            raise SkillsyncError(f"Invalid update check response: {e}") from e
        if not isinstance(data, dict):
            raise SkillsyncError("Invalid update check response: expected a JSON object")

        updates: list[RemoteUpdate] = []
        updates_raw = data.get("updates")
        if isinstance(updates_raw, list):
            for raw in updates_raw:
                update = _parse_update(raw)
                if update is not None:
                    updates.append(update)
        errors: list[tuple[str, str]] = []
        errors_raw = data.get("errors")
        if isinstance(errors_raw, list):
            for err in errors_raw:
                if isinstance(err, dict) and isinstance(err.get("name"), str):
                    errors.append((err["name"], str(err.get("error", "unknown error"))))
        return UpdateCheckResponse(updates=tuple(updates), errors=tuple(errors))

    def fetch_skill_folder_hash(
        self, owner_repo: str, skill_path: str, *, branches: Iterable[str] = DEFAULT_BRANCHES
    ) -> str | None:
        """
        Git tree SHA of the folder holding a skill in a GitHub repository, or None if it cannot be found.
        """
        folder = _folder_from_skill_path(skill_path)
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"

        owner, _, repo = owner_repo.partition("/")
        for branch in branches:
            url = (
                f"{self.github_api_url}/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"
                f"/git/trees/{quote(branch, safe='')}"
            )
            try:
                resp = self.request(method="GET", url=url, params={"recursive": "1"}, headers=headers)
                data = resp.json()
            except (SkillsyncError, ValueError) as e:
                logger.debug("tree lookup for %s@%s failed: %s", owner_repo, branch, e)
                continue
            if not isinstance(data, dict):
                continue
            if not folder:
                sha = data.get("sha")
                return sha if isinstance(sha, str) else None
            tree = data.get("tree")
            if not isinstance(tree, list):
                continue
            for entry in tree:
                if isinstance(entry, dict) and entry.get("type") == "tree" and entry.get("path") == folder:
                    sha = entry.get("sha")
                    if isinstance(sha, str):
                        return sha
        return None
