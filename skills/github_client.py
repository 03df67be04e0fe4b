from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from schemas.github_ir import CreateRefRequest, GitRef, PullRequest, PullRequestCreate
from workflow.config import WorkflowConfig
from workflow.errors import ExternalCallError

SERVICE = "GitHub"
API_VERSION = "2022-11-28"


class GitHubClient:
    def __init__(
        self,
        token: str,
        repo: str,
        api_url: str = "https://api.github.com",
        web_url: str = "https://github.com",
        timeout_sec: float = 30.0,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.web_url = web_url.rstrip("/")
        self._http = http or httpx.Client(timeout=timeout_sec)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }

    @classmethod
    def from_config(cls, config: WorkflowConfig) -> "GitHubClient":
        return cls(
            token=config.github_token(),
            repo=config.github_repo(),
            api_url=config.github.api_url,
            web_url=config.github.web_url,
            timeout_sec=config.github.timeout_sec,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def branch_url(self, branch: str) -> str:
        return f"{self.web_url}/{self.repo}/tree/{branch}"

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.api_url}/repos/{self.repo}{path}"
        try:
            return self._http.request(method, url, headers=self._headers, json=body, params=params)
        except httpx.HTTPError as exc:
            raise ExternalCallError(SERVICE, f"request failed: {exc}") from exc

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise ExternalCallError(SERVICE, "Invalid JSON response from API", response.text) from exc

    def _error_message(self, response: httpx.Response) -> str:
        data = self._json(response)
        message = data.get("message") if isinstance(data, dict) else None
        return str(message or f"HTTP {response.status_code}")

    def get_branch_head_sha(self, branch: str) -> str:
        response = self._request("GET", f"/git/refs/heads/{branch}")
        if response.status_code >= 400:
            raise ExternalCallError(
                SERVICE,
                f"Failed to get SHA for base branch {branch}: {self._error_message(response)}",
                response.text,
            )
        try:
            ref = GitRef.model_validate(self._json(response))
        except ValidationError as exc:
            raise ExternalCallError(
                SERVICE, f"Failed to get SHA for base branch {branch}", response.text
            ) from exc
        return ref.object.sha

    def create_branch(self, name: str, sha: str) -> bool:
        """Create ``refs/heads/<name>``; returns False if it already existed."""
        request = CreateRefRequest(ref=f"refs/heads/{name}", sha=sha)
        response = self._request("POST", "/git/refs", body=request.model_dump())
        if response.status_code < 400:
            return True
        message = self._error_message(response)
        if "already exists" in message:
            return False
        raise ExternalCallError(SERVICE, f"Failed to create branch: {message}", response.text)

    def create_pull_request(self, title: str, body: str, base: str, head: str) -> PullRequest:
        request = PullRequestCreate(title=title, body=body, base=base, head=head)
        response = self._request("POST", "/pulls", body=request.model_dump())
        if response.status_code >= 400:
            raise ExternalCallError(
                SERVICE,
                f"Failed to create pull request: {self._error_message(response)}",
                response.text,
            )
        try:
            return PullRequest.model_validate(self._json(response))
        except ValidationError as exc:
            raise ExternalCallError(SERVICE, "Unexpected pull request payload", response.text) from exc

    def find_open_pull_request(self, head: str) -> Optional[PullRequest]:
        owner = self.repo.split("/", 1)[0]
        response = self._request(
            "GET", "/pulls", params={"head": f"{owner}:{head}", "state": "open"}
        )
        if response.status_code >= 400:
            raise ExternalCallError(
                SERVICE,
                f"Failed to list pull requests: {self._error_message(response)}",
                response.text,
            )
        data = self._json(response)
        items: List[Any] = data if isinstance(data, list) else []
        for item in items:
            try:
                return PullRequest.model_validate(item)
            except ValidationError:
                continue
        return None
