"""Linear GraphQL client.

Requests are built from typed models and sent as JSON variables; nothing is
string-interpolated into a query. Any transport failure, non-JSON body,
GraphQL ``errors`` payload or unsuccessful mutation raises
``ExternalCallError`` carrying the raw response. No retries.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from schemas.linear_ir import (
    AttachmentCreateInput,
    CommentCreateInput,
    GraphQLRequest,
    GraphQLResponse,
    IssueUpdateInput,
    LinearIssue,
    LinearState,
)
from workflow.config import WorkflowConfig
from workflow.errors import ExternalCallError

SERVICE = "Linear"

ISSUE_QUERY = (
    "query GetIssue($id: String!) { issue(id: $id) { id identifier title description "
    "state { name id } team { key } labels { nodes { name } } } }"
)
WORKFLOW_STATES_QUERY = "query GetWorkflowStates { workflowStates { nodes { id name type } } }"
ISSUE_UPDATE_MUTATION = (
    "mutation UpdateIssue($id: String!, $input: IssueUpdateInput!) { "
    "issueUpdate(id: $id, input: $input) { success issue { id identifier state { name } } } }"
)
COMMENT_CREATE_MUTATION = (
    "mutation CreateComment($input: CommentCreateInput!) { "
    "commentCreate(input: $input) { success comment { id } } }"
)
ATTACHMENT_CREATE_MUTATION = (
    "mutation CreateAttachment($input: AttachmentCreateInput!) { "
    "attachmentCreate(input: $input) { success attachment { id } } }"
)


def find_done_state(states: List[LinearState], name: str = "Done") -> Optional[LinearState]:
    for state in states:
        if state.name == name or state.type == "completed":
            return state
    return None


class LinearClient:
    def __init__(
        self,
        token: str,
        api_url: str = "https://api.linear.app/graphql",
        timeout_sec: float = 30.0,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.api_url = api_url
        self._http = http or httpx.Client(timeout=timeout_sec)
        self._headers = {"Authorization": token, "Content-Type": "application/json"}

    @classmethod
    def from_config(cls, config: WorkflowConfig) -> "LinearClient":
        return cls(
            token=config.linear_token(),
            api_url=config.linear.api_url,
            timeout_sec=config.linear.timeout_sec,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "LinearClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        request = GraphQLRequest(query=query, variables=variables or {})
        try:
            response = self._http.post(
                self.api_url,
                headers=self._headers,
                json=request.model_dump(),
            )
        except httpx.HTTPError as exc:
            raise ExternalCallError(SERVICE, f"request failed: {exc}") from exc
        raw = response.text
        try:
            payload = GraphQLResponse.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ExternalCallError(SERVICE, "Invalid JSON response from API", raw) from exc
        if payload.errors:
            raise ExternalCallError(SERVICE, f"API error: {payload.errors[0].message}", raw)
        if response.status_code >= 400:
            raise ExternalCallError(SERVICE, f"HTTP {response.status_code}", raw)
        if payload.data is None:
            raise ExternalCallError(SERVICE, "response has no data", raw)
        return payload.data

    def fetch_issue(self, issue_id: str) -> Optional[LinearIssue]:
        data = self.execute(ISSUE_QUERY, {"id": issue_id})
        issue = data.get("issue")
        if issue is None:
            return None
        try:
            return LinearIssue.model_validate(issue)
        except ValidationError as exc:
            raise ExternalCallError(SERVICE, "Invalid issue data received", json.dumps(issue)) from exc

    def list_workflow_states(self) -> List[LinearState]:
        data = self.execute(WORKFLOW_STATES_QUERY)
        nodes = (data.get("workflowStates") or {}).get("nodes") or []
        return [LinearState.model_validate(node) for node in nodes if isinstance(node, dict)]

    def update_issue_state(self, issue_id: str, state_id: str) -> None:
        data = self.execute(
            ISSUE_UPDATE_MUTATION,
            {
                "id": issue_id,
                "input": IssueUpdateInput(state_id=state_id).model_dump(by_alias=True),
            },
        )
        result = data.get("issueUpdate") or {}
        if not result.get("success"):
            raise ExternalCallError(SERVICE, "issueUpdate was not successful", json.dumps(data))

    def create_comment(self, issue_id: str, body: str) -> str:
        payload = CommentCreateInput(issue_id=issue_id, body=body)
        data = self.execute(COMMENT_CREATE_MUTATION, {"input": payload.model_dump(by_alias=True)})
        return self._created_id(data, "commentCreate", "comment")

    def create_attachment(
        self,
        issue_id: str,
        title: str,
        subtitle: str,
        url: str,
        icon_url: str = "",
    ) -> str:
        payload = AttachmentCreateInput(
            issue_id=issue_id,
            title=title,
            subtitle=subtitle,
            url=url,
            icon_url=icon_url,
        )
        data = self.execute(
            ATTACHMENT_CREATE_MUTATION, {"input": payload.model_dump(by_alias=True)}
        )
        return self._created_id(data, "attachmentCreate", "attachment")

    def _created_id(self, data: Dict[str, Any], operation: str, entity: str) -> str:
        result = data.get(operation) or {}
        created = result.get(entity) or {}
        created_id = created.get("id") if isinstance(created, dict) else None
        if not result.get("success") or not created_id:
            raise ExternalCallError(
                SERVICE, f"{operation} failed - success: {result.get('success')}", json.dumps(data)
            )
        return str(created_id)
