from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LinearState(BaseModel):
    id: str = ""
    name: str = ""
    type: str = ""


class LinearTeam(BaseModel):
    key: str = ""


class LinearLabel(BaseModel):
    name: str


class LinearLabelConnection(BaseModel):
    nodes: List[LinearLabel] = Field(default_factory=list)


class LinearIssue(BaseModel):
    # Issue JSON piped on stdin may carry only identifier and title.
    id: str = ""
    identifier: str
    title: str
    description: Optional[str] = None
    state: Optional[LinearState] = None
    team: Optional[LinearTeam] = None
    labels: LinearLabelConnection = Field(default_factory=LinearLabelConnection)

    @property
    def label_names(self) -> List[str]:
        return [label.name for label in self.labels.nodes]


class GraphQLRequest(BaseModel):
    query: str
    variables: Dict[str, Any] = Field(default_factory=dict)


class GraphQLError(BaseModel):
    message: str = ""


class GraphQLResponse(BaseModel):
    data: Optional[Dict[str, Any]] = None
    errors: Optional[List[GraphQLError]] = None


class _CamelInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CommentCreateInput(_CamelInput):
    issue_id: str = Field(alias="issueId")
    body: str


class AttachmentCreateInput(_CamelInput):
    issue_id: str = Field(alias="issueId")
    title: str
    subtitle: str = ""
    url: str
    icon_url: str = Field(default="", alias="iconUrl")


class IssueUpdateInput(_CamelInput):
    state_id: str = Field(alias="stateId")
