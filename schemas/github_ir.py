from __future__ import annotations

from pydantic import BaseModel


class GitRefObject(BaseModel):
    sha: str
    type: str = ""


class GitRef(BaseModel):
    ref: str
    object: GitRefObject


class CreateRefRequest(BaseModel):
    ref: str
    sha: str


class PullRequestCreate(BaseModel):
    title: str
    body: str
    base: str
    head: str


class PullRequest(BaseModel):
    number: int
    html_url: str
    title: str = ""
    state: str = ""
