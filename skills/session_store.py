from __future__ import annotations

import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from schemas.session_ir import (
    ABTestRef,
    ProjectContext,
    PromptInfo,
    ResponseQuality,
    SessionOutcome,
    SessionRecord,
)
from skills.storage import JsonDirectoryBackend, RecordBackend


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_session_id(now: Optional[datetime] = None) -> str:
    # Uniqueness is advisory: second resolution plus a random suffix.
    now = now or datetime.now(timezone.utc)
    return f"{now.strftime('%Y%m%d_%H%M%S')}_{secrets.token_hex(4)}"


class SessionStore:
    """Owns SessionRecords; nothing else writes them."""

    def __init__(self, backend: RecordBackend) -> None:
        self.backend = backend

    @classmethod
    def from_dir(cls, path: Path) -> "SessionStore":
        return cls(JsonDirectoryBackend(path))

    def create(
        self,
        issue_id: str,
        issue_type: str,
        prompt_text: str,
        template_name: str,
        project_context: Optional[ProjectContext] = None,
        ab_test: Optional[ABTestRef] = None,
        modifications: Optional[str] = None,
    ) -> str:
        context = project_context or ProjectContext()
        if not context.timestamp:
            context = context.model_copy(update={"timestamp": _iso_now()})
        record = SessionRecord(
            session_id=generate_session_id(),
            issue_id=issue_id,
            issue_type=issue_type,
            project_context=context,
            prompt=PromptInfo(
                original=prompt_text,
                modifications=modifications,
                template_used=template_name,
            ),
            ab_test=ab_test,
        )
        # OSError from an unwritable store propagates to the caller.
        self.backend.put(record.session_id, record.model_dump(mode="json"))
        return record.session_id

    def get(self, session_id: str) -> Optional[SessionRecord]:
        try:
            data = self.backend.get(session_id)
        except ValueError:
            return None
        if data is None:
            return None
        try:
            return SessionRecord.model_validate(data)
        except ValidationError:
            return None

    def record_outcome(
        self,
        session_id: str,
        success_rate: Optional[float],
        satisfaction: Optional[float],
        completed: Optional[bool],
        files_modified: Optional[int] = None,
    ) -> Optional[SessionRecord]:
        """Fill quality/outcome and mark the session completed.

        Unknown session IDs are a no-op returning None. Repeated calls
        overwrite the previous rating.
        """
        record = self.get(session_id)
        if record is None:
            return None
        updated = record.model_copy(
            update={
                "response_quality": ResponseQuality(
                    success_rate=success_rate, user_satisfaction=satisfaction
                ),
                "outcome": SessionOutcome(task_completed=completed, files_modified=files_modified),
                "status": "completed",
            }
        )
        self.backend.put(session_id, updated.model_dump(mode="json"))
        return updated

    def all(self) -> List[SessionRecord]:
        records: List[SessionRecord] = []
        for data in self.backend.scan_all():
            try:
                records.append(SessionRecord.model_validate(data))
            except ValidationError:
                continue
        return records

    def count(self) -> int:
        return len(self.backend.keys())
