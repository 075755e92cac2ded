"""
In-process answer store for ``FillSession``.

Calls the services directly (an app context must be active), so a fill
session can run inside the server process or in tests without HTTP.
"""

from __future__ import annotations

from typing import Any

from vsaq.engine.fill_session import SaveOutcome
from vsaq.services import answer_service, instance_service


class LocalAnswerStore:
    def fetch(self, link: str) -> dict:
        return instance_service.get_for_respondent(link)

    def save(self, link: str, question_id: str, value: Any, client_version: int) -> SaveOutcome:
        return answer_service.save_answer(link, question_id, value, client_version)

    def submit(self, link: str) -> None:
        instance_service.submit_instance(link)
