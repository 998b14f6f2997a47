# services/agenda_service.py
import logging
from typing import List, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from app.core.errors import AgendaServiceUnavailable
from app.core.settings import config_settings
from app.models.schemas.study_session import SessionAgenda

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert study coach who creates effective, focused study session "
    "agendas. Provide practical, actionable objectives and challenging practice questions."
)


def build_agenda_prompt(
    course_name: str, topics: List[str], duration: int, exam_date: Optional[str] = None
) -> str:
    lines = [
        f"Generate a comprehensive study session agenda for a {duration}-minute session.",
        "",
        f"Course: {course_name}",
        f"Topics to cover: {', '.join(topics)}",
    ]
    if exam_date:
        lines.append(f"Exam date: {exam_date}")
    lines += [
        "",
        "Please provide:",
        "1. 3-4 clear learning objectives for this session",
        "2. 4-6 practice questions with answers that test understanding of these topics",
        f"3. A time breakdown showing how to allocate the {duration} minutes effectively",
        "",
        "Return the response as a JSON object with this structure:",
        '{"objectives": ["..."], '
        '"practiceQuestions": [{"question": "...", "answer": "..."}], '
        '"timeSchedule": [{"time": "0-15 min", "activity": "..."}]}',
    ]
    return "\n".join(lines)


class AgendaGenerator(Protocol):
    async def generate(
        self, course_name: str, topics: List[str], duration: int
    ) -> SessionAgenda: ...


class OpenAIAgendaGenerator:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else config_settings.OPENAI_API_KEY
        self.model = model or config_settings.AGENDA_MODEL
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise AgendaServiceUnavailable()
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def generate(
        self, course_name: str, topics: List[str], duration: int
    ) -> SessionAgenda:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_agenda_prompt(course_name, topics, duration)},
                ],
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.error("Agenda request failed (model=%s): %s", self.model, e)
            raise AgendaServiceUnavailable() from e

        content = response.choices[0].message.content
        if not content:
            raise AgendaServiceUnavailable("Failed to generate agenda")

        try:
            return SessionAgenda.model_validate_json(content)
        except ValidationError as e:
            logger.error("Agenda response was not usable: %s", e)
            raise AgendaServiceUnavailable("Failed to generate agenda") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
