"""ClaudeAnswerClient: Anthropic Claude answer backend."""
from anthropic import AsyncAnthropic

from src.answer.client import AnswerClient, AnswerRequest, AnswerResponse, build_prompt
from src.constants import (
    ANSWER_MAX_TOKENS,
    ANSWER_SYSTEM_PROMPT,
    ANSWER_TEMPERATURE,
    CLAUDE_ANSWER_MODEL,
    MSG_NO_ANSWER,
)


class ClaudeAnswerClient(AnswerClient):

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self._api_key = api_key
        self._model = model or CLAUDE_ANSWER_MODEL

    async def answer(self, request: AnswerRequest) -> AnswerResponse:
        client = AsyncAnthropic(api_key=self._api_key)
        message = await client.messages.create(
            model=self._model,
            max_tokens=ANSWER_MAX_TOKENS,
            temperature=ANSWER_TEMPERATURE,
            system=ANSWER_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": build_prompt(request)}],
        )
        text = message.content[0].text if message.content else ""
        return AnswerResponse(answer=text.strip() or MSG_NO_ANSWER)
