"""OpenAIAnswerClient: OpenAI-compatible chat answer backend (OpenAI or OpenRouter)."""
from openai import AsyncOpenAI

from src.answer.client import AnswerClient, AnswerRequest, AnswerResponse, build_prompt
from src.constants import (
    ANSWER_MAX_TOKENS,
    ANSWER_SYSTEM_PROMPT,
    ANSWER_TEMPERATURE,
    MSG_NO_ANSWER,
    OPENAI_ANSWER_MODEL,
)


class OpenAIAnswerClient(AnswerClient):

    def __init__(self, api_key: str, model: str | None = None, base_url: str | None = None) -> None:
        self._api_key = api_key
        self._model = model or OPENAI_ANSWER_MODEL
        self._base_url = base_url

    async def answer(self, request: AnswerRequest) -> AnswerResponse:
        client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        response = await client.chat.completions.create(
            model=self._model,
            temperature=ANSWER_TEMPERATURE,
            max_tokens=ANSWER_MAX_TOKENS,
            messages=[
                {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(request)},
            ],
        )
        content = response.choices[0].message.content
        return AnswerResponse(answer=content.strip() if content and content.strip() else MSG_NO_ANSWER)
