"""AnswerClient: abstract base for answer-generation backends."""
from abc import ABC, abstractmethod
from dataclasses import dataclass

from src.constants import ANSWER_USER_TEMPLATE, CONTEXT_MAX_WORDS


@dataclass(frozen=True)
class AnswerRequest:
    question: str
    context: str = ""


@dataclass(frozen=True)
class AnswerResponse:
    answer: str


def build_prompt(request: AnswerRequest) -> str:
    context = " ".join(request.context.split()[:CONTEXT_MAX_WORDS])
    return ANSWER_USER_TEMPLATE % (request.question, context)


class AnswerClient(ABC):
    @abstractmethod
    async def answer(self, request: AnswerRequest) -> AnswerResponse:
        """Answer the question using the context. Raises on failure."""
        ...
