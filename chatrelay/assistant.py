import base64
from dataclasses import dataclass
from typing import List, Optional

import httpx
import statsd
from loguru import logger
from openai import AsyncOpenAI

SYSTEM_INSTRUCTION = (
    "You are an extremely concise, professional assistant. For general, non-code questions "
    "(e.g., questions about history, science, impact), respond using **only** clean, standard "
    "markdown paragraphs and lists (e.g., bullet points or numbered lists). **STRICTLY** avoid "
    "generating JSON, Python list structures, or any complex, unnecessary formatting. ONLY use "
    "code blocks (```language ... ```) when the user explicitly asks for code."
)


@dataclass
class Attachment:
    data: bytes
    mime_type: str

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass
class ChatMessage:
    text: str
    attachment: Optional[Attachment] = None

    def to_content(self):
        if self.attachment is None:
            return self.text
        return [
            {"type": "text", "text": self.text},
            {"type": "image_url", "image_url": {"url": self.attachment.to_data_url()}},
        ]


class LLMAssistant:
    """
    A per-user conversation with the AI service.

    The assistant keeps the running message list so every request carries the
    whole conversation. A user/assistant pair is only appended once the service
    produced a non-empty answer, a failed or blank attempt leaves the history
    untouched so it can be retried.
    """

    def __init__(
        self,
        user_id: int,
        model: str,
        max_output_tokens: int,
        system_instruction: str = SYSTEM_INSTRUCTION,
        metrics: Optional[statsd.StatsClient] = None,
    ):
        self.user_id = user_id
        self.model_version = model
        self.max_output_tokens = max_output_tokens
        self.system_instruction = system_instruction
        self.metrics = metrics
        self.messages: List[dict] = [{"role": "system", "content": system_instruction}]

    # this method should be overriden in the implementation
    async def get_completion(self, messages: List[dict]) -> str:
        return ""

    async def send_message(self, message: ChatMessage) -> str:
        user_message = {"role": "user", "content": message.to_content()}

        completion = await self.get_completion(self.messages + [user_message])

        if completion and completion.strip():
            self.messages += [
                user_message,
                {"role": "assistant", "content": completion},
            ]
        return completion


# stands in for an unset key so the client can be built, the provider rejects it per request
MISSING_API_KEY = "missing-api-key"


def create_openai_client(api_key: str, base_url: str, http_client: Optional[httpx.AsyncClient] = None) -> AsyncOpenAI:
    if not api_key:
        logger.warning("No AI service API key configured, chat requests will fail with invalid credentials")
    # retries are owned by chatrelay.retry, the SDK must not add its own
    return AsyncOpenAI(
        api_key=api_key or MISSING_API_KEY,
        base_url=base_url,
        max_retries=0,
        http_client=http_client,
    )


class OpenAIAssistant(LLMAssistant):
    def __init__(
        self,
        client: AsyncOpenAI,
        user_id: int,
        model: str,
        max_output_tokens: int,
        system_instruction: str = SYSTEM_INSTRUCTION,
        metrics: Optional[statsd.StatsClient] = None,
    ):
        super().__init__(
            user_id=user_id,
            model=model,
            max_output_tokens=max_output_tokens,
            system_instruction=system_instruction,
            metrics=metrics,
        )
        self.openai_client = client

    async def get_completion(self, messages: List[dict]) -> str:
        response = await self.openai_client.chat.completions.create(
            model=self.model_version,
            messages=messages,
            max_tokens=self.max_output_tokens,
        )
        if not response.choices:
            return ""

        if self.metrics is not None:
            self.metrics.incr("success.generate_response")
        return response.choices[0].message.content or ""
