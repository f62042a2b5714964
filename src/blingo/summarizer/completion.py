"""OpenAI-backed structured completion client."""

import logging
from typing import Any, TypeVar

from openai import APIError, APITimeoutError, AsyncOpenAI, AuthenticationError, RateLimitError
from pydantic import BaseModel, ValidationError

from blingo.common.exceptions import CompletionError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class OpenAICompletionClient:
    """One blocking chat completion per call, constrained to a JSON schema."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        timeout: float = 60.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        # max_retries=0: one attempt per caller request
        self._client = client or AsyncOpenAI(api_key=api_key, max_retries=0, timeout=timeout)
        self._model = model
        self._temperature = temperature

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        output_model: type[ModelT],
        json_schema: dict[str, Any],
        schema_name: str = "response",
    ) -> ModelT:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                temperature=self._temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": schema_name,
                        "schema": json_schema,
                        "strict": True,
                    },
                },
            )
        except AuthenticationError as exc:
            raise CompletionError(
                "Invalid OpenAI API key. Set a valid key in BLINGO_OPENAI_API_KEY."
            ) from exc
        except APITimeoutError as exc:
            raise CompletionError("LLM request timed out") from exc
        except RateLimitError as exc:
            logger.error("OpenAI rate limit error: %s", exc)
            raise CompletionError(f"OpenAI rate limit / quota error: {exc}") from exc
        except APIError as exc:
            raise CompletionError(f"LLM call failed: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise CompletionError("LLM returned an empty response.")

        try:
            return output_model.model_validate_json(content)
        except ValidationError as exc:
            raise CompletionError(f"LLM response did not match the expected schema: {exc}") from exc

    async def close(self) -> None:
        await self._client.close()
