"""
Inference client using LiteLLM.

Companion replies come from a Replicate-hosted Llama 2 chat model, addressed
through LiteLLM's provider/model strings, e.g.
``replicate/meta/llama-2-13b-chat``. Any other LiteLLM provider works by
changing the model string.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List

import litellm

from core import get_logger, InferenceError
from prompts.system_frame import SYSTEM_DIRECTIVE

logger = get_logger(__name__)

# Configure LiteLLM
litellm.set_verbose = False  # Set True for debugging


@dataclass(frozen=True)
class InferenceParams:
    """Sampling controls and the fixed system directive."""

    top_p: float = 1.0
    top_k: int = 50
    temperature: float = 0.75
    max_new_tokens: int = 500
    min_new_tokens: int = -1
    system_directive: str = field(default=SYSTEM_DIRECTIVE, repr=False)


class InferenceClient:
    """
    Adapter to the remote model service.

    One instance is created by the application and shared by all requests.

    Usage:
        client = InferenceClient(api_key=settings.REPLICATE_API_TOKEN)
        text = await client.invoke("replicate/meta/llama-2-13b-chat", InferenceParams(), prompt)

    Calls are never retried: the caller resubmits.
    """

    def __init__(self, api_key: str, timeout: float = 60.0, stream: bool = False):
        """
        Args:
            api_key: Credential for the inference service
            timeout: Upper bound in seconds for one call
            stream: Read output as a token stream by default
        """
        self._api_key = api_key
        self.timeout = timeout
        self.stream_by_default = stream
        logger.info("Inference client initialized", timeout=timeout, stream=stream)

    def _request_kwargs(self, model_id: str, params: InferenceParams, prompt: str) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": params.system_directive},
            {"role": "user", "content": prompt},
        ]
        return {
            "model": model_id,
            "messages": messages,
            "api_key": self._api_key,
            "temperature": params.temperature,
            "top_p": params.top_p,
            "max_tokens": params.max_new_tokens,
            # Replicate-specific inputs, passed through by LiteLLM
            "top_k": params.top_k,
            "min_new_tokens": params.min_new_tokens,
        }

    async def invoke(self, model_id: str, params: InferenceParams, prompt: str) -> str:
        """
        Run the model and return its complete output.

        Raises:
            InferenceError: On network/remote errors, timeout or empty output
        """
        logger.debug(
            "Inference request",
            model=model_id,
            prompt_length=len(prompt),
            temperature=params.temperature,
            streamed=self.stream_by_default,
        )

        try:
            if self.stream_by_default:
                content = await asyncio.wait_for(self._collect(model_id, params, prompt), self.timeout)
            else:
                content = await asyncio.wait_for(self._complete(model_id, params, prompt), self.timeout)
        except asyncio.TimeoutError:
            logger.error("Inference request timed out", model=model_id, timeout=self.timeout)
            raise InferenceError(model=model_id, details=f"timed out after {self.timeout}s")
        except InferenceError:
            raise
        except Exception as e:
            logger.error("Inference request failed", model=model_id, error=str(e))
            raise InferenceError(model=model_id, details=str(e)) from e

        if not content or not content.strip():
            logger.error("Inference returned empty output", model=model_id)
            raise InferenceError(model=model_id, details="empty output")

        if len(content) > 200:
            truncated = f"{content[:100]}...{content[-100:]}"
        else:
            truncated = content

        logger.debug(
            "Inference response preview",
            model=model_id,
            response_length=len(content),
            response_preview=truncated,
        )
        return content

    async def stream(self, model_id: str, params: InferenceParams, prompt: str) -> AsyncIterator[str]:
        """
        Run the model and yield text chunks as they arrive.

        Raises:
            InferenceError: If the call cannot be started or breaks mid-stream
        """
        try:
            response = await litellm.acompletion(stream=True, **self._request_kwargs(model_id, params, prompt))
            async for part in response:
                delta = part.choices[0].delta.content if part.choices else None
                if delta:
                    yield delta
        except Exception as e:
            logger.error("Inference stream failed", model=model_id, error=str(e))
            raise InferenceError(model=model_id, details=str(e)) from e

    async def _complete(self, model_id: str, params: InferenceParams, prompt: str) -> str:
        response = await litellm.acompletion(**self._request_kwargs(model_id, params, prompt))
        choices = getattr(response, "choices", None)
        if not choices:
            raise InferenceError(model=model_id, details="malformed response: no choices")
        content = choices[0].message.content
        if content is not None and not isinstance(content, str):
            raise InferenceError(model=model_id, details=f"malformed content: {type(content).__name__}")
        return content or ""

    async def _collect(self, model_id: str, params: InferenceParams, prompt: str) -> str:
        return "".join([chunk async for chunk in self.stream(model_id, params, prompt)])
