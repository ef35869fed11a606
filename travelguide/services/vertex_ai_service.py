import logging
from typing import Any, List, Optional

from google import genai
from google.genai import types
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential


class CompletionServiceError(RuntimeError):
    """Raised when the completion model cannot produce a response after retries."""


class VertexAIService:
    """Gemini on Vertex AI, used for every free-text and JSON completion in the pipeline."""

    def __init__(
        self,
        project_id: str,
        location: str = "us-central1",
        model_name: str = "gemini-2.5-flash",
        max_attempts: int = 2,
        temperature: float = 0.7,
        retry_wait_max: float = 8.0,
        client: Optional[Any] = None,
    ):
        self.project_id = project_id
        self.location = location
        self.model_name = model_name
        self.max_attempts = max(1, max_attempts)
        self.temperature = temperature
        self.retry_wait_max = retry_wait_max
        self.logger = logging.getLogger(__name__)

        if client is not None:
            self.client = client
        else:
            try:
                self.client = genai.Client(vertexai=True, project=project_id, location=location)
                self.logger.info(f"Vertex AI initialized successfully for project {project_id}")
            except Exception as e:
                self.logger.error(f"Failed to initialize Vertex AI: {str(e)}")
                raise

    async def _generate(self, prompt: str, config: types.GenerateContentConfig) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=0, max=self.retry_wait_max),
            retry=retry_if_exception_type(Exception),
            reraise=False,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    n = attempt.retry_state.attempt_number
                    if n > 1:
                        self.logger.warning(f"[vertex] Retrying completion (attempt {n}/{self.max_attempts})")
                    return await self.client.aio.models.generate_content(
                        model=self.model_name,
                        contents=prompt,
                        config=config,
                    )
        except RetryError as e:
            cause = e.last_attempt.exception()
            self.logger.error(f"[vertex] Completion failed after {self.max_attempts} attempts: {cause}")
            raise CompletionServiceError(f"Vertex AI generation failed: {cause}") from cause

    def _extract_response_text(self, response: Any) -> str:
        """Text of the first candidate, joining multi-part content."""
        text_attr = getattr(response, "text", None)
        if isinstance(text_attr, str) and text_attr.strip():
            return text_attr

        parts_text: List[str] = []
        for cand in getattr(response, "candidates", None) or []:
            content = getattr(cand, "content", None)
            for part in getattr(content, "parts", None) or []:
                t = getattr(part, "text", None)
                if t:
                    parts_text.append(t)
        return "\n".join(parts_text).strip()

    async def generate_text(self, prompt: str, temperature: Optional[float] = None) -> str:
        """Free-text completion."""
        self.logger.debug(f"[vertex] generate_text called, prompt length {len(prompt)}")
        config = types.GenerateContentConfig(
            temperature=self.temperature if temperature is None else temperature,
            candidate_count=1,
        )
        response = await self._generate(prompt, config)
        text = self._extract_response_text(response)
        if not text:
            self.logger.warning("[vertex] Empty text response from model")
        return text

    async def generate_json(self, prompt: str, temperature: Optional[float] = None) -> str:
        """JSON-mode completion. Returns raw text; callers validate it.

        Raises ``CompletionServiceError`` when the model is unreachable.
        """
        self.logger.debug(f"[vertex] generate_json called, prompt length {len(prompt)}")
        config = types.GenerateContentConfig(
            temperature=self.temperature if temperature is None else temperature,
            response_mime_type="application/json",
            candidate_count=1,
        )
        response = await self._generate(prompt, config)
        text = self._extract_response_text(response)
        if not text:
            self.logger.warning("[vertex] Empty response from model")
            return "{}"
        self.logger.debug(f"[vertex] Response text length: {len(text)}")
        return text
