"""Adapter for a local Ollama process: HTTP generate API with a CLI retry path."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shutil
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

import httpx
from pydantic import BaseModel

from actionlens.ai.base import AiAnalysis, AiBackend, AiBackendError, BackendStatus
from actionlens.ai.schema import AiReply, CommandReply, to_action_items
from actionlens.config import Settings, settings
from actionlens.extraction.models import AnalysisContext

logger = logging.getLogger(__name__)

WARMUP_TEXT = "This is a test to warm up the model."

ANALYSIS_PROMPT = """{context}Analyze the following text for actionable items. Return ONLY valid JSON in this exact format:

{{
  "detectedLanguage": "English",
  "items": [
    {{
      "content": "exact text from input",
      "suggestedTitle": "concise action title",
      "suggestedDescription": "optional details",
      "type": "todo|task|action|reminder|deadline|development|follow_up|assignment|commitment|general",
      "priority": "low|medium|high|urgent",
      "confidence": 0.85,
      "suggestedDueDate": "YYYY-MM-DD or null",
      "suggestedAssignee": "person name or null",
      "keywords": ["keyword1", "keyword2"],
      "urgencyIndicators": ["urgent", "asap"],
      "assignmentIndicators": ["@john", "assign to"]
    }}
  ]
}}

Rules:
- "content" must be copied verbatim from the text.
- Return an empty "items" array when nothing is actionable.

Focus on:
- Imperative language: "need to", "should", "must", "implement", "fix"
- Deadlines: "by Friday", "due tomorrow", date patterns
- Assignments: "@username", "assign to", "responsible for"
- Commitments: "I will", "we'll", "promise to"
- Task keywords: "TODO", "FIXME", "ACTION", "TASK"

Text to analyze:
{text}"""

COMMAND_PROMPT = """Extract tasks from this text. Return ONLY valid JSON:

{{
  "detectedLanguage": "English",
  "tasks": [
    {{
      "content": "task description",
      "type": "todo",
      "priority": "medium",
      "confidence": 0.8
    }}
  ]
}}

Valid types: todo, task, action, reminder, deadline, development, follow_up, assignment, commitment, general
Valid priorities: low, medium, high, urgent

Text: {text}"""

ReplyT = TypeVar("ReplyT", bound=BaseModel)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class CommandOutput:
    success: bool
    stdout: str
    stderr: str


CommandRunner = Callable[[Sequence[str], float], Awaitable[CommandOutput]]


async def run_command(args: Sequence[str], timeout: float) -> CommandOutput:
    """Run *args* as a subprocess and capture its output.

    A missing binary or a non-zero exit is reported as ``success=False``.

    Raises:
        AiBackendError: If the process does not finish within *timeout* seconds.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return CommandOutput(success=False, stdout="", stderr=str(exc))

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError as exc:
        process.kill()
        await process.wait()
        raise AiBackendError(f"Command timed out after {timeout:.0f}s: {args[0]}") from exc

    return CommandOutput(
        success=process.returncode == 0,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def build_prompt(text: str, context: AnalysisContext | None = None) -> str:
    """Build the structured analysis prompt, embedding optional note context."""
    context_line = ""
    if context is not None:
        context_line = f"Context: This is a {context.note_type or 'general'} note"
        if context.associated_person:
            context_line += f" associated with {context.associated_person}"
        if context.associated_group:
            context_line += f" for group {context.associated_group}"
        context_line += ".\n\n"
    return ANALYSIS_PROMPT.format(context=context_line, text=text)


def parse_reply(raw: str, model: type[ReplyT]) -> ReplyT:
    """Decode a JSON string and validate it against *model*.

    Raises:
        AiBackendError: If the string is not JSON or does not fit the model.
    """
    try:
        return model.model_validate(json.loads(raw))
    except ValueError as exc:  # JSONDecodeError and ValidationError
        raise AiBackendError(f"Malformed reply from Ollama: {exc}") from exc


class OllamaAdapter(AiBackend):
    """AI backend for a local Ollama process.

    Uses the HTTP generate endpoint first and retries once via
    ``ollama run`` when the HTTP call fails or returns no completion.
    """

    def __init__(
        self,
        config: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        command_runner: CommandRunner | None = None,
    ) -> None:
        self._config = config or settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._config.ollama_url.rstrip("/"),
            timeout=self._config.ollama_timeout,
        )
        self._run_command = command_runner or run_command
        self._status: BackendStatus | None = None
        self._status_checked_at = 0.0
        self._warmed: set[str] = set()

    async def call(
        self, model: str, text: str, context: AnalysisContext | None = None
    ) -> AiAnalysis:
        try:
            reply = await self._generate(model, build_prompt(text, context))
        except AiBackendError as exc:
            logger.warning("Ollama HTTP API failed, trying command line: %s", exc)
            reply = await self._generate_via_command(model, text)

        items = to_action_items(reply, text, self._config.context_radius)
        return AiAnalysis(language=reply.detected_language, items=items)

    async def check_availability(self) -> BackendStatus:
        """Probe the HTTP endpoint; results are cached for ``ollama_status_ttl`` seconds."""
        now = time.monotonic()
        if self._status is not None and now - self._status_checked_at < self._config.ollama_status_ttl:
            return self._status

        try:
            response = await self._client.get("/api/version", timeout=5.0)
            response.raise_for_status()
            version = response.json().get("version")
            status = BackendStatus(installed=True, running=True, version=version)
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            installed = shutil.which(self._config.ollama_binary) is not None
            status = BackendStatus(
                installed=installed,
                running=False,
                error=f"Ollama service is not reachable: {exc}",
            )

        self._status = status
        self._status_checked_at = now
        return status

    async def warm_up(self, model: str) -> None:
        if model in self._warmed:
            return
        # Marked before the call so concurrent first requests prime only once.
        self._warmed.add(model)
        logger.info("Warming up Ollama model: %s", model)
        try:
            await self.call(model, WARMUP_TEXT)
        except Exception as exc:
            logger.warning("Failed to warm up model %s: %s", model, exc)
        else:
            logger.info("Model %s warmed up", model)

    def reset_status(self) -> None:
        """Forget the cached availability probe."""
        self._status = None
        self._status_checked_at = 0.0

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _generate(self, model: str, prompt: str) -> AiReply:
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self._config.ollama_temperature,
                "top_p": self._config.ollama_top_p,
                "num_predict": self._config.ollama_num_predict,
            },
        }
        try:
            response = await self._client.post("/api/generate", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise AiBackendError(f"Ollama request failed: {exc}") from exc
        except ValueError as exc:
            raise AiBackendError(f"Ollama returned a non-JSON body: {exc}") from exc

        raw = body.get("response") if isinstance(body, dict) else None
        if not raw:
            raise AiBackendError("No response from Ollama API")
        return parse_reply(raw, AiReply)

    async def _generate_via_command(self, model: str, text: str) -> AiReply:
        args = [
            self._config.ollama_binary,
            "run",
            model,
            "--format",
            "json",
            COMMAND_PROMPT.format(text=text),
        ]
        result = await self._run_command(args, self._config.ollama_timeout)
        if not result.success:
            raise AiBackendError(f"Ollama command failed: {result.stderr.strip() or 'unknown error'}")

        match = _JSON_OBJECT.search(result.stdout)
        if not match:
            raise AiBackendError("Ollama command produced no JSON object")
        return parse_reply(match.group(0), CommandReply).to_reply()
