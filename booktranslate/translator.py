from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

import openai

from .html_parser import Segment
from .storage import SegmentWriter
from .utils import single_line


SYSTEM_PROMPT_TRANSLATION = (
    "You are a professional translator. Don't answer with any notes. "
    "Answer only with the translation. Don't add the original. "
    "Follow the original style. Don't translate links."
)

SYSTEM_PROMPT_REFINEMENT = (
    "You are a professional proofreader of translations. Don't answer with any notes. "
    "Answer only with the corrected translation. Don't add the original. "
    "Follow the original style. Don't translate links."
)

USER_PROMPT_TEMPLATE = """\
Translate the following text to {language}:
{text}
{language}:"""

REFINE_PROMPT_TEMPLATE = """\
Below is a text and its translation to {language}.
Fix only real errors in the translation: mistranslations, omissions, grammar.
Keep the style of the original. If nothing needs fixing, repeat the translation unchanged.
Original:
{original}
Translation:
{translation}
{language}:"""

DEFAULT_MODEL = "thinkverse/towerinstruct"
DEFAULT_LANGUAGE = "English"
DEFAULT_TIMEOUT_SECONDS = 20.0
DRAFT_OPTIONS: Dict[str, Any] = {"temperature": 0.4}
REFINE_OPTIONS: Dict[str, Any] = {"temperature": 0.1}


class TranslationError(RuntimeError):
    """Raised when the translation service fails; aborts the whole run."""


class TranslationTimeoutError(TranslationError):
    """Raised when a single translation or refinement call exceeds its deadline."""


class BaseTranslator(Protocol):
    def generate(
        self,
        model: str,
        prompt: str,
        system: str = "",
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        ...


@dataclass
class OllamaConfig:
    host: str = "localhost"
    port: int = 11434
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def base_url(self) -> str:
        host = self.host if "://" in self.host else f"http://{self.host}"
        return f"{host.rstrip('/')}:{self.port}/v1"


@dataclass(frozen=True)
class TranslationRecord:
    source: str
    primary: str
    final: str


class OllamaTranslator:
    """
    Translator backed by a local Ollama server.

    Uses Ollama's OpenAI-compatible endpoint through the `openai` client,
    so no API key is needed; the client still requires a non-empty one.
    """

    def __init__(self, cfg: Optional[OllamaConfig] = None, client: Any = None):
        self.cfg = cfg or OllamaConfig()
        self._client = client or openai.OpenAI(
            base_url=self.cfg.base_url,
            api_key="ollama",
            timeout=self.cfg.timeout_seconds,
            max_retries=0,
        )

    def generate(
        self,
        model: str,
        prompt: str,
        system: str = "",
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        options = options or {}
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        kwargs: Dict[str, Any] = {"model": model, "messages": messages}
        # Leave sampling options out entirely when unset so the server default applies.
        if options.get("temperature") is not None:
            kwargs["temperature"] = options["temperature"]
        try:
            resp = self._client.chat.completions.create(**kwargs)
        except openai.APITimeoutError as exc:
            raise TranslationTimeoutError(
                f"Request to {self.cfg.base_url} timed out after {self.cfg.timeout_seconds}s"
            ) from exc
        except openai.OpenAIError as exc:
            raise TranslationError(f"Translation service error ({self.cfg.base_url}): {exc}") from exc

        content = resp.choices[0].message.content or ""
        if not content.strip():
            raise TranslationError(f"Model {model} returned an empty response.")
        return content

    def list_models(self) -> List[str]:
        try:
            return sorted(m.id for m in self._client.models.list())
        except openai.OpenAIError as exc:
            raise TranslationError(f"Cannot list models on {self.cfg.base_url}: {exc}") from exc


class DummyTranslator:
    """Offline translator for testing/dev. Does not translate; echoes the text it is asked about."""

    def generate(
        self,
        model: str,
        prompt: str,
        system: str = "",
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        # Both templates end with "<text>\n<language>:"
        lines = prompt.split("\n")
        return lines[-2] if len(lines) >= 2 else prompt


def build_draft_prompt(text: str, language: str) -> str:
    return USER_PROMPT_TEMPLATE.format(language=language, text=text)


def build_refine_prompt(original: str, translation: str, language: str) -> str:
    return REFINE_PROMPT_TEMPLATE.format(language=language, original=original, translation=translation)


def _call_with_timeout(fn: Callable[[], str], timeout: float) -> str:
    """Run one service call on a worker thread and give up on it after `timeout` seconds."""
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        raise TranslationTimeoutError(f"No response within {timeout}s") from exc
    except TranslationError:
        raise
    except Exception as exc:
        raise TranslationError(f"Translation service error: {exc}") from exc
    finally:
        executor.shutdown(wait=False)


def translate_segment(
    original: str,
    language: str,
    model: str,
    passes: int,
    translator: BaseTranslator,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    logger: Optional[logging.Logger] = None,
) -> TranslationRecord:
    """
    Translate one segment, then run `passes` refinement calls over the result.

    Any timeout or service error raises TranslationError; nothing is retried.
    """
    if passes < 0:
        raise ValueError(f"passes must be >= 0, got {passes}")

    primary = single_line(
        _call_with_timeout(
            lambda: translator.generate(
                model,
                build_draft_prompt(original, language),
                system=SYSTEM_PROMPT_TRANSLATION,
                options=dict(DRAFT_OPTIONS),
            ),
            timeout,
        )
    )

    post = primary
    for n in range(passes):
        current = post
        post = single_line(
            _call_with_timeout(
                lambda: translator.generate(
                    model,
                    build_refine_prompt(original, current, language),
                    system=SYSTEM_PROMPT_REFINEMENT,
                    options=dict(REFINE_OPTIONS),
                ),
                timeout,
            )
        )
        if logger and post != current:
            logger.debug("Refinement pass %s/%s changed the translation.", n + 1, passes)

    return TranslationRecord(source=original, primary=primary, final=post)


def translate_segments(
    segments: List[Segment],
    total: int,
    translator: BaseTranslator,
    writer: SegmentWriter,
    language: str = DEFAULT_LANGUAGE,
    model: str = DEFAULT_MODEL,
    passes: int = 1,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    logger: Optional[logging.Logger] = None,
) -> int:
    """
    Translate segments one at a time, writing each result before moving on.

    Returns the number of segments written. On the first failure the exception
    propagates; everything written so far stays in the output.
    """
    written = 0
    for seg in segments:
        try:
            record = translate_segment(
                seg.text,
                language=language,
                model=model,
                passes=passes,
                translator=translator,
                timeout=timeout,
                logger=logger,
            )
        except TranslationError:
            if logger:
                logger.error("Segment %s/%s failed: %s", seg.index + 1, total, seg.text)
            raise
        writer.write(record.final)
        writer.progress(seg.index, total, record.source, record.final)
        written += 1
    return written
