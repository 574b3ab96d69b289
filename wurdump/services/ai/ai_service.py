"""AI transformation service for clipboard items

Talks to an OpenAI-compatible chat completion endpoint (Ollama by default).
Each prompt is retried with exponential backoff, and a newer request carrying
the same request id cancels the one in flight.
"""

import json
import socket
import threading
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger

from ...core.errors import AIServiceError, AIServiceUnavailableError, RequestCancelledError


CUSTOM_SYSTEM_PROMPT = (
    "You are an AI assistant that helps transform clipboard content. Be helpful, accurate, "
    "and preserve important information while following the user's request."
)


@dataclass
class AIConfig:
    """Connection and generation settings for the AI backend"""
    base_url: str = "http://localhost:11434/v1"
    model: str = "gpt-oss:20b"
    timeout: float = 30.0
    temperature: float = 0.7
    max_tokens: int = 1000
    max_retries: int = 3
    backoff: float = 0.5

    @classmethod
    def from_config(cls, config_manager) -> 'AIConfig':
        """Build from the `ai` section of a ConfigManager"""
        defaults = cls()
        return cls(
            base_url=config_manager.get('ai.base_url', defaults.base_url),
            model=config_manager.get('ai.model', defaults.model),
            timeout=float(config_manager.get('ai.timeout', defaults.timeout)),
            temperature=float(config_manager.get('ai.temperature', defaults.temperature)),
            max_tokens=int(config_manager.get('ai.max_tokens', defaults.max_tokens)),
            max_retries=int(config_manager.get('ai.max_retries', defaults.max_retries)),
            backoff=float(config_manager.get('ai.backoff', defaults.backoff))
        )


@dataclass
class TransformationPrompt:
    transformation_type: str
    title: str
    description: str
    system_prompt: str
    user_prompt: str
    confidence: float


@dataclass
class AITransformation:
    """Result of one AI transformation"""
    id: str
    title: str
    description: str
    result: str
    confidence: float
    is_applied: bool = False
    transformation_type: str = "enhancement"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _looks_like_code(content: str) -> bool:
    indicators = (
        "function", "def ", "class ", "import ", "const ", "let ", "var ",
        "=>", "{", "}", "()", "if (", "for (", "while (", "//", "/*", "*/",
        "public ", "private ", "protected ", "static ", "async ", "await "
    )
    return any(indicator in content for indicator in indicators)


def _looks_like_json(content: str) -> bool:
    trimmed = content.strip()
    return ((trimmed.startswith('{') and trimmed.endswith('}')) or
            (trimmed.startswith('[') and trimmed.endswith(']')))


def _with_context(prompt: str, context: Optional[Iterable[str]]) -> str:
    extra = [c.strip() for c in (context or []) if c and c.strip()]
    if not extra:
        return prompt
    return prompt + "\n\nAdditional context:\n" + "\n".join(f"- {c}" for c in extra)


def build_prompts(content: str, content_type: str,
                  instructions: Optional[str] = None,
                  context: Optional[Iterable[str]] = None) -> List[TransformationPrompt]:
    """
    Select transformation prompts for a piece of content

    Args:
        content: Clipboard text
        content_type: Classified content type value (e.g. "code", "json")
        instructions: Free-text user request; replaces the built-in prompt set
        context: Extra context strings appended to every user prompt

    Returns:
        Prompts in presentation order
    """
    context = list(context or [])

    if instructions and instructions.strip():
        return [TransformationPrompt(
            transformation_type="enhancement",
            title="AI Enhancement",
            description="Content processed according to your request",
            system_prompt=CUSTOM_SYSTEM_PROMPT,
            user_prompt=_with_context(
                f"Here is the clipboard content:\n```\n{content}\n```\n\n"
                f"User's request: {instructions.strip()}\n\n"
                "Please process the content according to the user's request:",
                context
            ),
            confidence=0.85
        )]

    prompts = []

    if content_type == "code" or _looks_like_code(content):
        prompts.append(TransformationPrompt(
            transformation_type="language_conversion",
            title="Convert to TypeScript",
            description="Convert code to TypeScript with proper types",
            system_prompt="You are a code conversion expert. Convert code to TypeScript while preserving "
                          "functionality and adding proper type annotations. Only return the converted code, "
                          "no explanations.",
            user_prompt=f"Convert this code to TypeScript:\n```\n{content}\n```",
            confidence=0.85
        ))
        prompts.append(TransformationPrompt(
            transformation_type="cleanup",
            title="Clean & Format",
            description="Clean up and format the code with best practices",
            system_prompt="You are a code formatter. Improve code quality, formatting, and readability while "
                          "preserving functionality. Only return the improved code, no explanations.",
            user_prompt=f"Clean and format this code:\n```\n{content}\n```",
            confidence=0.8
        ))

    if content_type in ("text", "email"):
        prompts.append(TransformationPrompt(
            transformation_type="enhancement",
            title="Professional Tone",
            description="Rewrite in a professional, business-appropriate tone",
            system_prompt="You are a professional writing assistant. Rewrite text to be more professional and "
                          "business-appropriate while preserving the core message. Only return the rewritten text.",
            user_prompt=f"Make this text more professional:\n\n{content}",
            confidence=0.9
        ))
        prompts.append(TransformationPrompt(
            transformation_type="summarization",
            title="Summarize",
            description="Create a concise summary of the content",
            system_prompt="You are a summarization expert. Create clear, concise summaries that capture the key "
                          "points. Only return the summary.",
            user_prompt=f"Summarize this text:\n\n{content}",
            confidence=0.75
        ))

    if content_type == "json" or _looks_like_json(content):
        prompts.append(TransformationPrompt(
            transformation_type="format_conversion",
            title="Convert to CSV",
            description="Convert JSON data to CSV format",
            system_prompt="You are a data conversion expert. Convert JSON to CSV format while preserving all "
                          "information. Only return the CSV data.",
            user_prompt=f"Convert this JSON to CSV format:\n```json\n{content}\n```",
            confidence=0.8
        ))

    prompts.append(TransformationPrompt(
        transformation_type="explanation",
        title="Explain Content",
        description="Provide a clear explanation of what this content does or means",
        system_prompt="You are an expert explainer. Break down complex content into easy-to-understand "
                      "explanations.",
        user_prompt=f"Explain what this content does or means:\n\n{content}",
        confidence=0.7
    ))

    for prompt in prompts:
        prompt.user_prompt = _with_context(prompt.user_prompt, context)
    return prompts


class CancellationRegistry:
    """Cancellation signals keyed by request id"""

    def __init__(self):
        self._events: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def register(self, request_id: str) -> threading.Event:
        """Create a signal for request_id, cancelling any request already holding it"""
        event = threading.Event()
        with self._lock:
            previous = self._events.get(request_id)
            self._events[request_id] = event

        if previous is not None:
            previous.set()
            logger.debug(f"Cancelled superseded AI request: {request_id}")
        return event

    def cancel(self, request_id: str) -> bool:
        with self._lock:
            event = self._events.pop(request_id, None)

        if event is None:
            return False
        event.set()
        return True

    def release(self, request_id: str, event: threading.Event) -> None:
        """Forget the signal if it still belongs to this request"""
        with self._lock:
            if self._events.get(request_id) is event:
                del self._events[request_id]

    def active(self) -> List[str]:
        with self._lock:
            return list(self._events)


Transport = Callable[[str, Optional[Dict[str, Any]], float], Dict[str, Any]]


def urllib_transport(url: str, payload: Optional[Dict[str, Any]], timeout: float) -> Dict[str, Any]:
    """POST payload as JSON (GET when payload is None) and decode the JSON reply"""
    if payload is None:
        req = urllib.request.Request(url, method='GET')
        data = None
    else:
        req = urllib.request.Request(url, method='POST')
        data = json.dumps(payload).encode('utf-8')
    req.add_header('Content-Type', 'application/json')
    req.add_header('Authorization', 'Bearer ollama')

    try:
        with urllib.request.urlopen(req, data=data, timeout=timeout) as resp:
            return json.loads(resp.read().decode('utf-8'))
    except urllib.error.HTTPError as e:
        body = e.read().decode('utf-8', errors='ignore')
        if e.code == 429 or e.code >= 500:
            raise AIServiceUnavailableError(f"AI service error: HTTP {e.code}: {body}") from e
        raise AIServiceError(f"AI service error: HTTP {e.code}: {body}") from e
    except (urllib.error.URLError, socket.timeout, ConnectionError) as e:
        raise AIServiceUnavailableError("Cannot connect to AI service", e) from e
    except ValueError as e:
        raise AIServiceError("Failed to parse AI response", e) from e


class AIService:
    """Produces AI transformations for clipboard content"""

    def __init__(self, config: Optional[AIConfig] = None, transport: Optional[Transport] = None):
        """
        Initialize AI service

        Args:
            config: Backend settings
            transport: Callable performing the HTTP exchange (url, payload, timeout)
        """
        self.config = config or AIConfig()
        self.transport = transport or urllib_transport
        self.cancellations = CancellationRegistry()

    def transform(self, content: str, content_type: str = "text",
                  instructions: Optional[str] = None,
                  context: Optional[Iterable[str]] = None,
                  request_id: Optional[str] = None) -> List[AITransformation]:
        """
        Generate transformations for content

        Args:
            content: Clipboard text
            content_type: Classified content type value
            instructions: Optional free-text user request
            context: Optional extra context strings
            request_id: Requests sharing an id cancel each other (newest wins)

        Returns:
            Transformations, or a single fallback entry when the backend is unavailable

        Raises:
            RequestCancelledError: A newer request with the same id took over
        """
        request_id = request_id or f"ai-{time.time_ns()}"
        cancel_event = self.cancellations.register(request_id)
        prompts = build_prompts(content, content_type, instructions, context)
        logger.info(f"Processing {content_type} content with AI: {len(content)} chars, {len(prompts)} prompts")

        transformations = []
        try:
            for i, prompt in enumerate(prompts):
                try:
                    result = self._complete(prompt, cancel_event)
                except RequestCancelledError:
                    raise
                except AIServiceError as e:
                    logger.warning(f"Failed to get {prompt.transformation_type} transformation: {e}")
                    continue

                transformations.append(AITransformation(
                    id=f"{prompt.transformation_type}-{int(time.time())}-{i}",
                    title=prompt.title,
                    description=prompt.description,
                    result=result,
                    confidence=prompt.confidence,
                    is_applied=False,
                    transformation_type=prompt.transformation_type
                ))
        finally:
            self.cancellations.release(request_id, cancel_event)

        if not transformations:
            transformations.append(AITransformation(
                id=f"fallback-{int(time.time())}",
                title="AI Unavailable",
                description="Start Ollama to enable AI transformations",
                result=f"Please run 'ollama serve' and 'ollama run {self.config.model}' to enable AI features.",
                confidence=0.1,
                is_applied=False,
                transformation_type="error"
            ))

        return transformations

    def cancel(self, request_id: str) -> bool:
        """Cancel an in-flight request"""
        cancelled = self.cancellations.cancel(request_id)
        if cancelled:
            logger.info(f"Cancelled AI request: {request_id}")
        return cancelled

    def _complete(self, prompt: TransformationPrompt, cancel_event: threading.Event) -> str:
        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": prompt.system_prompt},
                {"role": "user", "content": prompt.user_prompt}
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": False
        }
        url = f"{self.config.base_url.rstrip('/')}/chat/completions"

        attempt = 0
        while True:
            if cancel_event.is_set():
                raise RequestCancelledError("AI request was cancelled")

            try:
                response = self.transport(url, payload, self.config.timeout)
                break
            except AIServiceUnavailableError as e:
                if attempt >= self.config.max_retries:
                    raise AIServiceError(f"AI request failed after {attempt + 1} attempts", e) from e

                delay = self.config.backoff * (2 ** attempt)
                attempt += 1
                logger.debug(f"AI request failed ({e}), retry {attempt}/{self.config.max_retries} in {delay:.2f}s")
                if cancel_event.wait(delay):
                    raise RequestCancelledError("AI request was cancelled")

        if cancel_event.is_set():
            raise RequestCancelledError("AI request was cancelled")

        try:
            return response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIServiceError("Invalid response format from AI") from e

    def check_status(self) -> Dict[str, Any]:
        """
        Check if the backend is running and has the configured model

        Returns:
            Dictionary with `available`, `model` and `error` keys
        """
        root = self.config.base_url.rstrip('/')
        if root.endswith('/v1'):
            root = root[:-3]

        try:
            data = self.transport(f"{root}/api/tags", None, 5.0)
        except AIServiceError as e:
            return {"available": False, "model": False, "error": str(e)}

        names = [m.get("name", "") for m in data.get("models", []) if isinstance(m, dict)]
        has_model = any(name == self.config.model for name in names)
        return {
            "available": True,
            "model": has_model,
            "error": None if has_model else f"Model {self.config.model} not found. Run: ollama pull {self.config.model}"
        }
