"""Generative AI adapter: tutor chat, explanations, flashcards and question generation.

Providers are interchangeable at runtime. Gemini goes through google-genai and
keeps a chat session seeded with the saved conversation; Poe, Grok and
Cerebras expose OpenAI-compatible endpoints and go through the openai SDK.
"""
import base64
import json
import logging
import re
import uuid

import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from cbt_prep.errors import (
    CBTError, ConfigMissingError, MalformedResponseError, NetworkError,
    NetworkTimeoutError, RateLimitedError,
)
from cbt_prep.models import Question
from cbt_prep.question_bank import normalize_question
from cbt_prep.resources import SingleFlight
from cbt_prep.retry import with_rate_limit_retry
from cbt_prep.seed import subject_name
from cbt_prep.store import DEFAULT_AI_SETTINGS

logger = logging.getLogger(__name__)

AI_PROVIDERS = {
    "gemini": {
        "name": "Google Gemini",
        "base_url": None,
        "models": [
            {"id": "gemini-1.5-flash", "name": "Gemini 1.5 Flash", "tier": "standard"},
            {"id": "gemini-2.0-flash", "name": "Gemini 2.0 Flash", "tier": "premium"},
            {"id": "gemini-1.5-pro", "name": "Gemini 1.5 Pro", "tier": "pro"},
        ],
    },
    "poe": {
        "name": "Poe AI",
        "base_url": "https://api.poe.com/v1",
        "models": [
            {"id": "claude-3-haiku", "name": "Claude 3 Haiku", "tier": "standard"},
            {"id": "claude-3-sonnet", "name": "Claude 3 Sonnet", "tier": "pro"},
            {"id": "gpt-4o-mini", "name": "GPT-4o Mini", "tier": "standard"},
        ],
    },
    "grok": {
        "name": "Grok AI",
        "base_url": "https://api.x.ai/v1",
        "models": [
            {"id": "grok-beta", "name": "Grok Beta", "tier": "standard"},
            {"id": "grok-2", "name": "Grok 2", "tier": "pro"},
        ],
    },
    "cerebras": {
        "name": "Cerebras AI",
        "base_url": "https://api.cerebras.ai/v1",
        "models": [
            {"id": "llama-3.3-70b", "name": "Llama 3.3 70B", "tier": "pro"},
            {"id": "llama3.1-8b", "name": "Llama 3.1 8B", "tier": "standard"},
        ],
    },
}

SYSTEM_INSTRUCTION = """You are Ilom, a tutor inside a JAMB CBT practice application, helping Nigerian students prepare for the UTME.

- Explain concepts from JAMB subjects clearly, at secondary school level.
- Work through maths and science problems step by step.
- Use examples familiar to Nigerian students.
- Keep to study-related topics and steer other requests back to the syllabus.
- Use short sections, bullet points or numbered lists where they help.
- Finish explanations with a brief "Key Takeaway"."""

IMAGE_ONLY_GEMINI = "Image analysis is only available with Gemini. Please switch to Gemini for image features."


def extract_json_array(text: str) -> list:
    """First-to-last bracket span of model output parsed as a list, [] if that fails."""
    match = re.search(r"\[[\s\S]*\]", text or "")
    if not match:
        return []
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.warning("model output contained an unparseable JSON array")
        return []
    return data if isinstance(data, list) else []


def extract_json_object(text: str):
    match = re.search(r"\{[\s\S]*\}", text or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.warning("model output contained an unparseable JSON object")
        return None
    return data if isinstance(data, dict) else None


def parse_data_url(image_data: str) -> tuple[bytes, str]:
    """Split a data: URL into (bytes, mime type)."""
    match = re.match(r"data:([^;]+);base64,(.*)", image_data or "", re.S)
    if not match:
        raise MalformedResponseError("image must be a base64 data URL")
    return base64.b64decode(match.group(2)), match.group(1)


def available_providers(settings) -> list[str]:
    return [p for p in AI_PROVIDERS if settings.api_key_for(p)]


class GeminiProvider:
    def __init__(self, api_key: str, model: str, history: list = None):
        if not api_key:
            raise ConfigMissingError("Gemini API is not configured. Please add your API key.")
        self.model = model
        self._client = genai.Client(api_key=api_key)
        self._config = types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            temperature=0.7,
            top_p=0.95,
            top_k=40,
            max_output_tokens=2048,
        )
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in history or []
        ]
        self._chat = self._client.aio.chats.create(model=model, config=self._config, history=contents)

    async def _call(self, fn):
        try:
            return await fn()
        except genai_errors.APIError as e:
            if e.code == 429:
                raise RateLimitedError(f"Gemini rate limit: {e.message}") from e
            raise NetworkError(f"Gemini request failed ({e.code}): {e.message}") from e
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError("Gemini request timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Gemini request failed: {e}") from e

    async def chat(self, prompt: str) -> str:
        response = await self._call(lambda: self._chat.send_message(prompt))
        return response.text or ""

    async def generate(self, prompt: str) -> str:
        response = await self._call(
            lambda: self._client.aio.models.generate_content(model=self.model, contents=prompt, config=self._config)
        )
        return response.text or ""

    async def analyze_image(self, prompt: str, data: bytes, mime_type: str) -> str:
        part = types.Part.from_bytes(data=data, mime_type=mime_type)
        response = await self._call(
            lambda: self._client.aio.models.generate_content(
                model=self.model, contents=[prompt, part], config=self._config,
            )
        )
        return response.text or ""


class OpenAICompatibleProvider:
    """Poe, Grok and Cerebras all speak the chat-completions protocol."""

    def __init__(self, provider: str, api_key: str, model: str, timeout: float = 30.0):
        if not api_key:
            raise ConfigMissingError(f"{AI_PROVIDERS[provider]['name']} is not configured. Please add your API key.")
        self.provider = provider
        self.model = model
        self._client = openai.AsyncOpenAI(
            api_key=api_key, base_url=AI_PROVIDERS[provider]["base_url"], timeout=timeout,
        )

    async def chat(self, prompt: str) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_INSTRUCTION},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.7,
                max_tokens=2048,
            )
        except openai.RateLimitError as e:
            raise RateLimitedError(f"{self.provider} rate limit: {e}") from e
        except openai.APITimeoutError as e:
            raise NetworkTimeoutError(f"{self.provider} request timed out") from e
        except openai.APIError as e:
            raise NetworkError(f"{self.provider} request failed: {e}") from e
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    async def generate(self, prompt: str) -> str:
        return await self.chat(prompt)

    async def analyze_image(self, prompt: str, data: bytes, mime_type: str) -> str:
        raise ConfigMissingError(IMAGE_ONLY_GEMINI)


class AIService:
    def __init__(self, settings, store, provider_factory=None, retry_delay: float = 1.0):
        self.settings = settings
        self.store = store
        self.retry_delay = retry_delay
        self._provider_factory = provider_factory or self._default_factory
        self._selection = None
        self._history = None
        self._provider = SingleFlight(self._build_provider, name="AI chat session")

    @property
    def configured(self) -> bool:
        return self.settings.ai_configured

    def _default_factory(self, provider: str, model: str, history: list):
        key = self.settings.api_key_for(provider)
        if provider == "gemini":
            return GeminiProvider(key, model, history)
        if provider in AI_PROVIDERS:
            return OpenAICompatibleProvider(provider, key, model, timeout=self.settings.http_timeout)
        raise ConfigMissingError(f"unknown AI provider {provider!r}")

    async def current_selection(self) -> dict:
        if self._selection is None:
            if self.store is not None:
                selection = await self.store.get_ai_settings()
            else:
                selection = dict(DEFAULT_AI_SETTINGS)
            configured = available_providers(self.settings)
            if configured and selection["provider"] not in configured:
                provider = configured[0]
                selection = {"provider": provider, "model": AI_PROVIDERS[provider]["models"][0]["id"]}
            self._selection = selection
        return self._selection

    async def _build_provider(self):
        selection = await self.current_selection()
        history = await self._load_history()
        return self._provider_factory(selection["provider"], selection["model"], history)

    async def _load_history(self) -> list:
        if self._history is None:
            self._history = await self.store.load_history() if self.store is not None else []
        return self._history

    async def set_provider(self, provider: str, model: str) -> None:
        if provider not in AI_PROVIDERS:
            raise ConfigMissingError(f"unknown AI provider {provider!r}")
        if self.store is not None:
            await self.store.save_ai_settings(provider, model)
        self._selection = {"provider": provider, "model": model}
        self._provider.reset()

    async def reset_chat(self) -> None:
        self._provider.reset()
        self._history = []
        if self.store is not None:
            await self.store.clear_history()

    async def conversation_history(self) -> list:
        return list(await self._load_history())

    async def ask(self, question: str, subject: str = None, context: str = None) -> str:
        """Tutor chat with a seven-day response cache."""
        selection = await self.current_selection()
        key = f"ai-{question[:50]}-{subject or 'general'}-{selection['provider']}-{selection['model']}"
        cached = await self.store.get_ai_response(key)
        if cached:
            return cached

        message = question
        if subject:
            message = f"[Subject: {subject}] {question}"
        if context:
            message = f"Context: {context}\n\nQuestion: {question}"

        provider = await self._provider.get()
        response = await with_rate_limit_retry(lambda: provider.chat(message), base_delay=self.retry_delay)

        history = await self._load_history()
        history.append({"role": "user", "content": message})
        history.append({"role": "assistant", "content": response})
        await self.store.save_history(history)
        await self.store.put_ai_response(key, response)
        return response

    async def _generate(self, prompt: str) -> str:
        provider = await self._provider.get()
        return await with_rate_limit_retry(lambda: provider.generate(prompt), base_delay=self.retry_delay)

    async def explain_question(self, question: Question) -> str:
        options = "\n".join(f"{k.upper()}: {v}" for k, v in question.options.items() if v)
        answer = question.answer.upper()
        prompt = (
            f"Please explain this JAMB {subject_name(question.subject)} question and why option "
            f"\"{answer}\" is the correct answer:\n\n"
            f"Question: {question.question}\n\nOptions:\n{options}\n\nCorrect Answer: {answer}\n\n"
            "Please provide:\n"
            "1. **Concept Overview**: the concept being tested\n"
            f"2. **Why the Correct Answer**: why option {answer} is right\n"
            "3. **Why Others are Wrong**: briefly, for each other option\n"
            "4. **Study Tips**: how to remember this type of question"
        )
        return await self.ask(prompt, question.subject)

    async def study_tips(self, subject: str) -> str:
        """Tips are kept as generated content so they outlive the response cache."""
        content_id = f"tips-{subject}"
        saved = await self.store.get_generated(content_id)
        if saved:
            return saved
        prompt = (
            f"Give me 5 effective study tips for preparing for JAMB {subject_name(subject)}. "
            "For each tip explain the strategy, give a practical example, and say how it helps in the exam. "
            "End with a short motivational note."
        )
        tips = await self.ask(prompt, subject)
        await self.store.put_generated(content_id, tips)
        return tips

    async def clarify_topic(self, topic: str, subject: str) -> str:
        prompt = (
            f"Explain the topic \"{topic}\" in {subject_name(subject)} for a Nigerian secondary school student "
            "preparing for JAMB. Structure it as: What is it?, Key Points, Examples, "
            f"Common Exam Questions, Quick Memory Tips. End with: Remember, the most important thing about {topic} is..."
        )
        return await self.ask(prompt, subject)

    async def analyze_image(self, image_data: str, question: str = None, subject: str = None) -> str:
        """Images bypass the response cache and the chat history."""
        data, mime_type = parse_data_url(image_data)
        prompt = question or (
            "Please analyze this image and explain what it shows. If it is a diagram, graph or JAMB "
            "question, give an explanation that would help a student understand it."
        )
        if subject:
            prompt = f"[Subject: {subject}] {prompt}"
        provider = await self._provider.get()
        return await with_rate_limit_retry(
            lambda: provider.analyze_image(prompt, data, mime_type), base_delay=self.retry_delay,
        )

    async def generate_flashcards(self, subject: str, topic: str, count: int = 5) -> list[dict]:
        prompt = (
            f"Generate {count} flashcards for the JAMB {subject_name(subject)} topic: \"{topic}\".\n"
            "Format the response as a JSON array like "
            '[{"front": "Question here?", "back": "Answer here"}]. '
            "Focus on concepts commonly tested in JAMB. Only output the JSON array, no other text."
        )
        return extract_json_array(await self.ask(prompt, subject))

    async def generate_novel_analysis(self, title: str, author: str) -> dict | None:
        novel_id = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
        cached = await self.store.get_novel(novel_id)
        if cached:
            return cached
        prompt = (
            f"Generate a literary analysis of the novel \"{title}\" by {author} for JAMB Literature students. "
            "Return JSON with keys: title, author, summary, chapters (number, title, summary), "
            "characters (name, role, description), themes (theme, explanation), "
            "literaryDevices (device, examples), questions (id, question, options a-d, answer, explanation). "
            "Include at least 5 characters, 5 themes, 4 literary devices and 10 questions. "
            "Only output the JSON, no other text."
        )
        analysis = extract_json_object(await self.ask(prompt, "Literature"))
        if analysis is None:
            return None
        analysis["id"] = novel_id
        analysis.setdefault("title", title)
        analysis.setdefault("author", author)
        await self.store.put_novel(analysis)
        return analysis

    async def generate_questions(self, subject: str, topic: str = None, count: int = 5) -> list[Question]:
        """Multiple-choice questions from the model. Unusable output yields []."""
        on_topic = f' on the topic "{topic}"' if topic else ""
        prompt = (
            f"Generate {count} JAMB UTME {subject_name(subject)} questions{on_topic}.\n\n"
            "Return ONLY a JSON array with this exact format:\n"
            '[{"question": "The question text?", "options": {"a": "...", "b": "...", "c": "...", "d": "..."}, '
            '"answer": "a", "explanation": "Why this answer is correct"}]\n\n'
            "Each question has exactly 4 options (a-d) and a single-letter answer. "
            "Pitch them at JAMB UTME level, challenging but fair."
        )
        try:
            text = await self._generate(prompt)
        except ConfigMissingError:
            raise
        except CBTError as e:
            logger.warning("AI question generation for %s failed: %s", subject, e)
            return []
        questions = []
        for i, raw in enumerate(extract_json_array(text)):
            if not isinstance(raw, dict):
                continue
            q = normalize_question(raw, i, subject)
            if not q.is_valid():
                logger.debug("dropped unusable AI question %d for %s", i, subject)
                continue
            q.id = f"ai-{subject}-{i}-{uuid.uuid4().hex[:8]}"
            q.topic = topic or q.topic
            q.is_ai_generated = True
            q.external_id = None
            questions.append(q)
        return questions
