# tests/test_ai.py
import asyncio
import base64
import json

import pytest

from cbt_prep.ai import (
    AIService, GeminiProvider, OpenAICompatibleProvider, available_providers,
    extract_json_array, extract_json_object, parse_data_url,
)
from cbt_prep.config import Settings
from cbt_prep.errors import ConfigMissingError, MalformedResponseError, NetworkError, RateLimitedError
from cbt_prep.models import Question
from cbt_prep.retry import RATE_LIMIT_MESSAGE


class FakeProvider:
    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []
        self.images = []

    async def _next(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def chat(self, prompt):
        return await self._next(prompt)

    async def generate(self, prompt):
        return await self._next(prompt)

    async def analyze_image(self, prompt, data, mime_type):
        self.images.append((data, mime_type))
        return await self._next(prompt)


def make_service(store, replies, settings=None):
    provider = FakeProvider(replies)
    built = []

    def factory(name, model, history):
        built.append((name, model, list(history)))
        return provider

    service = AIService(settings or Settings(), store, provider_factory=factory, retry_delay=0)
    return service, provider, built


def test_extract_json_array():
    assert extract_json_array('Here you go:\n[{"front": "a", "back": "b"}]\nEnjoy!') == [{"front": "a", "back": "b"}]
    assert extract_json_array("no json here") == []
    assert extract_json_array("[not valid json]") == []
    assert extract_json_array("") == []


def test_extract_json_object():
    assert extract_json_object('```json\n{"title": "X"}\n```') == {"title": "X"}
    assert extract_json_object("{broken") is None
    assert extract_json_object("plain text") is None


def test_parse_data_url():
    data = base64.b64encode(b"\x89PNG").decode()
    assert parse_data_url(f"data:image/png;base64,{data}") == (b"\x89PNG", "image/png")
    with pytest.raises(MalformedResponseError):
        parse_data_url("not a data url")


def test_available_providers():
    assert available_providers(Settings()) == []
    assert available_providers(Settings(poe_api_key="k", cerebras_api_key="k")) == ["poe", "cerebras"]


def test_providers_require_keys():
    with pytest.raises(ConfigMissingError):
        GeminiProvider("", "gemini-1.5-flash")
    with pytest.raises(ConfigMissingError):
        OpenAICompatibleProvider("grok", "", "grok-beta")


def test_ask_formats_subject_and_caches(tmp_store):
    service, provider, built = make_service(tmp_store, ["Photosynthesis makes glucose."])

    async def scenario():
        first = await service.ask("What is photosynthesis?", "biology")
        second = await service.ask("What is photosynthesis?", "biology")
        return first, second, await tmp_store.load_history()

    first, second, history = asyncio.run(scenario())
    assert first == second == "Photosynthesis makes glucose."
    assert provider.prompts == ["[Subject: biology] What is photosynthesis?"]
    assert len(built) == 1
    assert history[-1] == {"role": "assistant", "content": "Photosynthesis makes glucose."}


def test_ask_with_context(tmp_store):
    service, provider, _ = make_service(tmp_store, ["ok"])
    asyncio.run(service.ask("Why?", "physics", context="A ball is dropped."))
    assert provider.prompts == ["Context: A ball is dropped.\n\nQuestion: Why?"]


def test_chat_seeded_with_saved_history(tmp_store):
    saved = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]

    async def scenario():
        await tmp_store.save_history(saved)
        service, _, built = make_service(tmp_store, ["again"])
        await service.ask("Another question")
        return built, await service.conversation_history()

    built, history = asyncio.run(scenario())
    assert built[0][2] == saved
    assert len(history) == 4


def test_rate_limit_is_retried(tmp_store):
    service, provider, _ = make_service(tmp_store, [RateLimitedError("429"), "answer"])
    assert asyncio.run(service.ask("Question")) == "answer"
    assert len(provider.prompts) == 2


def test_rate_limit_exhausted(tmp_store):
    service, _, _ = make_service(tmp_store, [RateLimitedError("429")] * 3)
    with pytest.raises(RateLimitedError) as exc:
        asyncio.run(service.ask("Question"))
    assert str(exc.value) == RATE_LIMIT_MESSAGE


def test_generate_questions(tmp_store):
    reply = "Sure!\n" + json.dumps([
        {"question": "H2O is?", "options": {"a": "water", "b": "salt", "c": "acid", "d": "base"},
         "answer": "A", "explanation": "H2O is water."},
        {"question": "Bad answer", "options": {"a": "1", "b": "2"}, "answer": "q"},
        "junk",
    ])
    service, _, _ = make_service(tmp_store, [reply])
    questions = asyncio.run(service.generate_questions("chemistry", "Water", 3))
    assert len(questions) == 1
    q = questions[0]
    assert isinstance(q, Question)
    assert q.answer == "a"
    assert q.topic == "Water"
    assert q.is_ai_generated
    assert q.is_valid()


def test_generate_questions_drops_wrongly_typed_items(tmp_store):
    reply = json.dumps([
        {"question": "Options as a list?", "options": ["w", "x", "y", "z"], "answer": "a"},
        {"question": "Numeric answer?", "options": {"a": "w", "b": "x"}, "answer": 1},
        {"question": 42, "options": {"a": "w", "b": "x"}, "answer": "a"},
        {"question": "Kept?", "options": {"a": "yes", "b": "no"}, "answer": "a"},
    ])
    service, _, _ = make_service(tmp_store, [reply])
    questions = asyncio.run(service.generate_questions("physics", count=4))
    assert [q.question for q in questions] == ["Kept?"]
    assert questions[0].id.startswith("ai-physics-3-")
    assert questions[0].external_id is None


def test_generate_questions_malformed_output_is_empty(tmp_store):
    service, _, _ = make_service(tmp_store, ["I cannot do that."])
    assert asyncio.run(service.generate_questions("chemistry")) == []


def test_generate_questions_provider_failure_is_empty(tmp_store):
    service, _, _ = make_service(tmp_store, [NetworkError("down")])
    assert asyncio.run(service.generate_questions("chemistry")) == []


def test_study_tips_kept_as_generated_content(tmp_store):
    service, provider, _ = make_service(tmp_store, ["1. Practise past questions."])

    async def scenario():
        first = await service.study_tips("physics")
        second = await service.study_tips("physics")
        return first, second, await tmp_store.get_generated("tips-physics")

    first, second, saved = asyncio.run(scenario())
    assert first == second == saved == "1. Practise past questions."
    assert len(provider.prompts) == 1


def test_generate_flashcards(tmp_store):
    service, _, _ = make_service(tmp_store, ['[{"front": "Cell?", "back": "Unit of life"}]'])
    assert asyncio.run(service.generate_flashcards("biology", "cells", 1)) == [{"front": "Cell?", "back": "Unit of life"}]


def test_novel_analysis_is_cached(tmp_store):
    reply = '{"summary": "A school story.", "characters": [], "themes": []}'
    service, provider, _ = make_service(tmp_store, [reply])

    async def scenario():
        first = await service.generate_novel_analysis("The Lekki Headmaster", "Kabir Alabi Garba")
        second = await service.generate_novel_analysis("The Lekki Headmaster", "Kabir Alabi Garba")
        return first, second

    first, second = asyncio.run(scenario())
    assert first["id"] == "the-lekki-headmaster"
    assert first["title"] == "The Lekki Headmaster"
    assert second == first
    assert len(provider.prompts) == 1


def test_analyze_image(tmp_store):
    service, provider, _ = make_service(tmp_store, ["A right-angled triangle."])
    data_url = "data:image/jpeg;base64," + base64.b64encode(b"jpeg-bytes").decode()
    result = asyncio.run(service.analyze_image(data_url, subject="mathematics"))
    assert result == "A right-angled triangle."
    assert provider.images == [(b"jpeg-bytes", "image/jpeg")]
    assert provider.prompts[0].startswith("[Subject: mathematics]")


def test_set_provider_persists_and_rebuilds(tmp_store):
    service, _, built = make_service(tmp_store, ["one", "two"])

    async def scenario():
        await service.ask("first")
        await service.set_provider("grok", "grok-2")
        await service.ask("second")
        return await tmp_store.get_ai_settings()

    assert asyncio.run(scenario()) == {"provider": "grok", "model": "grok-2"}
    assert [b[:2] for b in built] == [("gemini", "gemini-1.5-flash"), ("grok", "grok-2")]


def test_set_unknown_provider(tmp_store):
    service, _, _ = make_service(tmp_store, [])
    with pytest.raises(ConfigMissingError):
        asyncio.run(service.set_provider("skynet", "t-800"))


def test_selection_falls_back_to_configured_provider(tmp_store):
    service, _, _ = make_service(tmp_store, [], settings=Settings(cerebras_api_key="k"))
    assert asyncio.run(service.current_selection()) == {"provider": "cerebras", "model": "llama-3.3-70b"}


def test_reset_chat(tmp_store):
    service, _, built = make_service(tmp_store, ["a", "b"])

    async def scenario():
        await service.ask("first")
        await service.reset_chat()
        await service.ask("second")
        return await tmp_store.load_history()

    history = asyncio.run(scenario())
    assert len(built) == 2
    assert built[1][2] == []
    assert [m["content"] for m in history] == ["second", "b"]
