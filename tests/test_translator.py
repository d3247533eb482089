from types import SimpleNamespace

import openai
import pytest

from booktranslate.html_parser import split_segments
from booktranslate.storage import SegmentWriter
from booktranslate.translator import (
    DummyTranslator,
    OllamaConfig,
    OllamaTranslator,
    TranslationError,
    TranslationTimeoutError,
    build_draft_prompt,
    build_refine_prompt,
    translate_segment,
    translate_segments,
)


def test_dummy_translator_echoes_draft_and_refinement_text():
    tr = DummyTranslator()
    assert tr.generate("m", build_draft_prompt("Bonjour.", "English")) == "Bonjour."
    assert tr.generate("m", build_refine_prompt("Bonjour.", "Hello.", "English")) == "Hello."


def test_translate_segment_with_echo_returns_original(recording_translator):
    record = translate_segment("Il pleut.", "English", "tower", passes=2, translator=recording_translator)
    assert record.source == "Il pleut."
    assert record.primary == "Il pleut."
    assert record.final == "Il pleut."
    assert len(recording_translator.calls) == 3


def test_translate_segment_prompts_and_options(recording_translator):
    translate_segment("Il pleut.", "German", "tower", passes=1, translator=recording_translator)
    draft, refine = recording_translator.calls

    assert draft["model"] == "tower"
    assert "German" in draft["prompt"] and "Il pleut." in draft["prompt"]
    assert "Don't translate links." in draft["system"]
    assert draft["options"]["temperature"] == 0.4

    assert "Original:\nIl pleut." in refine["prompt"]
    assert "Translation:\nIl pleut." in refine["prompt"]
    assert refine["options"]["temperature"] == 0.1


def test_refinement_passes_chain_previous_output(make_translator):
    answers = {1: "It rain.", 2: "It rains.", 3: "It is raining."}
    tr = make_translator(respond=lambda prompt, n: answers[n])
    record = translate_segment("Il pleut.", "English", "tower", passes=2, translator=tr)

    assert record.primary == "It rain."
    assert record.final == "It is raining."
    assert "Translation:\nIt rain." in tr.calls[1]["prompt"]
    assert "Translation:\nIt rains." in tr.calls[2]["prompt"]


def test_zero_passes_is_primary_only(recording_translator):
    record = translate_segment("Oui.", "English", "tower", passes=0, translator=recording_translator)
    assert record.final == record.primary == "Oui."
    assert len(recording_translator.calls) == 1


def test_negative_passes_rejected(recording_translator):
    with pytest.raises(ValueError):
        translate_segment("Oui.", "English", "tower", passes=-1, translator=recording_translator)


def test_multiline_response_is_folded_to_one_line(make_translator):
    tr = make_translator(respond=lambda prompt, n: "  It is\nraining.\n\n")
    record = translate_segment("Il pleut.", "English", "tower", passes=0, translator=tr)
    assert record.final == "It is raining."


def test_timeout_during_refinement_fails(make_slow_translator):
    tr = make_slow_translator(slow_from=2)
    with pytest.raises(TranslationTimeoutError):
        translate_segment("Il pleut.", "English", "tower", passes=1, translator=tr, timeout=0.05)


def test_service_exception_is_wrapped(make_translator):
    def boom(prompt, n):
        raise ConnectionError("refused")

    tr = make_translator(respond=boom)
    with pytest.raises(TranslationError, match="refused"):
        translate_segment("Il pleut.", "English", "tower", passes=1, translator=tr)


def test_translate_segments_example_output(tmp_path, recording_translator):
    segments, total = split_segments("Hello.\n\nWorld.\n")
    out = tmp_path / "out.txt"
    with SegmentWriter(out) as writer:
        written = translate_segments(segments, total, recording_translator, writer, passes=1)

    assert total == 3
    assert written == 2
    assert out.read_text(encoding="utf-8") == "Hello.\nWorld.\n"


def test_timeout_on_segment_k_keeps_earlier_segments_only(tmp_path, make_slow_translator):
    segments, total = split_segments("one\ntwo\nthree\nfour\n")
    # One draft + one refinement per segment: call 5 is the draft of "three".
    tr = make_slow_translator(slow_from=5)
    out = tmp_path / "out.txt"
    with SegmentWriter(out) as writer:
        with pytest.raises(TranslationTimeoutError):
            translate_segments(segments, total, tr, writer, passes=1, timeout=0.05)

    assert out.read_text(encoding="utf-8") == "one\ntwo\n"


def _fake_openai_client(create):
    return SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create)),
        models=SimpleNamespace(list=lambda: [SimpleNamespace(id="b-model"), SimpleNamespace(id="a-model")]),
    )


def test_ollama_translator_sends_system_and_temperature():
    seen = {}

    def create(**kwargs):
        seen.update(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hello."))])

    tr = OllamaTranslator(client=_fake_openai_client(create))
    out = tr.generate("tower", "Translate", system="Be terse.", options={"temperature": 0.4})

    assert out == "Hello."
    assert seen["model"] == "tower"
    assert seen["temperature"] == 0.4
    assert seen["messages"] == [
        {"role": "system", "content": "Be terse."},
        {"role": "user", "content": "Translate"},
    ]
    assert tr.list_models() == ["a-model", "b-model"]


class _ClientTimeout(openai.APITimeoutError):
    # Skips the client constructor, which wants a transport request object.
    def __init__(self) -> None:
        Exception.__init__(self, "Request timed out.")


class _ClientRefused(openai.APIConnectionError):
    def __init__(self) -> None:
        Exception.__init__(self, "Connection error.")


def test_ollama_translator_maps_client_errors():
    def timeout(**kwargs):
        raise _ClientTimeout()

    def refused(**kwargs):
        raise _ClientRefused()

    with pytest.raises(TranslationTimeoutError):
        OllamaTranslator(client=_fake_openai_client(timeout)).generate("tower", "x")
    with pytest.raises(TranslationError):
        OllamaTranslator(client=_fake_openai_client(refused)).generate("tower", "x")


def test_ollama_translator_rejects_empty_response():
    def create(**kwargs):
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="  "))])

    with pytest.raises(TranslationError):
        OllamaTranslator(client=_fake_openai_client(create)).generate("tower", "x")


def test_ollama_config_base_url():
    assert OllamaConfig().base_url == "http://localhost:11434/v1"
    assert OllamaConfig(host="https://gpu.local", port=8080).base_url == "https://gpu.local:8080/v1"


def test_ollama_translator_omits_unset_temperature():
    seen = {}

    def create(**kwargs):
        seen.update(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hello."))])

    OllamaTranslator(client=_fake_openai_client(create)).generate("tower", "Translate")
    assert "temperature" not in seen
    assert seen["messages"] == [{"role": "user", "content": "Translate"}]


def test_carriage_return_inside_a_line_survives_echo(tmp_path, recording_translator):
    segments, total = split_segments("a\rb\n")
    out = tmp_path / "out.txt"
    with SegmentWriter(out) as writer:
        translate_segments(segments, total, recording_translator, writer, passes=1)

    assert total == 1
    assert out.read_bytes() == b"a\rb\n"
