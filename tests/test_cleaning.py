from __future__ import annotations

from llama_reply.common.cleaning import (
    clean_response,
    collapse_repeats,
    is_valid_response,
    response_metrics,
    validate_response_length,
)


def test_clean_strips_delimiter_and_trailing_user_turn() -> None:
    assert clean_response("<|assistant|>Bonjour\nUser: ") == "Bonjour"


def test_clean_removes_every_template_delimiter() -> None:
    raw = "<|system|><|user|>Salut<|end|> toi<|endoftext|>"
    assert clean_response(raw) == "Salut toi"


def test_clean_strips_trailing_prompt_markers() -> None:
    assert clean_response("Voilà la réponse.\n\n> ") == "Voilà la réponse."
    assert clean_response("Voilà>") == "Voilà"
    assert clean_response("Fin.\nAssistant:") == "Fin."


def test_clean_keeps_inner_markers() -> None:
    assert clean_response("a > b\nUser: x\nsuite") == "a > b\nUser: x\nsuite"


def test_clean_collapses_twenty_char_run() -> None:
    assert clean_response("a" * 20 + "Bonjour") == "a" * 10 + "Bonjour"


def test_clean_collapses_newlines_and_whitespace() -> None:
    assert clean_response("Un\n\n\n\nDeux") == "Un\n\nDeux"
    assert clean_response("Un    deux") == "Un deux"
    assert clean_response("  Un deux  ") == "Un deux"


def test_clean_empty_input() -> None:
    assert clean_response("") == ""
    assert clean_response(None) == ""


def test_end_to_end_clean_then_validate() -> None:
    cleaned = clean_response("<|assistant|>Je suis prêt.\nUser:")
    assert cleaned == "Je suis prêt."
    assert is_valid_response(cleaned)


def test_collapse_repeats_keeps_one_copy_of_looping_sentence() -> None:
    loop = "I am a bot. "
    assert collapse_repeats(loop * 4 + "Done") == loop + "Done"


def test_collapse_repeats_prefers_shortest_period() -> None:
    unit = "abcdefghij"
    # "unit*4" is also "(unit*2)*2"; the shortest period wins
    assert collapse_repeats(unit * 4) == unit


def test_collapse_repeats_ignores_short_runs_and_newlines() -> None:
    assert collapse_repeats("hahaha ok") == "hahaha ok"
    line = "same line!!"
    assert collapse_repeats(f"{line}\n{line}\n{line}") == f"{line}\n{line}\n{line}"


def test_collapse_repeats_handles_several_runs() -> None:
    a, b = "0123456789", "ABCDEFGHIJKL"
    assert collapse_repeats(a * 2 + " - " + b * 3) == a + " - " + b


def test_is_valid_response() -> None:
    assert not is_valid_response("")
    assert not is_valid_response("  ")
    assert not is_valid_response(None)
    assert is_valid_response("ok")


def test_validate_response_length() -> None:
    assert validate_response_length("ok")
    assert not validate_response_length("")
    assert not validate_response_length("x" * 11, max_length=10)


def test_response_metrics() -> None:
    m = response_metrics("Hello there world\nagain")
    assert m.length == 23
    assert m.word_count == 4
    assert m.line_count == 2
    assert m.has_valid_structure
    assert not response_metrics("hi").has_valid_structure
    assert response_metrics(None).length == 0
