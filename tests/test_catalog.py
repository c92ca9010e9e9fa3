import pytest

from catalog import (
    MAX_SHORT_ANSWER_LENGTH,
    MAX_TEXT_LENGTH,
    clip_text,
    encoded_length,
    extract_answers,
    question_label,
)


def test_clip_text_keeps_short_text():
    assert clip_text("Riyadh", 200) == "Riyadh"


def test_clip_text_counts_escaped_characters():
    assert encoded_length("a\"b") == 4
    assert encoded_length("語") == 6
    assert encoded_length("\U0001F600") == 12
    assert clip_text("語" * 10, 20) == "語" * 3
    assert clip_text("\U0001F600" * 3, 12) == "\U0001F600"


def test_clip_text_never_splits_an_escape():
    clipped = clip_text("ab語", 7)
    assert clipped == "ab"
    assert encoded_length(clipped) <= 7


def test_free_text_is_clipped():
    answers = extract_answers({"q15": "x" * 5000})
    assert answers["q15"] == "x" * MAX_TEXT_LENGTH
    non_ascii = extract_answers({"q15": "語" * 5000})["q15"]
    assert encoded_length(non_ascii) <= MAX_TEXT_LENGTH


def test_short_answers_are_clipped():
    answers = extract_answers({"q1": "y" * 100, "q16": "9" * 100})
    assert len(answers["q1"]) == MAX_SHORT_ANSWER_LENGTH
    assert len(answers["q16"]) == MAX_SHORT_ANSWER_LENGTH


@pytest.mark.parametrize("value", ["Multi-location clinic", " Multi-location clinic "])
def test_known_choice_is_kept(value):
    assert extract_answers({"q11": value}) == {"q11": "Multi-location clinic"}


@pytest.mark.parametrize("value", ["multi-location clinic", "Something else", "x" * 3000])
def test_unknown_choice_is_dropped(value):
    assert extract_answers({"q11": value}) == {"q11": ""}


def test_unknown_fields_are_ignored():
    assert extract_answers({"q99": "yes", "name": "Sara", "q2": "no"}) == {"q2": "no"}


def test_label_falls_back_to_raw_id():
    assert question_label("q99") == "q99"
    assert question_label("q1").startswith("Do you currently send automated reminders")
