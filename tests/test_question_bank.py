from __future__ import annotations

import pytest

from quiz_session.core.question_bank import (
    QuestionBankError,
    load_default_banks,
    load_question_bank,
    parse_question_bank,
)

SAMPLE = """
Q: Which tag creates a hyperlink?
A: <link>
B: <a>
C: <href>
D: <url>
CORRECT: B

---
Q: Pick the primitive
   that is not a number.
A: 1
B: NaN
C: "1"
CORRECT: c
"""


def test_parse_blocks_separated_by_blank_lines_and_dashes():
    questions = parse_question_bank(SAMPLE)

    assert len(questions) == 2
    assert questions[0].prompt == "Which tag creates a hyperlink?"
    assert questions[0].options == ("<link>", "<a>", "<href>", "<url>")
    assert questions[0].correct_option_index == 1
    assert questions[1].prompt == "Pick the primitive\nthat is not a number."
    assert questions[1].options == ("1", "NaN", '"1"')
    assert questions[1].correct_option_index == 2


@pytest.mark.parametrize(
    "text",
    [
        "",
        "A: orphan option\nB: other\nCORRECT: A",
        "Q: no options\nCORRECT: A",
        "Q: gap\nA: one\nC: three\nCORRECT: A",
        "Q: missing correct\nA: one\nB: two",
        "Q: bad correct\nA: one\nB: two\nCORRECT: D",
        "stray text\nQ: question\nA: one\nB: two\nCORRECT: A",
    ],
)
def test_invalid_banks_are_rejected(text):
    with pytest.raises(QuestionBankError):
        parse_question_bank(text)


def test_load_question_bank_uses_file_name_as_topic(tmp_path):
    path = tmp_path / "css.txt"
    path.write_text(SAMPLE, encoding="utf-8")

    bank = load_question_bank(path)

    assert bank.topic == "css"
    assert len(bank) == 2


def test_load_errors_name_the_file(tmp_path):
    path = tmp_path / "broken.txt"
    path.write_text("Q: nothing else", encoding="utf-8")

    with pytest.raises(QuestionBankError, match="broken.txt"):
        load_question_bank(path)


def test_bundled_banks_have_twenty_questions_each():
    banks = load_default_banks()

    assert sorted(banks) == ["HTML", "JavaScript", "React"]
    for topic, bank in banks.items():
        assert bank.topic == topic
        assert len(bank) == 20
        for question in bank.questions:
            assert 0 <= question.correct_option_index < len(question.options)


def test_load_default_banks_from_a_directory(tmp_path):
    (tmp_path / "html.txt").write_text(SAMPLE, encoding="utf-8")
    (tmp_path / "sql.txt").write_text(SAMPLE, encoding="utf-8")

    assert sorted(load_default_banks(tmp_path)) == ["HTML", "sql"]
