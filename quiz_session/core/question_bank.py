"""Loading question banks from a human-friendly text file.

File format (repeat blocks separated by blank lines or '---'):

    Q: Question text. Additional lines until the next marker are treated as
       part of the question.
    A: First option text
    B: Second option text
    C: Third option text      (options run from A up to at most F)
    D: Fourth option text
    CORRECT: A|B|C|...

Example:

    Q: Which tag creates a hyperlink?
    A: <link>
    B: <a>
    C: <href>
    D: <url>
    CORRECT: B

The topic of a bank defaults to the file name without its extension.
"""

from __future__ import annotations

from pathlib import Path

from quiz_session.core.models import Question, QuestionBank


class QuestionBankError(Exception):
    """Raised when a question bank definition cannot be parsed."""


_OPTION_LETTERS = ["A", "B", "C", "D", "E", "F"]
_DEFAULT_BANK_DIR = Path(__file__).resolve().parents[1] / "data" / "banks"
_DEFAULT_TOPIC_NAMES = {"html": "HTML", "javascript": "JavaScript", "react": "React"}


def load_question_bank(file_path: Path, topic: str | None = None) -> QuestionBank:
    text = Path(file_path).read_text(encoding="utf-8")
    topic_name = topic or Path(file_path).stem
    try:
        questions = parse_question_bank(text)
    except QuestionBankError as exc:
        raise QuestionBankError(f"{file_path}: {exc}") from exc
    return QuestionBank(topic=topic_name, questions=tuple(questions))


def load_default_banks(bank_dir: Path | None = None) -> dict[str, QuestionBank]:
    """Load every ``*.txt`` bank in ``bank_dir`` (the bundled banks by default)."""
    directory = Path(bank_dir) if bank_dir is not None else _DEFAULT_BANK_DIR
    banks: dict[str, QuestionBank] = {}
    for path in sorted(directory.glob("*.txt")):
        topic = _DEFAULT_TOPIC_NAMES.get(path.stem.lower(), path.stem)
        banks[topic] = load_question_bank(path, topic=topic)
    return banks


def parse_question_bank(text: str) -> list[Question]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())

    questions = [_parse_block(block) for block in blocks if block]
    if not questions:
        raise QuestionBankError("Question bank did not contain any questions.")
    return questions


def _parse_block(block: str) -> Question:
    prompt_lines: list[str] = []
    options: dict[str, str] = {}
    correct_letter: str | None = None
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            prompt_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("CORRECT:"):
            correct_letter = line.split(":", 1)[1].strip().upper()
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in _OPTION_LETTERS and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            prompt_lines.append(line)
        elif current_section in _OPTION_LETTERS:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuestionBankError(f"Encountered text outside of a known section: '{line}'.")

    prompt = "\n".join(prompt_lines).strip()
    if not prompt:
        raise QuestionBankError("Question text missing (Q: ...)")

    letters = _OPTION_LETTERS[: len(options)]
    if len(options) < 2 or set(options) != set(letters):
        raise QuestionBankError("Options must be consecutive letters starting at A (at least A and B).")
    option_list = tuple(options[letter].strip() for letter in letters)
    if any(not option for option in option_list):
        raise QuestionBankError("Option text cannot be empty.")

    if correct_letter is None:
        raise QuestionBankError(f"Question '{prompt}' has no CORRECT line.")
    if correct_letter not in letters:
        raise QuestionBankError(f"CORRECT must be one of {', '.join(letters)}.")

    return Question(
        prompt=prompt,
        options=option_list,
        correct_option_index=letters.index(correct_letter),
    )
