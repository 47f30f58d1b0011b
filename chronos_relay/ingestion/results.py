"""Result extraction: recover question/answer pairs from pipeline stdout.

The pipeline prints arbitrary diagnostics around one delimited block::

    DISCORD_RESULTS_START
    QUESTION_1:::Is X true?
    ANSWER_1:::Yes.
    ---
    DISCORD_RESULTS_END

Only the lines between the markers are decoded; everything before the
start marker and after the end marker is ignored.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

logger = logging.getLogger("chronos_relay.results")

RESULTS_START = "DISCORD_RESULTS_START"
RESULTS_END = "DISCORD_RESULTS_END"
FIELD_SEPARATOR = ":::"
QUESTION_TAG = "QUESTION_"
ANSWER_TAG = "ANSWER_"
SEPARATOR_LINE = "---"
BORDER_PREFIX = "="


@dataclass(frozen=True)
class QAResult:
    question: str
    answer: str


def _block_lines(stdout: str) -> Optional[list[str]]:
    """Scan for the delimited block. None if either marker never shows up."""
    seeking_start = True
    collected: list[str] = []

    # Lines end at "\n" only; other Unicode line breaks stay inside the text
    for line in stdout.split("\n"):
        line = line.removesuffix("\r")
        if seeking_start:
            idx = line.find(RESULTS_START)
            if idx == -1:
                continue
            seeking_start = False
            line = line[idx + len(RESULTS_START):]

        end = line.find(RESULTS_END)
        if end != -1:
            collected.append(line[:end])
            return collected
        collected.append(line)

    return None


def _field_text(line: str) -> str:
    return line.partition(FIELD_SEPARATOR)[2].strip()


def parse_tagged_lines(lines: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split block lines into ordered question and answer texts."""
    questions: list[str] = []
    answers: list[str] = []

    for line in lines:
        stripped = line.strip()
        if not stripped or stripped == SEPARATOR_LINE or stripped.startswith(BORDER_PREFIX):
            continue
        if FIELD_SEPARATOR not in line:
            continue
        if QUESTION_TAG in line:
            text = _field_text(line)
            if text:
                questions.append(text)
        elif ANSWER_TAG in line:
            text = _field_text(line)
            if text:
                answers.append(text)

    return questions, answers


def extract_results(stdout: str) -> Optional[list[QAResult]]:
    """Decode the results block from captured pipeline stdout.

    Returns:
        Ordered QAResult list (possibly empty), or None when the delimited
        block is missing. Questions and answers are paired by position;
        on a count mismatch the surplus entries are dropped.
    """
    lines = _block_lines(stdout or "")
    if lines is None:
        logger.error(f"No {RESULTS_START} block found in pipeline output")
        return None

    questions, answers = parse_tagged_lines(lines)
    if len(questions) != len(answers):
        logger.warning(
            f"Question/answer count mismatch ({len(questions)} vs {len(answers)}), "
            f"pairing the first {min(len(questions), len(answers))}"
        )

    logger.info(f"Parsed {len(questions)} questions and {len(answers)} answers")
    return [QAResult(q, a) for q, a in zip(questions, answers)]
