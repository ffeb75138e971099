from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from buzzline.game.collaborators import LLMParser
from buzzline.game.models import JudgeResult
from buzzline.llm.json_utils import coerce_bool, try_extract_json_object
from buzzline.logging.game_logger import GameLogger


QUESTION_STEMS: tuple[str, ...] = (
    "what is ",
    "what are ",
    "what was ",
    "who is ",
    "who are ",
    "who was ",
    "where is ",
)
ARTICLES: tuple[str, ...] = ("a ", "an ", "the ")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")

JUDGE_SYSTEM_PROMPT = """
You judge answers in a spoken trivia game. Compare the player's response to the correct answer.

The response was transcribed from speech, not typed:
- Treat homophones and near-homophones as equivalent (Bern/burn, Jean/gene, their/there).
- Transcription often prefers common words over proper nouns; forgive that.
- Forgive minor phonetic or accent differences.

Accept responses that are substantially correct, including alternate phrasings,
common nicknames, shortened names and singular/plural variations.
Ignore question phrasing such as "What is" or "Who is".

Respond with ONLY a JSON object:
{"correct": true or false, "rationale": "brief explanation", "accepted_answer": "the answer you accepted"}
""".strip()


def normalize_answer(text: str | None) -> str:
    answer = (text or "").lower().strip()
    for group in (QUESTION_STEMS, ARTICLES):
        for prefix in group:
            if answer.startswith(prefix):
                answer = answer[len(prefix) :].lstrip()
                break
    answer = _PUNCTUATION_RE.sub("", answer)
    return " ".join(answer.split())


def heuristic_judge(response: str | None, correct_answer: str | None) -> JudgeResult:
    player = normalize_answer(response)
    correct = normalize_answer(correct_answer)
    if not player or not correct:
        return JudgeResult(False, "Fallback judge: nothing to compare")
    if player in correct or correct in player:
        return JudgeResult(True, "Fallback judge: answers match")
    return JudgeResult(False, "Fallback judge: answers don't match")


@dataclass
class LLMAnswerJudge:
    """Judge collaborator backed by a completion service.

    Any service error or unreadable verdict is settled by the local
    heuristic, so ``on_result`` is always called exactly once.
    """

    llm: LLMParser
    logger: GameLogger | None = None

    def judge(
        self,
        transcript: str,
        correct_answer: str,
        on_result: Callable[[bool, str], None],
    ) -> None:
        if not (transcript or "").strip():
            on_result(False, "No response given")
            return

        user_text = f'Correct answer: "{correct_answer}"\nPlayer\'s response: "{transcript}"'
        settled = False

        def _finish(result: JudgeResult, response_text: str, source: str) -> None:
            nonlocal settled
            if settled:
                return
            settled = True
            if self.logger is not None:
                self.logger.log_llm(
                    role="judge",
                    prompt={"system": JUDGE_SYSTEM_PROMPT, "user": user_text},
                    response_text=response_text,
                    raw_response=None,
                    metadata={"source": source, "correct": result.is_correct},
                )
            on_result(result.is_correct, result.rationale)

        def _on_success(text: str) -> None:
            verdict = self.parse_verdict(text)
            if verdict is None:
                _finish(heuristic_judge(transcript, correct_answer), text, "fallback_unparseable")
            else:
                _finish(verdict, text, "llm")

        def _on_error(reason: str) -> None:
            _finish(heuristic_judge(transcript, correct_answer), reason, "fallback_error")

        try:
            self.llm.complete(JUDGE_SYSTEM_PROMPT, user_text, _on_success, _on_error)
        except Exception as exc:  # noqa: BLE001
            _on_error(str(exc))

    @staticmethod
    def parse_verdict(text: str) -> JudgeResult | None:
        data = try_extract_json_object(text)
        if data is None:
            return None
        correct = coerce_bool(data.get("correct"))
        if correct is None:
            return None
        rationale = str(data.get("rationale") or "").strip()
        return JudgeResult(correct, rationale)
