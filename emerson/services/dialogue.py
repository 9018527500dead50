"""Sequential question and answer loop over the consolidation questions."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .consolidation import ClarifyingQuestion

IDLE = "idle"
ASKING = "asking"
DONE = "done"


class DialogueError(RuntimeError):
    """Raised when an answer cannot be accepted in the current dialogue state."""


class ClarificationDialogue:
    """Ask each question once, in order, and collect the answers by id.

    The question list is never modified. After every answer the next
    question is the first one, in original order, that has no answer yet, so
    answering out of order never skips anything. Answers are stored exactly
    as given; re-answering a question overwrites the earlier answer.
    """

    def __init__(
        self,
        questions: Sequence[ClarifyingQuestion],
        answers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.questions: List[ClarifyingQuestion] = list(questions)
        self.answers: Dict[str, str] = dict(answers or {})
        self.state = IDLE
        self.current_question: Optional[ClarifyingQuestion] = None

    @property
    def is_done(self) -> bool:
        return self.state == DONE

    def start(self) -> Optional[ClarifyingQuestion]:
        self._advance()
        return self.current_question

    def answer(self, question_id: str, text: str) -> Optional[ClarifyingQuestion]:
        if self.state == IDLE:
            raise DialogueError("The dialogue has not been started.")
        if not any(question.id == question_id for question in self.questions):
            raise DialogueError(f"Unknown question id: {question_id}")
        self.answers[question_id] = text
        self._advance()
        return self.current_question

    def _advance(self) -> None:
        for question in self.questions:
            if question.id not in self.answers:
                self.state = ASKING
                self.current_question = question
                return
        self.state = DONE
        self.current_question = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questions": [
                {
                    "id": question.id,
                    "type": question.type,
                    "question": question.question,
                    "options": question.options,
                    "context": question.context,
                }
                for question in self.questions
            ],
            "answers": dict(self.answers),
            "state": self.state,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClarificationDialogue":
        dialogue = cls(
            [ClarifyingQuestion.from_dict(item) for item in data.get("questions") or []],
            data.get("answers") or {},
        )
        if data.get("state", IDLE) != IDLE:
            dialogue._advance()
        return dialogue
