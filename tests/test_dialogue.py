import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from emerson.services.consolidation import ClarifyingQuestion
from emerson.services.dialogue import ClarificationDialogue, DialogueError


def _questions():
    return [
        ClarifyingQuestion(id="q1", type="duplicate", question="Are Alice and Alicia the same?", options=["Yes", "No"]),
        ClarifyingQuestion(id="q2", type="canon", question="Which chapter 1 is canon?"),
        ClarifyingQuestion(id="q3", type="character", question="Who is the antagonist?"),
    ]


def test_questions_are_asked_in_order():
    dialogue = ClarificationDialogue(_questions())

    assert dialogue.state == "idle"
    assert dialogue.start().id == "q1"
    assert dialogue.answer("q1", "Yes").id == "q2"
    assert dialogue.answer("q2", "The second draft").id == "q3"
    assert dialogue.answer("q3", "The Duke") is None
    assert dialogue.is_done
    assert dialogue.answers == {"q1": "Yes", "q2": "The second draft", "q3": "The Duke"}


def test_answering_out_of_order_still_asks_earlier_question():
    dialogue = ClarificationDialogue(_questions())
    dialogue.start()

    next_question = dialogue.answer("q2", "Draft A")

    assert next_question.id == "q1"
    assert dialogue.answer("q1", "No").id == "q3"


def test_reanswering_overwrites():
    dialogue = ClarificationDialogue(_questions())
    dialogue.start()
    dialogue.answer("q1", "Yes")
    dialogue.answer("q1", "No")

    assert dialogue.answers["q1"] == "No"
    assert dialogue.current_question.id == "q2"


def test_answers_are_stored_verbatim():
    dialogue = ClarificationDialogue(_questions())
    dialogue.start()
    dialogue.answer("q1", "Maybe, they could be sisters")

    assert dialogue.answers["q1"] == "Maybe, they could be sisters"


def test_no_questions_finishes_immediately():
    dialogue = ClarificationDialogue([])

    assert dialogue.start() is None
    assert dialogue.is_done


def test_unknown_question_raises():
    dialogue = ClarificationDialogue(_questions())
    dialogue.start()

    with pytest.raises(DialogueError):
        dialogue.answer("q9", "?")
    assert dialogue.answers == {}


def test_answer_before_start_raises():
    with pytest.raises(DialogueError):
        ClarificationDialogue(_questions()).answer("q1", "Yes")


def test_dialogue_resumes_from_dict():
    dialogue = ClarificationDialogue(_questions())
    dialogue.start()
    dialogue.answer("q1", "Yes")

    restored = ClarificationDialogue.from_dict(dialogue.to_dict())

    assert restored.state == "asking"
    assert restored.current_question.id == "q2"
    assert restored.answers == {"q1": "Yes"}
    assert restored.questions == dialogue.questions
