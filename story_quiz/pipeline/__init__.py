"""Question → three-option answer set pipeline.

Entry points:
  answer_question  - question text + story context → QuizTurn
  run_turn         - recorded audio → transcription → answer_question

Building blocks (also used directly in tests):
  build_answer_set      - scoring, distractor selection/repair, assembly
  render_option_images  - concurrent illustration fan-out

Errors reaching the caller: QuestionNotHeardError (nothing transcribed) and
QuizTurnError (text services kept failing after retries).
"""

from .orchestrator import (  # noqa: F401
    GENERIC_ERROR,
    NOT_HEARD_ERROR,
    QuestionNotHeardError,
    QuizTurnError,
    answer_question,
    build_answer_set,
    render_option_images,
    run_turn,
)
