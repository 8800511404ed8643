"""Shapes rows into the cards the public page and the admin managers show."""

from typing import Dict, Iterable, List, Optional

from schemas import Difficulty, DSAProblem, Identity, Row

OWNER_ACTIONS = ["edit", "delete"]


def build_cards(items: Iterable[Row], identity: Optional[Identity]) -> List[dict]:
    """Edit/delete affordances appear only for a signed-in visitor."""
    actions = list(OWNER_ACTIONS) if identity is not None else []
    return [{**item.model_dump(mode="json"), "actions": list(actions)} for item in items]


def summarize_problems(problems: Iterable[DSAProblem]) -> Dict:
    by_difficulty = {difficulty.value: 0 for difficulty in Difficulty}
    total = solved = 0
    for problem in problems:
        total += 1
        solved += int(problem.solved)
        by_difficulty[problem.difficulty.value] += 1
    return {"total": total, "solved": solved, "by_difficulty": by_difficulty}
