"""
Unit Tests for card and summary shaping
"""
from schemas import DSAProblem, Identity, Project
from views import build_cards, summarize_problems


def _problem(difficulty: str, solved: bool) -> DSAProblem:
    return DSAProblem(
        id=f"{difficulty}-{solved}", user_id="owner-1", title="Two Sum", platform="LeetCode",
        difficulty=difficulty, category="Arrays", time_complexity="O(n)", space_complexity="O(n)", solved=solved,
    )


class TestBuildCards:
    """Test owner affordances on cards"""

    def test_actions_only_for_signed_in(self):
        project = Project(id="p1", user_id="owner-1", title="Site", description="Mine", technologies=["Python"])

        assert build_cards([project], None)[0]["actions"] == []
        cards = build_cards([project], Identity(id="owner-1"))
        assert cards[0]["actions"] == ["edit", "delete"]
        assert cards[0]["title"] == "Site"

    def test_cards_do_not_share_action_lists(self):
        items = [
            Project(id=str(n), user_id="owner-1", title="Site", description="Mine") for n in range(2)
        ]
        cards = build_cards(items, Identity(id="owner-1"))
        cards[0]["actions"].append("share")
        assert cards[1]["actions"] == ["edit", "delete"]


class TestSummarizeProblems:
    """Test DSA section counters"""

    def test_empty(self):
        assert summarize_problems([]) == {
            "total": 0, "solved": 0, "by_difficulty": {"Easy": 0, "Medium": 0, "Hard": 0},
        }

    def test_counts(self):
        problems = [_problem("Easy", True), _problem("Medium", True), _problem("Medium", False)]
        summary = summarize_problems(problems)
        assert summary["total"] == 3
        assert summary["solved"] == 2
        assert summary["by_difficulty"] == {"Easy": 1, "Medium": 2, "Hard": 0}
