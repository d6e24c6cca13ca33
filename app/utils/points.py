"""
Points engine for score predictions.

Scoring system:
- 5 points: exact score
- 3 points: correct goal difference and correct winner
- 1 point: correct winner (or draw) only
- 0 points: wrong

Everything here is pure so it can be reused by the poll cycle, the admin
endpoints and the CLI alike.
"""

EXACT_POINTS = 5
DIFFERENCE_POINTS = 3
RESULT_POINTS = 1
NO_POINTS = 0

CATEGORIES = ("exact", "difference", "result", "none")

_RESULT_DESCRIPTIONS = {
    "home": "Home win",
    "away": "Away win",
    "draw": "Draw",
}


def get_result(home_score, away_score):
    """Outcome class of a scoreline: 'home', 'away' or 'draw'"""
    if home_score > away_score:
        return "home"
    if away_score > home_score:
        return "away"
    return "draw"


def _format_difference(difference):
    if difference > 0:
        return f"+{difference}"
    return str(difference)


def calculate_points(predicted_home, predicted_away, actual_home, actual_away):
    """
    Score a predicted scoreline against the final one.

    Rules are checked in order and the first match wins.

    Returns:
        dict with ``points``, ``is_correct``, ``category`` and ``description``
    """
    if predicted_home == actual_home and predicted_away == actual_away:
        return {
            "points": EXACT_POINTS,
            "is_correct": True,
            "category": "exact",
            "description": "Exact score! Perfect prediction",
        }

    predicted_result = get_result(predicted_home, predicted_away)
    actual_result = get_result(actual_home, actual_away)
    actual_difference = actual_home - actual_away

    correct_winner = predicted_result == actual_result
    correct_difference = predicted_home - predicted_away == actual_difference

    # Equal differences imply the same winner, but both checks are kept
    if correct_winner and correct_difference:
        return {
            "points": DIFFERENCE_POINTS,
            "is_correct": True,
            "category": "difference",
            "description": (
                "Correct goal difference and winner "
                f"({_format_difference(actual_difference)})"
            ),
        }

    if correct_winner:
        return {
            "points": RESULT_POINTS,
            "is_correct": True,
            "category": "result",
            "description": f"Correct winner ({_RESULT_DESCRIPTIONS[actual_result]})",
        }

    return {
        "points": NO_POINTS,
        "is_correct": False,
        "category": "none",
        "description": "No points scored",
    }


def calculate_total_points(scorelines):
    """
    Total points for a batch of (predicted_home, predicted_away,
    actual_home, actual_away) tuples, with a per-category breakdown.
    """
    total_points = 0
    breakdown = {category: 0 for category in CATEGORIES}

    for predicted_home, predicted_away, actual_home, actual_away in scorelines:
        result = calculate_points(predicted_home, predicted_away, actual_home, actual_away)
        total_points += result["points"]
        breakdown[result["category"]] += 1

    return {"total_points": total_points, "breakdown": breakdown}
