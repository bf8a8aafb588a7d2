"""
Answer-key scoring.
"""

from typing import Sequence


def score_answers(detected: Sequence[str], key: Sequence[str]) -> int:
    """
    Count positions where both the detected answer and the key entry are set
    and their trimmed values match exactly. Positions past the end of either
    sequence never match.
    """
    score = 0
    for idx in range(min(len(detected), len(key))):
        answer = (detected[idx] or "").strip()
        expected = (key[idx] or "").strip()
        if answer and expected and answer == expected:
            score += 1
    return score
