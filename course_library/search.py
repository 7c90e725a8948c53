from __future__ import annotations

import re
from collections.abc import Iterable

from rapidfuzz import fuzz

from .models import Course


# Below this a match is more likely noise than the course the user meant.
MIN_SCORE = 70.0


def _clean(s: str) -> str:
    return re.sub(r"\s+", " ", s.strip()).lower()


def search_courses(courses: Iterable[Course], query: str, min_score: float = MIN_SCORE) -> list[Course]:
    """Courses whose name fuzzily contains `query`, best match first.

    An empty query returns the courses unchanged.
    """
    q = _clean(query)
    if not q:
        return list(courses)

    scored = [(fuzz.partial_ratio(q, _clean(c.name)), c) for c in courses]
    hits = [(score, c) for score, c in scored if score >= min_score]
    hits.sort(key=lambda sc: sc[0], reverse=True)
    return [c for _score, c in hits]
