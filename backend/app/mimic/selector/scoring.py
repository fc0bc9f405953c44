"""
Selector Scoring

Scores candidate elements against a target's attributes, used to pick the
right element when a stored descriptor matches several.

Weights:
- tag: 10
- id: 30
- role: 15
- text: 20 exact, 10 partial (case-insensitive)
- aria-label: 15
- label: 15
- type: 10
- name: 15
- dataset: 10 for testid, 5 for every other matching key
"""

import logging
from typing import List, Tuple

from .element_info import extract_element_info
from .types import ElementInfo

# Configure logging
logger = logging.getLogger(__name__)


def _same_text(a, b) -> bool:
    return a.strip().lower() == b.strip().lower()


def score_element_match(element: ElementInfo, target: ElementInfo) -> int:
    """Score how well element matches target (higher is better)"""
    if element is None:
        return 0

    score = 0

    if element.tag == target.tag:
        score += 10

    if target.id and element.id == target.id:
        score += 30

    if target.role and element.role == target.role:
        score += 15

    if target.text and element.text:
        target_text = target.text.strip().lower()
        element_text = element.text.strip().lower()
        if target_text == element_text:
            score += 20
        elif target_text in element_text or element_text in target_text:
            score += 10

    if target.aria_label and element.aria_label and _same_text(target.aria_label, element.aria_label):
        score += 15

    if target.label and element.label and _same_text(target.label, element.label):
        score += 15

    if target.type_attr and element.type_attr == target.type_attr:
        score += 10

    if target.name_attr and element.name_attr == target.name_attr:
        score += 15

    if target.dataset and element.dataset:
        if target.dataset.get("testid") and element.dataset.get("testid") == target.dataset["testid"]:
            score += 10
        for key, value in target.dataset.items():
            if value and element.dataset.get(key) == value:
                score += 5

    return score


async def score_multiple_elements(locator, target: ElementInfo) -> List[Tuple[int, int, ElementInfo]]:
    """
    Score every element a locator matches.

    Returns:
        (index, score, element_info) tuples, best first
    """
    count = await locator.count()
    scores = []
    for i in range(count):
        info = await extract_element_info(locator.nth(i))
        scores.append((i, score_element_match(info, target), info))

    scores.sort(key=lambda item: item[1], reverse=True)
    return scores


async def find_best_matching_element(locator, target: ElementInfo):
    """Return the locator itself when it matches at most one element, else nth() of the best match"""
    count = await locator.count()
    if count <= 1:
        return locator

    scores = await score_multiple_elements(locator, target)
    if not scores:
        return locator.first

    best_index, best_score, _ = scores[0]
    logger.debug(f"[SELECTOR] Best of {count} matches is #{best_index} (score {best_score})")
    return locator.nth(best_index)
