from typing import Any, Dict, List
from urllib.parse import urlparse

from .aliases import UNKNOWN_ID
from .cascade import TIER_PRIORITY, parse_signal
from .textclean import CONTENT_TIERS

IDENTITY_FIELDS = ["show_id", "outlet_id", "critic_id"]
OPTIONAL_STR_FIELDS = [
    "outlet_name",
    "critic_name",
    "url",
    "publish_date",
    "raw_text",
    "cleaned_text",
    "scoring_version",
]
MAX_MODEL_SCORES = 3
OUTLET_TIERS = (1, 2, 3)


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_url(v: str) -> bool:
    try:
        p = urlparse(v)
        return bool(p.scheme in ("http", "https") and p.netloc)
    except ValueError:
        return False


def _is_score(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and 0 <= v <= 100


def validate_override(override: Any) -> List[str]:
    if not isinstance(override, dict):
        return ["Field 'manual_override' must be an object with score and note"]
    errors = []
    if not _is_score(override.get("score")):
        errors.append("Field 'manual_override.score' must be a number 0-100")
    if not _is_non_empty_str(override.get("note")):
        errors.append("Field 'manual_override.note' is required for a manual override")
    return errors


def validate_review(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    A record with any error is rejected whole.
    """
    errors: List[str] = []

    # Identity triple
    for f in IDENTITY_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")
        elif data[f] == UNKNOWN_ID and f != "show_id":
            errors.append(f"Field '{f}' could not be resolved to a known identity")

    for f in OPTIONAL_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    if _is_non_empty_str(data.get("url")) and not _valid_url(data["url"]):
        errors.append("Field 'url' must be a valid absolute URL (scheme + host)")

    tier = data.get("content_tier")
    if tier is not None and tier not in CONTENT_TIERS:
        errors.append(f"Field 'content_tier' must be one of {', '.join(CONTENT_TIERS)}")

    outlet_tier = data.get("outlet_tier")
    if outlet_tier is not None and outlet_tier not in OUTLET_TIERS:
        errors.append("Field 'outlet_tier' must be 1, 2 or 3")

    excerpts = data.get("excerpts")
    if excerpts is not None and (
        not isinstance(excerpts, dict) or not all(isinstance(v, str) for v in excerpts.values())
    ):
        errors.append("Field 'excerpts' must map source names to strings")

    sources = data.get("sources")
    if sources is not None and (
        not isinstance(sources, list) or not all(isinstance(s, str) for s in sources)
    ):
        errors.append("Field 'sources' must be a list of strings")

    rating = data.get("explicit_rating")
    if rating is not None and (isinstance(rating, bool) or not isinstance(rating, (str, int, float))):
        errors.append("Field 'explicit_rating' must be a string or number if provided")

    signal = data.get("aggregator_signal")
    if signal is not None and parse_signal(signal) is None:
        errors.append("Field 'aggregator_signal' must be positive, neutral or negative")

    if data.get("manual_override") is not None:
        errors.extend(validate_override(data["manual_override"]))

    model_scores = data.get("model_scores")
    if model_scores is not None and (
        not isinstance(model_scores, list) or len(model_scores) > MAX_MODEL_SCORES
    ):
        errors.append(f"Field 'model_scores' must be a list of at most {MAX_MODEL_SCORES} judgments")

    score = data.get("score")
    if score is not None:
        if not (isinstance(score, int) and _is_score(score)):
            errors.append("Field 'score' must be an integer 0-100")
        if data.get("score_source") not in TIER_PRIORITY:
            errors.append("Field 'score_source' must name the cascade tier that produced the score")

    return errors
