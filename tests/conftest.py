"""
Pytest configuration and shared fixtures.
"""

import pytest
import json
from pathlib import Path
from typing import Dict, Any

from curtaincall.aliases import AliasTable
from curtaincall.config import Settings
from curtaincall.logger import get_logger, reset_logger
from curtaincall.normalize import Normalizer


LONG_REVIEW = " ".join(["The company sings the score with real warmth and precision."] * 40)


@pytest.fixture(autouse=True)
def quiet_logger(tmp_path):
    """Fresh, file-only logger per test so metrics never leak between tests."""
    reset_logger()
    get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield
    reset_logger()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def small_table() -> AliasTable:
    """Compact alias table for tests that should not depend on the bundled one."""
    return AliasTable.from_dict({
        "version": "test-1",
        "outlets": {
            "nytimes": {"name": "The New York Times", "tier": 1,
                        "aliases": ["new york times", "nyt", "ny times"]},
            "nypost": {"name": "New York Post", "tier": 2,
                       "aliases": ["new york post", "ny post"]},
            "timeout": {"name": "Time Out New York", "tier": 1,
                        "aliases": ["time out", "time out new york"]},
        },
        "critics": {
            "jesse-green": ["jesse green", "j. green"],
            "johnny-oleksinski": ["johnny oleksinski", "johnny oleksinki"],
        },
    })


@pytest.fixture
def normalizer(small_table) -> Normalizer:
    return Normalizer(small_table)


@pytest.fixture
def raw_review() -> Dict[str, Any]:
    """Raw per-source review as it arrives from an aggregator."""
    return {
        "show_id": "hamilton-2015",
        "outlet": "The New York Times",
        "critic": "Jesse Green",
        "url": "https://www.nytimes.com/2015/08/07/theater/review-hamilton.html",
        "raw_text": LONG_REVIEW,
        "sources": ["dtli"],
        "aggregator_signal": "positive",
    }


@pytest.fixture
def resolved_review() -> Dict[str, Any]:
    """Review with a resolved identity triple, ready for scoring."""
    return {
        "show_id": "hamilton-2015",
        "outlet_id": "nytimes",
        "critic_id": "jesse-green",
        "outlet_name": "The New York Times",
        "critic_name": "Jesse Green",
        "url": "https://www.nytimes.com/2015/08/07/theater/review-hamilton.html",
        "cleaned_text": LONG_REVIEW,
        "content_tier": "complete",
        "sources": ["dtli"],
    }


@pytest.fixture
def review_file(tmp_path, raw_review) -> Path:
    path = tmp_path / "reviews.json"
    path.write_text(json.dumps([raw_review]))
    return path
