from __future__ import annotations

import copy
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


SEVERITY_ISSUES = [
    "acne", "wrinkles", "hyperpigmentation", "pores", "redness", "texture",
    "hydration", "oiliness", "darkCircles",
]

VALID_PAYLOAD = {
    "overallScore": 72,
    "skinType": "oily",
    "fitzpatrickScale": "III",
    "issues": {
        "acne": {"score": 35, "severity": "medium", "areas": ["forehead", "chin"]},
        "wrinkles": {"score": 12, "severity": "low"},
        "hyperpigmentation": {"score": 20.5, "severity": "low", "areas": ["cheeks"]},
        "pores": {"score": 48, "severity": "medium", "areas": ["nose"]},
        "redness": {"score": 15, "severity": "low"},
        "texture": {"score": 64, "severity": "medium"},
        "hydration": {"score": 58, "severity": "medium"},
        "oiliness": {"score": 77, "severity": "high", "areas": ["T-zone"]},
        "darkCircles": {"score": 30, "severity": "low", "areas": ["under eyes"]},
        "symmetry": {"score": 88, "description": "Face is largely symmetrical."},
    },
    "recommendations": {
        "morningRoutine": ["Gentle gel cleanser", "Niacinamide serum", "SPF 50 sunscreen"],
        "eveningRoutine": ["Double cleanse", "BHA toner", "Light moisturizer"],
        "weeklyTreatments": ["Clay mask once a week"],
        "lifestyleTips": ["Drink more water", "Sleep 8 hours"],
    },
    "explainability": "Oily T-zone with moderate acne on the forehead and chin.",
}


@pytest.fixture
def valid_payload() -> dict:
    return copy.deepcopy(VALID_PAYLOAD)
