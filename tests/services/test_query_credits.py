from __future__ import annotations

from decimal import Decimal
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dataflow.services.query_history import compute_credits


def test_credits_scale_with_duration():
    assert compute_credits(Decimal("2.000"), 90_000) == Decimal("0.050000")
    assert compute_credits(Decimal("4"), 3_600_000) == Decimal("4.000000")


def test_credits_are_quantised_to_six_places():
    credits = compute_credits(Decimal("1.5"), 1_234)

    assert credits == Decimal("0.000514")
    assert credits.as_tuple().exponent == -6


def test_zero_duration_costs_nothing():
    assert compute_credits(Decimal("8"), 0) == Decimal("0.000000")
