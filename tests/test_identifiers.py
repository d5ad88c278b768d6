from datetime import datetime, timezone

import pytest

from app.core.time_utils import local_today
from app.services import identifiers
from app.services.identifiers import generate_id, generate_unique_id, is_valid_id


def test_generate_id_format():
    value = generate_id("FPW", now=datetime(2025, 3, 14))

    assert is_valid_id(value)
    prefix, year, suffix = value.split("-")
    assert prefix == "FPW"
    assert year == "2025"
    assert 10000 <= int(suffix) <= 99999


def test_prefix_is_normalized():
    assert generate_id(" inv ", now=datetime(2024, 1, 1)).startswith("INV-2024-")


@pytest.mark.parametrize("prefix", ["", "FP1", "F-W", "ÉPW"])
def test_invalid_prefix_rejected(prefix):
    with pytest.raises(ValueError):
        generate_id(prefix)


@pytest.mark.parametrize(
    "value, ok",
    [
        ("FPW-2025-48213", True),
        ("FPW-2025-4821", False),
        ("fpw-2025-48213", False),
        ("FPW2025-48213", False),
        ("", False),
    ],
)
def test_is_valid_id(value, ok):
    assert is_valid_id(value) is ok


def test_unique_id_redraws_on_collision(monkeypatch):
    draws = iter([0, 0, 7])
    monkeypatch.setattr(identifiers.secrets, "randbelow", lambda n: next(draws))
    taken = {"FPW-2025-10000"}

    value = generate_unique_id("FPW", taken.__contains__, now=datetime(2025, 6, 1))

    assert value == "FPW-2025-10007"


def test_unique_id_gives_up_after_max_attempts(monkeypatch):
    monkeypatch.setattr(identifiers.secrets, "randbelow", lambda n: 0)
    calls = []

    def exists(candidate):
        calls.append(candidate)
        return True

    with pytest.raises(RuntimeError):
        generate_unique_id("FPW", exists, max_attempts=3)
    assert len(calls) == 3


def test_year_defaults_to_current_year():
    value = generate_id("INV")

    assert value.split("-")[1] == str(local_today().year)


def test_year_follows_business_timezone(monkeypatch, settings):
    monkeypatch.setattr(settings, "TIMEZONE", "Asia/Kolkata")
    # 20:00 UTC on New Year's Eve is already 01:30 on 1 January in India
    monkeypatch.setattr(
        identifiers, "utcnow", lambda: datetime(2025, 12, 31, 20, 0, tzinfo=timezone.utc)
    )

    assert generate_id("FPW").startswith("FPW-2026-")
