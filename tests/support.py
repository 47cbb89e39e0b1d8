"""Shared constants and builders for the test suite."""

from decimal import Decimal

from gigmarket.jobs.models import JobDraft

POSTER = "poster-1"
WORKER = "worker-1"
OTHER_WORKER = "worker-2"
STRANGER = "stranger-1"
CARD = "pm_card_visa"
DECLINED_CARD = "pm_card_chargeDeclined"


def make_draft(**overrides) -> JobDraft:
    values = {
        "title": "Move a couch",
        "description": "Carry a couch up two flights of stairs",
        "payment_amount": Decimal("100.00"),
        "category": "moving",
        "location": "Springfield",
        "required_skills": ["Lifting"],
    }
    values.update(overrides)
    return JobDraft(**values)
