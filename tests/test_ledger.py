"""Tests for reputation point rules and level projection."""

import pytest

from noteneo.ledger import (
    CONTRIBUTOR_POINTS,
    TAKEDOWN_PENALTY,
    publish_credit,
    publish_deltas,
    standing_for,
    takedown_delta,
)


@pytest.mark.parametrize("score", [1, 5, 8])
def test_publish_credit_without_bonus(score):
    assert publish_credit(score) == 10


@pytest.mark.parametrize("score", [9, 10])
def test_publish_credit_with_quality_bonus(score):
    assert publish_credit(score) == 30


def test_publish_deltas_credit_contributors_once():
    deltas = publish_deltas("u1", 9, ["u1", "u2", "u2", "u3"])
    by_user = {(d.user_id, d.reason): d.delta for d in deltas}
    assert by_user == {
        ("u1", "publish"): 30,
        ("u2", "publish_contributor"): CONTRIBUTOR_POINTS,
        ("u3", "publish_contributor"): CONTRIBUTOR_POINTS,
    }


def test_takedown_delta_is_flat_penalty():
    delta = takedown_delta("u1")
    assert delta.delta == -TAKEDOWN_PENALTY == -50
    assert delta.reason == "takedown"


@pytest.mark.parametrize(
    "points,level,badge",
    [
        (-120, 1, "Novice"),
        (0, 1, "Novice"),
        (49, 1, "Novice"),
        (50, 2, "Contributor"),
        (199, 2, "Contributor"),
        (200, 3, "Helper"),
        (499, 3, "Helper"),
        (500, 4, "Expert"),
        (10_000, 4, "Expert"),
    ],
)
def test_standing_tiers(points, level, badge):
    standing = standing_for(points)
    assert (standing.level, standing.badge) == (level, badge)
