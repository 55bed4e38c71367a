import random

import pytest

from bookrecommender.aggregation import AggregationEngine
from bookrecommender.errors import ErrorKind
from bookrecommender.models import CRITERIA


@pytest.fixture
def rated(service, classics):
    """Book 1 rated by u1 and u2."""
    service.libraries.create_library("u2", "letture", [1, 3]).unwrap()
    service.ratings.rate_book("u1", "classics", 1, [5, 4, 5, 4, 5], ["a1", "b1", "c1", "d1", "e1"], "f1").unwrap()
    service.ratings.rate_book("u2", "letture", 1, [3, 2, 1, 4, 5], ["a2", "b2", "c2", "d2", "e2"], "f2").unwrap()
    return service


def test_no_ratings_gives_none(service, classics):
    assert service.aggregation.aggregate_ratings(1) is None
    assert service.aggregation.aggregate_ratings(999) is None


def test_means_are_deterministic(rated):
    summary = rated.aggregation.aggregate_ratings(1)
    assert summary.count == 2
    assert summary.means == {
        "stile": 4.0,
        "contenuto": 3.0,
        "gradevolezza": 3.0,
        "originalita": 4.0,
        "edizione": 5.0,
    }
    assert summary.overall == pytest.approx((4.6 + 3.0) / 2)


def test_sampled_notes_come_from_existing_ratings(rated):
    for _ in range(20):
        summary = rated.aggregation.aggregate_ratings(1)
        for index, criterion in enumerate(CRITERIA):
            assert summary.sample_notes[criterion] in {"abcde"[index] + "1", "abcde"[index] + "2"}
        assert summary.overall_note in {"f1", "f2"}


def test_seeded_rng_repeats_samples(rated):
    first = AggregationEngine(rated.catalog, rated.storage, random.Random(7)).aggregate_ratings(1)
    second = AggregationEngine(rated.catalog, rated.storage, random.Random(7)).aggregate_ratings(1)
    assert first.sample_notes == second.sample_notes
    assert first.overall_note == second.overall_note


def test_full_rating_detail_in_storage_order(rated):
    detail = rated.aggregation.full_rating_detail(1)
    assert [r.owner_id for r in detail] == ["u1", "u2"]


def test_recommendation_frequency_across_users(service, classics):
    service.libraries.create_library("u2", "letture", [1]).unwrap()
    service.recommendations.recommend("u1", "classics", 1, [3, 4]).unwrap()
    service.recommendations.recommend("u2", "letture", 1, [4, 5]).unwrap()

    assert service.aggregation.recommendation_frequency(1) == {3: 1, 4: 2, 5: 1}
    assert service.aggregation.recommendation_frequency(2) == {}

    ranked = service.aggregation.most_recommended(1)
    assert [(b.id, n) for b, n in ranked] == [(4, 2), (3, 1), (5, 1)]
    assert [b.id for b, _ in service.aggregation.most_recommended(1, limit=1)] == [4]


def test_book_detail(rated):
    rated.recommendations.recommend("u1", "classics", 1, [2]).unwrap()
    detail = rated.aggregation.book_detail(1).unwrap()
    assert detail.book.title == "Il nome della rosa"
    assert detail.summary.count == 2
    assert [(b.id, n) for b, n in detail.recommended] == [(2, 1)]

    unrated = rated.aggregation.book_detail(5).unwrap()
    assert unrated.summary is None
    assert unrated.recommended == []


def test_book_detail_unknown_book(service):
    assert service.aggregation.book_detail(999).error.kind is ErrorKind.NOT_FOUND
