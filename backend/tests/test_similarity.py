"""Tests for user-to-user similarity."""
from uuid import uuid4

import pytest

from readnext.services.similarity import find_similar_users, jaccard, min_shared_items, user_similarity


def test_jaccard():
    # {a, b} vs {b, c}
    assert jaccard(1, 2, 2) == pytest.approx(1 / 3)
    assert jaccard(0, 0, 0) == 0.0


def test_min_shared_items_scales_with_library():
    assert min_shared_items(3) == 2
    assert min_shared_items(50) == 5


def test_user_similarity_blends_overlap_and_rating_agreement():
    # identical libraries, identical ratings
    assert user_similarity(2, 2, 2, 0.0) == pytest.approx(1.0)
    # identical libraries, maximal disagreement
    assert user_similarity(2, 2, 2, 5.0) == pytest.approx(0.7)
    # no co-rated items: neutral rating term
    assert user_similarity(2, 2, 2, None) == pytest.approx(0.85)


def test_fewer_than_three_held_items_yields_no_similar_users(repo, user_id):
    items = [repo.add_item() for _ in range(2)]
    other = uuid4()
    for item in items:
        repo.hold(user_id, item)
        repo.hold(other, item)

    assert find_similar_users(repo, user_id, [i.id for i in items]) == []


def test_similar_users_ranked_and_filtered(repo, user_id):
    items = [repo.add_item() for _ in range(4)]
    for item in items:
        repo.hold(user_id, item, rating=4)

    close, loose, stranger = uuid4(), uuid4(), uuid4()
    for item in items[:3]:
        repo.hold(close, item, rating=4)
    for item in items[:2]:
        repo.hold(loose, item, rating=2)
    # only one shared item: below the minimum overlap
    repo.hold(stranger, items[0], rating=4)

    similar = find_similar_users(repo, user_id, [i.id for i in items])

    assert [s.user_id for s in similar] == [close, loose]
    assert similar[0].shared_items == 3
    assert similar[0].similarity == pytest.approx(0.7 * 3 / 4 + 0.3)
    assert similar[1].similarity == pytest.approx(0.7 * 2 / 4 + 0.3 * (1 - 2 / 5))
    assert all(0.0 <= s.similarity <= 1.0 for s in similar)


def test_similar_users_capped(repo, user_id):
    items = [repo.add_item() for _ in range(3)]
    for item in items:
        repo.hold(user_id, item)
    for _ in range(25):
        other = uuid4()
        for item in items:
            repo.hold(other, item)

    assert len(find_similar_users(repo, user_id, [i.id for i in items])) == 20


def test_equal_similarity_prefers_more_shared_items(repo, user_id):
    items = [repo.add_item() for _ in range(4)]
    for item in items:
        repo.hold(user_id, item)

    # both reach jaccard 0.5 with no co-rated items: 2/4 versus 3/6
    fewer, more = uuid4(), uuid4()
    for item in items[:2]:
        repo.hold(fewer, item)
    for item in items[:3]:
        repo.hold(more, item)
    for _ in range(2):
        repo.hold(more, repo.add_item())

    similar = find_similar_users(repo, user_id, [i.id for i in items])

    assert similar[0].similarity == similar[1].similarity
    assert [s.user_id for s in similar] == [more, fewer]
    assert [s.shared_items for s in similar] == [3, 2]
