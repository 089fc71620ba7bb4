import pytest

import vfurniture.reviews as reviews_module

from conftest import login_as, register

JANE = "jane@example.com"
MAX = "max@example.com"


def post_review(client, product_id, rating=5, comment="Solid and comfortable.", **extra):
    return client.post(
        "/api/reviews",
        json={"productId": product_id, "rating": rating, "comment": comment, **extra},
    )


@pytest.fixture
def review(client, user, catalog):
    """Jane reviews the sofa; Max is registered and signed in afterwards."""
    resp = post_review(client, catalog["sofa"], rating=4, title="Nice")
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    assert register(client, "Max Roe", MAX).status_code == 201
    return resp.json()["review"]


def test_create_and_list(client, user, catalog, seed):
    resp = post_review(client, catalog["sofa"], rating="4", title="  Nice  ")
    assert resp.status_code == 200
    created = resp.json()["review"]
    assert created["rating"] == 4
    assert created["title"] == "Nice"
    assert created["status"] == "approved"
    assert created["user"]["name"] == "Jane Doe"

    body = client.get("/api/reviews", params={"productId": catalog["sofa"]}).json()
    assert [r["id"] for r in body["reviews"]] == [created["id"]]
    assert body["userHasReviewed"] is True
    assert body["pagination"] == {"currentPage": 1, "totalPages": 1, "totalReviews": 1, "hasMore": False}

    (product,) = seed.query("SELECT ratings, review_count FROM products WHERE id = ?", (catalog["sofa"],))
    assert product == {"ratings": 4.0, "review_count": 1}


def test_create_validation(client, user, catalog):
    assert client.post("/api/reviews", json={"productId": catalog["sofa"]}).status_code == 400
    assert post_review(client, catalog["sofa"], rating=6).status_code == 400
    assert post_review(client, catalog["sofa"], rating="five").status_code == 400
    assert post_review(client, catalog["sofa"], comment="   short   ").status_code == 400
    assert post_review(client, "missing").status_code == 404


def test_one_review_per_product(client, user, catalog):
    assert post_review(client, catalog["sofa"]).status_code == 200
    assert post_review(client, catalog["sofa"]).status_code == 400


def test_list_requires_product_id(client):
    assert client.get("/api/reviews").status_code == 400


def test_statistics(client, review, catalog):
    assert post_review(client, catalog["sofa"], rating=5).status_code == 200

    body = client.get("/api/reviews", params={"productId": catalog["sofa"]}).json()
    stats = body["statistics"]
    assert stats["totalReviews"] == 2
    assert stats["averageRating"] == 4.5
    assert stats["breakdown"] == {"5": 1, "4": 1, "3": 0, "2": 0, "1": 0}
    assert stats["verifiedCount"] == 0

    only_fours = client.get("/api/reviews", params={"productId": catalog["sofa"], "rating": "4"}).json()
    assert [r["rating"] for r in only_fours["reviews"]] == [4]


def test_anonymous_listing(client, review, catalog):
    client.cookies.clear()
    body = client.get("/api/reviews", params={"productId": catalog["sofa"]}).json()
    assert body["userHasReviewed"] is False
    assert body["reviews"][0]["userVote"] is None


def test_vote_toggle_and_switch(client, review):
    def vote(action):
        return client.post("/api/reviews/vote", json={"reviewId": review["id"], "action": action})

    first = vote("helpful").json()
    assert (first["helpfulVotes"], first["unhelpfulVotes"], first["userVote"]) == (1, 0, "helpful")

    switched = vote("unhelpful").json()
    assert (switched["helpfulVotes"], switched["unhelpfulVotes"], switched["userVote"]) == (0, 1, "unhelpful")

    removed = vote("unhelpful").json()
    assert (removed["helpfulVotes"], removed["unhelpfulVotes"], removed["userVote"]) == (0, 0, None)


def test_vote_shows_in_listing(client, review, catalog):
    client.post("/api/reviews/vote", json={"reviewId": review["id"], "action": "helpful"})
    body = client.get("/api/reviews", params={"productId": catalog["sofa"]}).json()
    assert body["reviews"][0]["userVote"] == "helpful"


def test_vote_validation(client, review):
    assert client.post("/api/reviews/vote", json={"reviewId": review["id"]}).status_code == 400
    assert client.post("/api/reviews/vote", json={"reviewId": review["id"], "action": "love"}).status_code == 400
    assert client.post("/api/reviews/vote", json={"reviewId": "nope", "action": "helpful"}).status_code == 404


def test_cannot_vote_or_report_own_review(client, review, seed):
    login_as(client, JANE)
    assert client.post("/api/reviews/vote", json={"reviewId": review["id"], "action": "helpful"}).status_code == 400
    assert client.post("/api/reviews/report", json={"reviewId": review["id"]}).status_code == 400

    (row,) = seed.query("SELECT reported_count, helpful_votes FROM reviews")
    assert row == {"reported_count": 0, "helpful_votes": 0}


def test_reports_push_review_into_moderation(client, review, catalog, seed):
    for n in range(1, 5):
        resp = client.post("/api/reviews/report", json={"reviewId": review["id"]})
        assert resp.json() == {"message": "Review reported successfully", "reportedCount": n, "status": "approved"}

    resp = client.post("/api/reviews/report", json={"reviewId": review["id"]})
    assert resp.json()["status"] == "pending"

    body = client.get("/api/reviews", params={"productId": catalog["sofa"]}).json()
    assert body["reviews"] == []
    assert body["statistics"]["totalReviews"] == 0

    (product,) = seed.query("SELECT review_count FROM products WHERE id = ?", (catalog["sofa"],))
    assert product["review_count"] == 0


def test_delete_own_review_only(client, review, seed):
    assert client.delete(f"/api/reviews/{review['id']}").status_code == 403

    login_as(client, JANE)
    assert client.delete(f"/api/reviews/{review['id']}").status_code == 200
    assert client.delete(f"/api/reviews/{review['id']}").status_code == 404
    assert seed.query("SELECT * FROM reviews") == []


def test_report_counts_from_stored_value(client, review, seed, monkeypatch):
    original = reviews_module.get_review

    async def loaded_then_reported_elsewhere(db, review_id):
        loaded = await original(db, review_id)
        seed.run("UPDATE reviews SET reported_count = 4 WHERE id = ?", (review_id,))
        return loaded

    monkeypatch.setattr(reviews_module, "get_review", loaded_then_reported_elsewhere)
    resp = client.post("/api/reviews/report", json={"reviewId": review["id"]})

    assert resp.json()["reportedCount"] == 5
    assert resp.json()["status"] == "pending"
    (row,) = seed.query("SELECT reported_count, status FROM reviews")
    assert row == {"reported_count": 5, "status": "pending"}
