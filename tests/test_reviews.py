from conftest import API

REVIEW = {"title": "Learned a ton", "text": "I learned a lot at this bootcamp", "rating": 8}


def _add_review(client, bootcamp_id, headers, **overrides):
    return client.post(f"{API}/bootcamps/{bootcamp_id}/reviews", json={**REVIEW, **overrides}, headers=headers)


def test_only_users_and_admins_review(client, register, publisher, admin, create_bootcamp):
    bootcamp = create_bootcamp(publisher["headers"])

    assert _add_review(client, bootcamp["_id"], publisher["headers"]).status_code == 403
    assert _add_review(client, bootcamp["_id"], {}).status_code == 401

    user = register(name="Rita Reviewer")
    res = _add_review(client, bootcamp["_id"], user["headers"])
    assert res.status_code == 201
    assert res.json()["data"]["user"] == user["id"]
    assert res.json()["data"]["bootcamp"] == bootcamp["_id"]

    assert _add_review(client, bootcamp["_id"], admin["headers"]).status_code == 201


def test_one_review_per_bootcamp_per_user(client, register, publisher, create_bootcamp):
    bootcamp = create_bootcamp(publisher["headers"])
    user = register(name="Rita Reviewer")

    assert _add_review(client, bootcamp["_id"], user["headers"]).status_code == 201
    res = _add_review(client, bootcamp["_id"], user["headers"], title="Again")
    assert res.status_code == 400
    assert res.json()["error"] == "Duplicate field value entered"


def test_rating_bounds(client, register, publisher, create_bootcamp):
    bootcamp = create_bootcamp(publisher["headers"])
    user = register(name="Rita Reviewer")

    assert _add_review(client, bootcamp["_id"], user["headers"], rating=11).status_code == 400
    assert _add_review(client, bootcamp["_id"], user["headers"], rating=0).status_code == 400


def test_average_rating_follows_reviews(client, register, publisher, create_bootcamp):
    bootcamp = create_bootcamp(publisher["headers"])
    bootcamp_url = f"{API}/bootcamps/{bootcamp['_id']}"
    first = register(name="First Reviewer")
    second = register(name="Second Reviewer")

    _add_review(client, bootcamp["_id"], first["headers"], rating=8)
    review = _add_review(client, bootcamp["_id"], second["headers"], rating=10).json()["data"]
    assert client.get(bootcamp_url).json()["data"]["average_rating"] == 9

    client.put(f"{API}/reviews/{review['_id']}", json={"rating": 5}, headers=second["headers"])
    assert client.get(bootcamp_url).json()["data"]["average_rating"] == 6.5


def test_review_mutation_owner_and_admin_only(client, register, publisher, admin, create_bootcamp):
    bootcamp = create_bootcamp(publisher["headers"])
    author = register(name="Rita Reviewer")
    other = register(name="Other User")
    review = _add_review(client, bootcamp["_id"], author["headers"]).json()["data"]
    url = f"{API}/reviews/{review['_id']}"

    assert client.put(url, json={"title": "Mine now"}, headers=other["headers"]).status_code == 403
    assert client.delete(url, headers=other["headers"]).status_code == 403

    res = client.put(url, json={"title": "Updated"}, headers=author["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["title"] == "Updated"

    res = client.put(url, json={"text": "Moderated"}, headers=admin["headers"])
    assert res.status_code == 200

    assert client.delete(url, headers=admin["headers"]).status_code == 200
    assert client.get(url).status_code == 404
    assert "average_rating" not in client.get(f"{API}/bootcamps/{bootcamp['_id']}").json()["data"]


def test_review_listings(client, register, publisher, create_bootcamp):
    bootcamp = create_bootcamp(publisher["headers"])
    user = register(name="Rita Reviewer")
    review = _add_review(client, bootcamp["_id"], user["headers"]).json()["data"]

    res = client.get(f"{API}/reviews", params={"rating[gte]": "8"})
    body = res.json()
    assert body["count"] == 1
    assert body["data"][0]["bootcamp"]["name"] == bootcamp["name"]

    res = client.get(f"{API}/bootcamps/{bootcamp['_id']}/reviews")
    assert res.json()["count"] == 1

    res = client.get(f"{API}/reviews/{review['_id']}")
    assert res.json()["data"]["title"] == REVIEW["title"]
