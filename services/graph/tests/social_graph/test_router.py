import uuid

import pytest

API = "/api/v1"


@pytest.mark.asyncio
async def test_health(async_client) -> None:
    response = await async_client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "graph"


@pytest.mark.asyncio
async def test_requires_authentication(async_client) -> None:
    response = await async_client.get(f"{API}/connections")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_principal_is_not_authenticated(async_client, auth_headers) -> None:
    response = await async_client.get(f"{API}/connections", headers=auth_headers(uuid.uuid4()))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "not_authenticated"


@pytest.mark.asyncio
async def test_send_connection_embeds_relationship(async_client, make_user, auth_headers) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    response = await async_client.post(
        f"{API}/connections",
        json={"target": {"kind": "user", "id": str(bob.id)}},
        headers=auth_headers(alice.id),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["connection"]["status"] == "pending"
    assert data["relationship"]["connection_status"] == "pending_sent"
    assert data["relationship"]["target"] == {"kind": "user", "id": str(bob.id)}


@pytest.mark.asyncio
async def test_duplicate_request_uses_error_envelope(
    async_client, make_user, auth_headers
) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    body = {"target": {"kind": "user", "id": str(bob.id)}}
    await async_client.post(f"{API}/connections", json=body, headers=auth_headers(alice.id))
    response = await async_client.post(
        f"{API}/connections", json=body, headers=auth_headers(alice.id)
    )
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "already_pending"
    assert error["message"]

    reverse = await async_client.post(
        f"{API}/connections",
        json={"target": {"kind": "user", "id": str(alice.id)}},
        headers=auth_headers(bob.id),
    )
    assert reverse.status_code == 409
    assert reverse.json()["error"]["code"] == "already_pending"


@pytest.mark.asyncio
async def test_acting_as_unowned_business_is_rejected(
    async_client, make_user, make_business, auth_headers
) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    bobs_shop = await make_business(bob, "Bob's Shop")
    response = await async_client.get(
        f"{API}/connections", headers=auth_headers(alice.id, bobs_shop.id)
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "not_authorized"


@pytest.mark.asyncio
async def test_accept_flow_over_http(async_client, make_user, auth_headers) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    sent = await async_client.post(
        f"{API}/connections",
        json={"target": {"kind": "user", "id": str(bob.id)}},
        headers=auth_headers(alice.id),
    )
    connection_id = sent.json()["connection"]["connection_id"]

    incoming = await async_client.get(
        f"{API}/connections/requests", headers=auth_headers(bob.id)
    )
    assert incoming.status_code == 200
    assert [item["id"] for item in incoming.json()["items"]] == [connection_id]
    assert incoming.json()["items"][0]["account"]["name"] == "Alice"

    denied = await async_client.post(
        f"{API}/connections/{connection_id}/accept", headers=auth_headers(alice.id)
    )
    assert denied.status_code == 403

    accepted = await async_client.post(
        f"{API}/connections/{connection_id}/accept", headers=auth_headers(bob.id)
    )
    assert accepted.status_code == 200
    assert accepted.json()["relationship"]["connection_status"] == "accepted"

    listing = await async_client.get(f"{API}/connections", headers=auth_headers(alice.id))
    assert listing.json()["total"] == 1
    assert listing.json()["items"][0]["account"]["id"] == str(bob.id)


@pytest.mark.asyncio
async def test_business_persona_connects_separately(
    async_client, make_user, make_business, auth_headers
) -> None:
    owner, other = await make_user("Owner"), await make_user("Other")
    shop = await make_business(owner, "Shop")
    response = await async_client.post(
        f"{API}/connections",
        json={"target": {"kind": "user", "id": str(other.id)}},
        headers=auth_headers(owner.id, shop.id),
    )
    assert response.status_code == 201
    assert response.json()["connection"]["requester"] == {"kind": "business", "id": str(shop.id)}

    personal = await async_client.get(
        f"{API}/relationships/user/{other.id}", headers=auth_headers(owner.id)
    )
    assert personal.json()["connection_status"] == "none"


@pytest.mark.asyncio
async def test_follow_unfollow(async_client, make_user, auth_headers) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    followed = await async_client.post(
        f"{API}/users/{bob.id}/follow", headers=auth_headers(alice.id)
    )
    assert followed.status_code == 200
    assert followed.json()["follow"]["status"] == "accepted"
    assert followed.json()["relationship"]["follow_status"] == "accepted"

    followers = await async_client.get(f"{API}/me/followers", headers=auth_headers(bob.id))
    assert followers.json()["total"] == 1

    again = await async_client.post(f"{API}/users/{bob.id}/follow", headers=auth_headers(alice.id))
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "already_exists"

    unfollowed = await async_client.delete(
        f"{API}/users/{bob.id}/follow", headers=auth_headers(alice.id)
    )
    assert unfollowed.status_code == 200
    assert unfollowed.json()["relationship"]["follow_status"] == "none"


@pytest.mark.asyncio
async def test_block_then_interactions_fail(async_client, make_user, auth_headers) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    await async_client.post(f"{API}/users/{bob.id}/follow", headers=auth_headers(alice.id))

    blocked = await async_client.post(
        f"{API}/users/{bob.id}/block", headers=auth_headers(alice.id)
    )
    assert blocked.status_code == 200
    data = blocked.json()
    assert data["blocked"] is True
    assert data["removed_follows"] == 1
    assert data["relationship"]["blocked"] is True

    attempt = await async_client.post(
        f"{API}/connections",
        json={"target": {"kind": "user", "id": str(alice.id)}},
        headers=auth_headers(bob.id),
    )
    assert attempt.status_code == 403
    assert attempt.json()["error"]["code"] == "blocked"

    block_list = await async_client.get(f"{API}/me/blocked", headers=auth_headers(alice.id))
    assert block_list.json()["items"][0]["user"]["name"] == "Bob"

    unblocked = await async_client.delete(
        f"{API}/users/{bob.id}/block", headers=auth_headers(alice.id)
    )
    assert unblocked.json()["blocked"] is False


@pytest.mark.asyncio
async def test_batch_status(async_client, make_user, auth_headers) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    await async_client.post(f"{API}/users/{bob.id}/follow", headers=auth_headers(alice.id))
    missing = str(uuid.uuid4())
    response = await async_client.post(
        f"{API}/relationships/batch",
        json={
            "targets": [
                {"kind": "user", "id": str(bob.id)},
                {"kind": "business", "id": missing},
            ]
        },
        headers=auth_headers(alice.id),
    )
    assert response.status_code == 200
    items = response.json()["items"]
    assert items[0]["follow_status"] == "accepted"
    assert items[1]["target"]["id"] == missing
    assert items[1]["connection_status"] == "none"


@pytest.mark.asyncio
async def test_single_status_for_missing_target_is_not_found(
    async_client, make_user, auth_headers
) -> None:
    alice = await make_user("Alice")
    response = await async_client.get(
        f"{API}/relationships/user/{uuid.uuid4()}", headers=auth_headers(alice.id)
    )
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"
