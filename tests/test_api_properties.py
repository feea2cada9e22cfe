import json
from decimal import Decimal

from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.orm import Session

from bnbmanager import models


def property_payload(**overrides) -> dict:
    payload = {
        "name": "Harbour loft",
        "description": "Top floor, harbour view",
        "location": "Bristol",
        "price_per_night": "120.00",
        "is_available": True,
    }
    payload.update(overrides)
    return payload


def test_read_root(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    assert "running" in response.json()["message"]


def test_create_property(client: TestClient, auth_headers, redis_mock, db_session: Session):
    response = client.post("/properties/", json=property_payload(), headers=auth_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["owner_id"] == "user-1"
    assert Decimal(data["price_per_night"]) == Decimal("120.00")
    assert db_session.query(models.Property).count() == 1
    redis_mock.scan_iter.assert_called_once_with(match="all_properties:*")


def test_create_property_negative_price(client: TestClient, auth_headers):
    response = client.post("/properties/", json=property_payload(price_per_night="-5"), headers=auth_headers)
    assert response.status_code == 422


def test_create_property_requires_auth(client: TestClient):
    response = client.post("/properties/", json=property_payload())
    assert response.status_code in (401, 403)


def test_read_properties_only_lists_available(client: TestClient, make_property, redis_mock):
    listed = make_property(name="Listed")
    make_property(name="Hidden", is_available=False)

    response = client.get("/properties/")

    assert response.status_code == 200
    data = response.json()
    assert [p["id"] for p in data] == [listed.id]
    cache_key, cached_value = redis_mock.set.call_args.args
    assert cache_key == "all_properties:0:100"
    assert json.loads(cached_value)[0]["name"] == "Listed"


def test_read_properties_served_from_cache(client: TestClient, redis_mock):
    cached = [{
        "id": 1, "name": "Cached", "description": "", "location": "Leeds", "price_per_night": "10.00",
        "is_available": True, "image_url": None, "owner_id": "owner-1",
        "created_at": "2030-01-01T00:00:00", "updated_at": "2030-01-01T00:00:00",
    }]
    redis_mock.get.return_value = json.dumps(cached)

    response = client.get("/properties/")

    assert response.status_code == 200
    assert response.json()[0]["name"] == "Cached"
    redis_mock.set.assert_not_called()


def test_read_properties_when_cache_is_down(client: TestClient, make_property, redis_mock):
    make_property()
    redis_mock.get.side_effect = RedisConnectionError("redis down")
    redis_mock.set.side_effect = RedisConnectionError("redis down")

    response = client.get("/properties/")

    assert response.status_code == 200
    assert len(response.json()) == 1


def test_read_property(client: TestClient, make_property):
    prop = make_property(name="Mill house")

    response = client.get(f"/properties/{prop.id}")

    assert response.status_code == 200
    assert response.json()["name"] == "Mill house"


def test_read_property_not_found(client: TestClient):
    response = client.get("/properties/424242")
    assert response.status_code == 404
    assert response.json()["detail"] == "Property not found"


def test_read_all_properties_requires_admin(client: TestClient, auth_headers, admin_headers, make_property):
    make_property(is_available=False)

    assert client.get("/properties/all", headers=auth_headers).status_code == 403

    response = client.get("/properties/all", headers=admin_headers)
    assert response.status_code == 200
    assert len(response.json()) == 1


def test_read_my_properties(client: TestClient, auth_headers, make_property):
    mine = make_property(owner_id="user-1")
    make_property(owner_id="user-2")

    response = client.get("/properties/my", headers=auth_headers)

    assert response.status_code == 200
    assert [p["id"] for p in response.json()] == [mine.id]


def test_update_property_by_owner(client: TestClient, auth_headers, make_property, redis_mock):
    prop = make_property(owner_id="user-1")

    response = client.put(
        f"/properties/{prop.id}", json={"price_per_night": "150.00", "is_available": False}, headers=auth_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["price_per_night"]) == Decimal("150.00")
    assert data["is_available"] is False
    assert data["name"] == prop.name
    redis_mock.delete.assert_any_call(f"property_{prop.id}")


def test_update_property_clears_image(client: TestClient, auth_headers, make_property):
    prop = make_property(owner_id="user-1", image_url="https://img.example/cottage.jpg")

    response = client.put(f"/properties/{prop.id}", json={"image_url": None}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["image_url"] is None


def test_update_property_rejects_null_price(client: TestClient, auth_headers, make_property):
    prop = make_property(owner_id="user-1")

    response = client.put(f"/properties/{prop.id}", json={"price_per_night": None}, headers=auth_headers)

    assert response.status_code == 422


def test_update_property_by_stranger(client: TestClient, other_auth_headers, make_property):
    prop = make_property(owner_id="user-1")

    response = client.put(f"/properties/{prop.id}", json={"name": "Mine now"}, headers=other_auth_headers)

    assert response.status_code == 403


def test_update_property_by_admin(client: TestClient, admin_headers, make_property):
    prop = make_property(owner_id="user-1")

    response = client.put(f"/properties/{prop.id}", json={"name": "Renamed"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["name"] == "Renamed"


def test_delete_property(client: TestClient, auth_headers, make_property, db_session: Session):
    prop = make_property(owner_id="user-1")

    response = client.delete(f"/properties/{prop.id}", headers=auth_headers)

    assert response.status_code == 204
    assert db_session.query(models.Property).count() == 0


def test_delete_property_not_found(client: TestClient, auth_headers):
    response = client.delete("/properties/424242", headers=auth_headers)
    assert response.status_code == 404


def test_price_change_applies_to_new_bookings(client: TestClient, auth_headers, make_property):
    prop = make_property(owner_id="user-1", price_per_night="100")
    client.put(f"/properties/{prop.id}", json={"price_per_night": "90"}, headers=auth_headers)

    response = client.post(
        "/bookings/",
        json={"property_id": prop.id, "check_in": "2030-01-10", "check_out": "2030-01-12"},
        headers=auth_headers,
    )

    assert response.status_code == 201
    assert Decimal(response.json()["total_price"]) == Decimal("180")
