import base64
import uuid

import pytest
from requests_toolbelt.multipart.encoder import MultipartEncoder

from routes import cars, images
from services.linking_service import create_new

from helpers import call, fetch_car, fetch_links, make_request


def _own_car(user_id, plate="ABC1234", pin="1234"):
    return uuid.UUID(create_new(user_id, {"license_plate": plate}, pin)["car"]["id"])


def test_requests_without_token_are_unauthorized():
    status, body = call(cars.user_cars, make_request("GET", "/api/cars/user"))
    assert status == 401
    assert body["success"] is False


def test_options_preflight():
    resp = cars.link_car.build().get_user_function()(make_request("OPTIONS", "/api/cars/link"))
    assert resp.status_code == 204
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


def test_create_car_json(user_id, blob_store, png_bytes):
    payload = {
        "license_plate": "abc 1234",
        "pin_code": "1234",
        "brand": "Seat",
        "year": "2019",
        "car_image": "data:image/png;base64," + base64.b64encode(png_bytes()).decode(),
    }

    status, body = call(cars.create_car, make_request("POST", "/api/cars/create", user_id=user_id, json_body=payload))

    assert status == 201
    assert body["success"] is True
    assert body["data"]["is_primary"] is True
    assert body["data"]["car"]["license_plate"] == "ABC1234"
    assert body["data"]["car"]["year"] == 2019
    assert body["data"]["image_url"].startswith("https://cdn.test/media/car_images/")
    assert len(blob_store.blobs) == 1


def test_create_car_ignores_non_image_payload(user_id, blob_store):
    payload = {"license_plate": "ABC1234", "pin_code": "1234", "car_image": "hello"}

    status, body = call(cars.create_car, make_request("POST", "/api/cars/create", user_id=user_id, json_body=payload))

    assert status == 201
    assert body["data"]["image_url"] is None
    assert blob_store.blobs == {}


def test_create_car_multipart(user_id, blob_store, png_bytes):
    enc = MultipartEncoder(fields={
        "license_plate": "MPT0001",
        "pin_code": "123456",
        "color": "blue",
        "car_image": ("car.png", png_bytes(), "image/png"),
    })
    req = make_request(
        "POST", "/api/cars/create", user_id=user_id,
        body=enc.to_string(), headers={"Content-Type": enc.content_type},
    )

    status, body = call(cars.create_car, req)

    assert status == 201
    assert body["data"]["car"]["color"] == "blue"
    assert body["data"]["image_url"] is not None


def test_create_car_multipart_rejects_bad_image_type(user_id):
    enc = MultipartEncoder(fields={
        "license_plate": "MPT0001",
        "pin_code": "1234",
        "car_image": ("doc.pdf", b"%PDF-1.4", "application/pdf"),
    })
    req = make_request(
        "POST", "/api/cars/create", user_id=user_id,
        body=enc.to_string(), headers={"Content-Type": enc.content_type},
    )

    status, body = call(cars.create_car, req)

    assert status == 422
    assert "car_image" in body["errors"]


def test_create_car_validation_errors(user_id):
    payload = {"license_plate": "", "pin_code": "12", "year": 1800, "vin": "X" * 18}

    status, body = call(cars.create_car, make_request("POST", "/api/cars/create", user_id=user_id, json_body=payload))

    assert status == 422
    assert set(body["errors"]) == {"license_plate", "pin_code", "year", "vin"}


def test_create_car_duplicate_plate(user_id):
    _own_car(user_id, "ABC1234")
    payload = {"license_plate": "ABC1234", "pin_code": "1234"}

    status, body = call(cars.create_car, make_request("POST", "/api/cars/create", user_id=user_id, json_body=payload))

    assert status == 422
    assert "license_plate" in body["errors"]


def test_link_car_outcomes(user_id, make_user):
    owner = make_user()
    _own_car(owner, "ABC1234", "1234")

    def link(plate, pin):
        req = make_request("POST", "/api/cars/link", user_id=user_id,
                           json_body={"license_plate": plate, "pin_code": pin})
        return call(cars.link_car, req)

    assert link("ZZZ0000", "9999")[0] == 404
    assert link("ABC1234", "0000")[0] == 401
    assert link("ABC1234", "12")[0] == 422

    status, body = link("ABC1234", "1234")
    assert status == 201
    assert body["data"]["is_primary"] is True
    assert "pin_code" not in body["data"]["car"]

    assert link("ABC1234", "1234")[0] == 409


def test_list_cars(user_id):
    car = _own_car(user_id)

    status, body = call(cars.user_cars, make_request("GET", "/api/cars/user", user_id=user_id))

    assert status == 200
    assert [c["id"] for c in body["data"]["cars"]] == [str(car)]
    assert body["data"]["primary_car"]["id"] == str(car)
    assert body["data"]["last_used_car"]["id"] == str(car)


def test_primary_last_used_and_unlink(user_id, make_user):
    first = _own_car(user_id, "AAA1111")
    second = _own_car(make_user(), "BBB2222", "2222")
    call(cars.link_car, make_request("POST", "/api/cars/link", user_id=user_id,
                                     json_body={"license_plate": "BBB2222", "pin_code": "2222"}))

    def post(handler, route, car_id, method="POST"):
        req = make_request(method, f"/api/cars/{car_id}/{route}", user_id=user_id,
                           route_params={"car_id": str(car_id)})
        return call(handler, req)

    status, body = post(cars.primary_car, "primary", second)
    assert status == 200
    assert body["data"]["car"]["is_primary"] is True

    assert post(cars.last_used_car, "last-used", first)[0] == 200

    status, _ = post(cars.unlink_car, "unlink", second, method="DELETE")
    assert status == 200
    assert fetch_links(user_id)[first][0] is True

    status, body = post(cars.unlink_car, "unlink", first, method="DELETE")
    assert status == 422
    assert first in fetch_links(user_id)

    assert post(cars.primary_car, "primary", second)[0] == 403
    assert post(cars.primary_car, "primary", "not-a-uuid")[0] == 400


def test_car_image_routes(user_id, make_user, blob_store, png_bytes):
    car = _own_car(user_id)
    enc = MultipartEncoder(fields={"car_image": ("car.png", png_bytes(), "image/png")})
    req = make_request(
        "POST", f"/api/cars/{car}/image", user_id=user_id,
        body=enc.to_string(), headers={"Content-Type": enc.content_type},
        route_params={"car_id": str(car)},
    )

    status, body = call(images.car_image, req)
    assert status == 200
    assert body["data"]["image_url"] is not None
    assert fetch_car(car).image_ref in blob_store.blobs

    stranger = make_user()
    req = make_request("DELETE", f"/api/cars/{car}/image", user_id=stranger, route_params={"car_id": str(car)})
    assert call(images.car_image, req)[0] == 404

    req = make_request("DELETE", f"/api/cars/{car}/image", user_id=user_id, route_params={"car_id": str(car)})
    status, body = call(images.car_image, req)
    assert status == 200
    assert body["data"]["deleted"] is True
    assert fetch_car(car).image_ref is None


def test_car_image_upload_requires_image(user_id):
    car = _own_car(user_id)
    req = make_request("POST", f"/api/cars/{car}/image", user_id=user_id,
                       json_body={}, route_params={"car_id": str(car)})

    status, body = call(images.car_image, req)

    assert status == 422
    assert body["errors"]["car_image"] == ["The image is required"]


@pytest.mark.parametrize("value", [12345, True, ["data:image/png;base64,AAAA"], {"uri": "x"}])
def test_image_routes_reject_non_string_payload(user_id, value):
    car = _own_car(user_id)
    req = make_request("POST", f"/api/cars/{car}/image", user_id=user_id,
                       json_body={"car_image": value}, route_params={"car_id": str(car)})

    status, body = call(images.car_image, req)

    assert status == 422
    assert "car_image" in body["errors"]

    req = make_request("POST", "/api/user/profile-image", user_id=user_id, json_body={"profile_image": value})
    status, body = call(images.profile_image, req)

    assert status == 422
    assert "profile_image" in body["errors"]


def test_profile_image_routes(user_id, png_bytes):
    data_uri = "data:image/png;base64," + base64.b64encode(png_bytes()).decode()
    req = make_request("POST", "/api/user/profile-image", user_id=user_id, json_body={"profile_image": data_uri})

    status, body = call(images.profile_image, req)
    assert status == 200
    assert body["data"]["profile_image"].startswith("https://cdn.test/media/profile_images/")

    status, body = call(images.profile_image, make_request("DELETE", "/api/user/profile-image", user_id=user_id))
    assert status == 200
    assert body["data"] == {"deleted": True}
