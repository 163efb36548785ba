"""
Catalog tests: owner CRUD, sizes, the 2XL override, pause/publish and uploads.
"""

import io
import json
import os

import pytest

from clubshop.extensions import store
from clubshop.services import merch_service

from conftest import create_merch, image_bytes, image_data_url


class TestCreateMerch:
    def test_create_one_size_item(self, client, owner_headers):
        item = create_merch(client, owner_headers, name="  Club Hat  ", price="25")
        assert item["name"] == "Club Hat"
        assert item["price"] == 25
        assert item["sizes"] == []
        assert item["twoXlPrice"] is None
        assert item["paused"] is False
        assert item["image"].startswith("/uploads/")
        assert item["id"].startswith("item-")

    def test_create_sized_item_with_2xl_override(self, shirt):
        assert shirt["sizes"] == ["S", "M", "L", "XL", "2XL"]
        assert shirt["twoXlPrice"] == 23
        assert shirt["allowInitials"] is True

    def test_price_is_rounded_to_cents(self, client, owner_headers):
        item = create_merch(client, owner_headers, price="19.999")
        assert item["price"] == 20.0

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"name": "  "}, "Product name is required"),
            ({"price": 0}, "Valid price is required"),
            ({"price": -5}, "Valid price is required"),
            ({"price": 10000.01}, "Valid price is required"),
            ({"price": "abc"}, "Valid price is required"),
            ({"price": True}, "Valid price is required"),
            ({"twoXlPrice": 30}, "Enable sizes before setting a 2XL price"),
            ({"includeSizes": True, "twoXlPrice": "cheap"}, "2XL price must be a valid amount"),
        ],
    )
    def test_create_rejects_invalid(self, client, owner_headers, overrides, message):
        payload = {"name": "Hat", "price": 25, "imageDataUrl": image_data_url()}
        payload.update(overrides)
        resp = client.post("/api/admin/merch", json=payload, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == message

    def test_create_requires_image(self, client, owner_headers):
        resp = client.post("/api/admin/merch", json={"name": "Hat", "price": 25}, headers=owner_headers)
        assert resp.status_code == 400

    def test_create_rejects_non_image(self, client, owner_headers):
        resp = client.post("/api/admin/merch", json={
            "name": "Hat",
            "price": 25,
            "imageDataUrl": "data:image/png;base64,aGVsbG8gd29ybGQ=",
        }, headers=owner_headers)
        assert resp.status_code == 400

    def test_create_rejects_oversized_image(self, app, client, owner_headers):
        app.config["MAX_IMAGE_BYTES"] = 16
        resp = client.post("/api/admin/merch", json={
            "name": "Hat", "price": 25, "imageDataUrl": image_data_url(),
        }, headers=owner_headers)
        assert resp.status_code == 400
        assert "must be under" in resp.json["error"]

    def test_invalid_item_leaves_no_upload(self, app, client, owner_headers):
        client.post("/api/admin/merch", json={
            "name": "", "price": 25, "imageDataUrl": image_data_url(),
        }, headers=owner_headers)
        with app.app_context():
            uploads = store.uploads_dir
        assert not os.path.isdir(uploads) or os.listdir(uploads) == []

    def test_multipart_upload(self, client, owner_headers):
        resp = client.post(
            "/api/admin/merch",
            data={
                "name": "Club Mug",
                "price": "12.50",
                "includeSizes": "false",
                "image": (io.BytesIO(image_bytes("JPEG")), "mug.jpg"),
            },
            content_type="multipart/form-data",
            headers=owner_headers,
        )
        assert resp.status_code == 201, resp.json
        assert resp.json["item"]["image"].endswith(".jpg")
        assert resp.json["item"]["price"] == 12.5

    def test_member_cannot_create(self, client, member_headers):
        resp = client.post("/api/admin/merch", json={
            "name": "Hat", "price": 25, "imageDataUrl": image_data_url(),
        }, headers=member_headers)
        assert resp.status_code == 403

    def test_uploaded_image_is_served(self, client, owner_headers):
        item = create_merch(client, owner_headers)
        resp = client.get(item["image"])
        assert resp.status_code == 200
        assert resp.data == image_bytes()

    def test_uploads_reject_traversal(self, client):
        assert client.get("/uploads/..%2Fusers.json").status_code in (400, 404)
        assert client.get("/uploads/missing.png").status_code == 404


class TestListMerch:
    def test_public_list_hides_paused(self, client, owner_headers, member_headers, hat, shirt):
        client.patch(f"/api/admin/merch/{shirt['id']}", json={"paused": True}, headers=owner_headers)

        public = client.get("/api/merch", headers=member_headers)
        assert [i["id"] for i in public.json["items"]] == [hat["id"]]

        admin = client.get("/api/admin/merch", headers=owner_headers)
        assert {i["id"] for i in admin.json["items"]} == {hat["id"], shirt["id"]}

    def test_member_cannot_see_admin_list(self, client, member_headers):
        assert client.get("/api/admin/merch", headers=member_headers).status_code == 403

    def test_default_catalog_is_seeded(self, app, client, member_headers):
        app.config["MERCH_SEED_ENABLED"] = True
        items = client.get("/api/merch", headers=member_headers).json["items"]
        assert [i["id"] for i in items] == ["club-hat"]
        assert items[0]["image"] == "/hat.png"

    def test_emptied_catalog_is_not_reseeded(self, app, client, owner_headers, member_headers):
        app.config["MERCH_SEED_ENABLED"] = True
        client.get("/api/merch", headers=member_headers)
        client.delete("/api/admin/merch/club-hat", headers=owner_headers)
        assert client.get("/api/merch", headers=member_headers).json["items"] == []

    def test_unusable_records_are_skipped(self, app, client, member_headers):
        with app.app_context():
            store.write_collection("merch", [
                {"id": "ok", "name": "Ok", "price": 5, "image": "/x.png", "sizes": ["s", "m"]},
                {"id": "no-price", "name": "Bad", "image": "/x.png"},
                {"id": "", "name": "Bad", "price": 5, "image": "/x.png"},
            ])
        items = client.get("/api/merch", headers=member_headers).json["items"]
        assert [i["id"] for i in items] == ["ok"]
        assert items[0]["sizes"] == list(merch_service.STANDARD_SIZES)


class TestUpdateMerch:
    def test_pause_and_publish(self, client, owner_headers, hat):
        resp = client.patch(f"/api/admin/merch/{hat['id']}", json={"paused": True}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["paused"] is True

        resp = client.patch(f"/api/admin/merch/{hat['id']}", json={"paused": False}, headers=owner_headers)
        assert resp.json["item"]["paused"] is False

    def test_disabling_sizes_clears_2xl_price(self, client, owner_headers, shirt):
        resp = client.patch(f"/api/admin/merch/{shirt['id']}", json={"includeSizes": False}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["sizes"] == []
        assert resp.json["item"]["twoXlPrice"] is None

    def test_set_and_clear_2xl_price(self, client, owner_headers, shirt):
        resp = client.patch(f"/api/admin/merch/{shirt['id']}", json={"twoXlPrice": "26.005"}, headers=owner_headers)
        assert resp.json["item"]["twoXlPrice"] == 26.01

        resp = client.patch(f"/api/admin/merch/{shirt['id']}", json={"twoXlPrice": ""}, headers=owner_headers)
        assert resp.json["item"]["twoXlPrice"] is None

    def test_2xl_price_requires_sizes(self, client, owner_headers, hat):
        resp = client.patch(f"/api/admin/merch/{hat['id']}", json={"twoXlPrice": 30}, headers=owner_headers)
        assert resp.status_code == 400

    def test_enable_sizes_and_set_2xl_together(self, client, owner_headers, hat):
        resp = client.patch(
            f"/api/admin/merch/{hat['id']}",
            json={"includeSizes": True, "twoXlPrice": 28},
            headers=owner_headers,
        )
        assert resp.status_code == 200
        assert resp.json["item"]["twoXlPrice"] == 28

    @pytest.mark.parametrize("payload", [{}, {"price": 1}, {"name": "New"}, ["paused"]])
    def test_rejects_empty_or_unknown_fields(self, client, owner_headers, hat, payload):
        resp = client.patch(f"/api/admin/merch/{hat['id']}", json=payload, headers=owner_headers)
        assert resp.status_code == 400

    def test_failed_patch_changes_nothing(self, app, client, owner_headers, hat):
        client.patch(f"/api/admin/merch/{hat['id']}", json={"paused": True, "twoXlPrice": 30}, headers=owner_headers)
        with app.app_context():
            stored = merch_service.get_item(hat["id"])
        assert stored["paused"] is False

    def test_unknown_item(self, client, owner_headers):
        resp = client.patch("/api/admin/merch/nope", json={"paused": True}, headers=owner_headers)
        assert resp.status_code == 404


class TestDeleteMerch:
    def test_delete_releases_upload(self, app, client, owner_headers, hat):
        with app.app_context():
            path = os.path.join(store.uploads_dir, os.path.basename(hat["image"]))
        assert os.path.exists(path)

        resp = client.delete(f"/api/admin/merch/{hat['id']}", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["removedItem"]["id"] == hat["id"]
        assert not os.path.exists(path)

    def test_delete_keeps_static_images(self, app, client, owner_headers):
        with app.app_context():
            store.write_collection("merch", [{"id": "s", "name": "S", "price": 5, "image": "/hat.png"}])
        assert client.delete("/api/admin/merch/s", headers=owner_headers).status_code == 200

    def test_delete_unknown(self, client, owner_headers):
        assert client.delete("/api/admin/merch/nope", headers=owner_headers).status_code == 404

    def test_merch_file_is_plain_json(self, app, hat):
        with app.app_context():
            with open(store.path_for("merch"), encoding="utf-8") as fh:
                records = json.load(fh)
        assert records[0]["id"] == hat["id"]
