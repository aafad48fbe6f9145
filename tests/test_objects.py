"""
Tests for object upload, download, listing and deletion.

Most go through the HTTP surface since the upload buffer and streamed
response are part of the behaviour.
"""
import io
import os
import re

import pytest

from conftest import bearer
from config import UPLOAD_TMP_DIR
from errors import NotFound, UpstreamError, ValidationError
from models import File
from services.buckets import BucketManager
from services.objects import ObjectStore, ObjectStream, buffered_upload


@pytest.fixture
def photos(client, alice):
    resp = client.put("/photos", headers=bearer("token-alice"))
    assert resp.status_code == 201
    return "photos"


def _upload(client, bucket, name, content=b"meow", filename=None, mime="image/png", token="token-alice"):
    return client.put(
        f"/{bucket}/{name}",
        headers=bearer(token),
        files={"file": (filename or name, io.BytesIO(content), mime)},
    )


def _buffer_dir_empty():
    return not os.path.isdir(UPLOAD_TMP_DIR) or os.listdir(UPLOAD_TMP_DIR) == []


class TestPutObject:
    def test_stored_name_is_obfuscated(self, client, photos):
        resp = _upload(client, photos, "cat.png")

        assert resp.status_code == 200
        stored = resp.json()["name"]
        assert re.fullmatch(r"[0-9a-f]{32}\.png", stored)
        assert resp.json()["id"].startswith("file-")

    def test_listing_shows_original_name(self, client, photos):
        _upload(client, photos, "cat.png")

        resp = client.get("/photos", headers=bearer("token-alice"))
        files = resp.json()["files"]
        assert len(files) == 1
        assert files[0]["original_file_name"] == "cat.png"
        assert files[0]["mime_type"] == "image/png"
        assert "user_id" not in files[0]

    def test_uploaded_into_bucket_folder(self, client, drive, db, photos):
        stored = _upload(client, photos, "cat.png").json()["name"]
        record = db.query(File).filter_by(file_name=stored).one()
        assert drive.items[record.drive_file_id]["parent"] == record.bucket.drive_folder_id
        assert drive.items[record.drive_file_id]["name"] == stored

    def test_buffer_removed_after_upload(self, client, photos):
        _upload(client, photos, "cat.png")
        assert _buffer_dir_empty()

    def test_buffer_removed_after_failed_upload(self, client, drive, db, photos):
        drive.fail_upload = True
        resp = _upload(client, photos, "cat.png")

        assert resp.status_code == 502
        assert db.query(File).count() == 0
        assert _buffer_dir_empty()

    def test_missing_file_field(self, client, photos):
        resp = client.put("/photos/cat.png", headers=bearer("token-alice"))
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_unknown_bucket(self, client, alice):
        resp = _upload(client, "nope", "cat.png")
        assert resp.status_code == 404


class TestGetObject:
    def test_round_trip(self, client, photos):
        content = bytes(range(256)) * 10
        stored = _upload(client, photos, "report.pdf", content, mime="application/pdf").json()["name"]

        resp = client.get(f"/photos/{stored}", headers=bearer("token-alice"))

        assert resp.status_code == 200
        assert resp.content == content
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["content-disposition"].startswith('inline; filename="report.pdf"')

    def test_unknown_object(self, client, photos):
        resp = client.get("/photos/0123.png", headers=bearer("token-alice"))
        assert resp.status_code == 404
        assert resp.json() == {"error": "File not found in bucket"}

    def test_non_ascii_display_name(self, client, photos):
        stored = _upload(client, photos, "café.txt", b"x", mime="text/plain").json()["name"]
        resp = client.get(f"/photos/{stored}", headers=bearer("token-alice"))
        assert "filename*=UTF-8''caf%C3%A9.txt" in resp.headers["content-disposition"]

    def test_control_characters_in_name_rejected(self, client, db, drive, photos):
        resp = _upload(client, photos, "a%0D%0AX-Evil: 1.txt", filename="evil.txt", mime="text/plain")

        assert resp.status_code == 400
        assert resp.json() == {"error": "Object name contains control characters"}
        assert db.query(File).count() == 0
        assert [i for i in drive.items.values() if not i.get("folder")] == []

    def test_disposition_fallback_is_header_safe(self):
        stream = ObjectStream(
            body=iter([]),
            mime_type="text/plain",
            display_name='a\r\nX-Evil: "1"\\é.txt',
        )

        header = stream.content_disposition

        assert "\r" not in header and "\n" not in header
        assert header.startswith('inline; filename="a__X-Evil: _1___.txt"; ')
        assert header.endswith("filename*=UTF-8''a%0D%0AX-Evil%3A%20%221%22%5C%C3%A9.txt")


class TestDeleteObject:
    def test_delete(self, client, drive, db, photos):
        stored = _upload(client, photos, "cat.png").json()["name"]

        resp = client.delete(f"/photos/{stored}", headers=bearer("token-alice"))

        assert resp.status_code == 200
        assert db.query(File).count() == 0
        assert [i for i in drive.items.values() if not i.get("folder")] == []

    def test_remote_failure_keeps_record(self, client, drive, db, photos):
        stored = _upload(client, photos, "cat.png").json()["name"]
        record = db.query(File).filter_by(file_name=stored).one()
        drive.fail_delete = {record.drive_file_id}

        resp = client.delete(f"/photos/{stored}", headers=bearer("token-alice"))

        assert resp.status_code == 502
        assert db.query(File).filter_by(file_name=stored).count() == 1


class TestIsolation:
    """Another user's bucket looks exactly like a missing one."""

    @pytest.fixture
    def stored(self, client, bob):
        client.put("/photos", headers=bearer("token-bob"))
        return _upload(client, "photos", "cat.png", token="token-bob").json()["name"]

    def test_get(self, client, alice, stored):
        resp = client.get(f"/photos/{stored}", headers=bearer("token-alice"))
        assert resp.status_code == 404

    def test_delete(self, client, alice, db, stored):
        resp = client.delete(f"/photos/{stored}", headers=bearer("token-alice"))
        assert resp.status_code == 404
        assert db.query(File).count() == 1

    def test_list(self, client, alice, stored):
        resp = client.get("/photos", headers=bearer("token-alice"))
        assert resp.status_code == 404
        assert resp.json() == {"error": "Bucket not found"}


class TestObjectStoreService:
    @pytest.fixture
    def store(self, db, credentials):
        return ObjectStore(db, credentials, BucketManager(db, credentials))

    def test_put_falls_back_to_original_name(self, store, alice, tmp_path):
        store.buckets.create_bucket(alice, "docs")
        path = tmp_path / "buf"
        path.write_bytes(b"data")

        result = store.put_object(alice, "docs", "", str(path), None, "notes.txt")

        obj = store.get_object(alice, "docs", result["name"])
        assert isinstance(obj, ObjectStream)
        assert obj.display_name == "notes.txt"
        assert obj.mime_type == "text/plain"
        assert b"".join(obj.body) == b"data"

    def test_put_without_any_name(self, store, alice, tmp_path):
        store.buckets.create_bucket(alice, "docs")
        path = tmp_path / "buf"
        path.write_bytes(b"data")
        with pytest.raises(ValidationError):
            store.put_object(alice, "docs", None, str(path), None, None)

    def test_recording_failure_removes_drive_copy(self, store, drive, db, alice, tmp_path, monkeypatch):
        store.buckets.create_bucket(alice, "docs")
        path = tmp_path / "buf"
        path.write_bytes(b"data")

        def broken_commit():
            raise RuntimeError("db down")

        monkeypatch.setattr(db, "commit", broken_commit)
        with pytest.raises(RuntimeError):
            store.put_object(alice, "docs", "a.txt", str(path), "text/plain", "a.txt")
        monkeypatch.undo()

        assert [i for i in drive.items.values() if not i.get("folder")] == []

    def test_get_missing_remote_file(self, store, drive, db, alice, tmp_path):
        store.buckets.create_bucket(alice, "docs")
        path = tmp_path / "buf"
        path.write_bytes(b"data")
        stored = store.put_object(alice, "docs", "a.txt", str(path), "text/plain", "a.txt")["name"]
        drive.items.pop(db.query(File).one().drive_file_id)

        with pytest.raises(UpstreamError):
            store.get_object(alice, "docs", stored)

    def test_delete_unknown(self, store, alice):
        store.buckets.create_bucket(alice, "docs")
        with pytest.raises(NotFound):
            store.delete_object(alice, "docs", "missing.txt")


class TestBufferedUpload:
    def test_removed_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with buffered_upload(io.BytesIO(b"abc"), str(tmp_path)) as path:
                with open(path, "rb") as f:
                    assert f.read() == b"abc"
                raise RuntimeError("upload failed")
        assert os.listdir(tmp_path) == []

    def test_missing_source(self, tmp_path):
        with pytest.raises(ValidationError):
            with buffered_upload(None, str(tmp_path)):
                pass
