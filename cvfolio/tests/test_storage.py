"""Tests for the object store backends and the orphan sweep"""
import os
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, ConnectTimeoutError

from cvfolio.app.core.config import settings
from cvfolio.app.core.errors import StorageError, TransientNetworkError
from cvfolio.app.db import session as session_module
from cvfolio.app.models.cv_version import CVVersion
from cvfolio.app.services import cv_version_service
from cvfolio.app.services.storage_service import (
    LocalObjectStore,
    S3ObjectStore,
    get_object_store,
)
from cvfolio.app.tasks.cleanup import sweep_orphaned_blobs
from cvfolio.app.utils.file_size import format_file_size


def _client_error(code="AccessDenied", op="PutObject"):
    return ClientError({"Error": {"Code": code, "Message": "nope"}}, op)


def test_local_put_get_delete(store):
    store.put("cv/1/v1_a.pdf", b"hello")
    assert store.get("cv/1/v1_a.pdf") == b"hello"
    store.delete("cv/1/v1_a.pdf")
    store.delete("cv/1/v1_a.pdf")  # idempotent
    with pytest.raises(StorageError):
        store.get("cv/1/v1_a.pdf")


def test_local_resolve_url(store):
    assert store.resolve_url("cv/1/v1_a.pdf") == "/uploads/cv/1/v1_a.pdf"


@pytest.mark.parametrize("key", ["../etc/passwd", "/abs/key", "cv/../../x"])
def test_local_rejects_escaping_keys(store, key):
    with pytest.raises(StorageError):
        store.put(key, b"x")


def test_local_list_keys(store):
    store.put("cv/1/v1_a.pdf", b"1")
    store.put("cv/2/v1_b.pdf", b"2")
    store.put("other/x.bin", b"3")
    assert store.list_keys("cv") == ["cv/1/v1_a.pdf", "cv/2/v1_b.pdf"]
    assert store.list_keys("missing") == []


def test_s3_put_passes_content_type():
    client = MagicMock()
    s3 = S3ObjectStore(bucket="cv-files", client=client)
    s3.put("cv/1/v1_a.pdf", b"pdf", "application/pdf")
    client.put_object.assert_called_once_with(
        Bucket="cv-files", Key="cv/1/v1_a.pdf", Body=b"pdf", ContentType="application/pdf"
    )


def test_s3_client_error_is_storage_error():
    client = MagicMock()
    client.put_object.side_effect = _client_error()
    with pytest.raises(StorageError) as exc:
        S3ObjectStore(bucket="cv-files", client=client).put("k", b"x")
    assert "AccessDenied" in exc.value.message


def test_s3_timeout_is_transient():
    client = MagicMock()
    client.get_object.side_effect = ConnectTimeoutError(endpoint_url="https://s3.example.com")
    with pytest.raises(TransientNetworkError):
        S3ObjectStore(bucket="cv-files", client=client).get("k")


def test_s3_get_reads_body():
    client = MagicMock()
    client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"bytes"))}
    assert S3ObjectStore(bucket="cv-files", client=client).get("k") == b"bytes"


def test_s3_delete_error_is_storage_error():
    client = MagicMock()
    client.delete_object.side_effect = _client_error("InternalError", "DeleteObject")
    with pytest.raises(StorageError):
        S3ObjectStore(bucket="cv-files", client=client).delete("k")


def test_s3_resolve_url(monkeypatch):
    monkeypatch.setattr(settings, "aws_region", "eu-central-1")
    url = S3ObjectStore(bucket="cv-files", client=MagicMock()).resolve_url("cv/1/v1_a.pdf")
    assert url == "https://cv-files.s3.eu-central-1.amazonaws.com/cv/1/v1_a.pdf"


def test_s3_list_keys_paginates():
    modified = datetime(2026, 3, 1, tzinfo=timezone.utc)
    client = MagicMock()
    client.get_paginator.return_value.paginate.return_value = [
        {"Contents": [{"Key": "cv/1/a.pdf", "LastModified": modified}]},
        {"Contents": [{"Key": "cv/2/b.pdf", "LastModified": modified}]},
        {},
    ]
    s3 = S3ObjectStore(bucket="cv-files", client=client)
    assert s3.list_keys("cv") == ["cv/1/a.pdf", "cv/2/b.pdf"]
    assert s3.list_objects("cv")[0] == ("cv/1/a.pdf", modified)


def test_s3_without_credentials(monkeypatch):
    monkeypatch.setattr(settings, "aws_access_key_id", "")
    with pytest.raises(StorageError):
        S3ObjectStore(bucket="cv-files").put("k", b"x")


def test_get_object_store_selection(monkeypatch):
    monkeypatch.setattr(settings, "storage_backend", "local")
    assert isinstance(get_object_store(), LocalObjectStore)
    monkeypatch.setattr(settings, "storage_backend", "s3")
    assert isinstance(get_object_store(), S3ObjectStore)
    monkeypatch.setattr(settings, "storage_backend", "auto")
    monkeypatch.setattr(settings, "aws_access_key_id", "")
    assert isinstance(get_object_store(), LocalObjectStore)
    monkeypatch.setattr(settings, "aws_access_key_id", "AKIA")
    monkeypatch.setattr(settings, "aws_secret_access_key", "secret")
    assert isinstance(get_object_store(), S3ObjectStore)


def test_sweep_orphaned_blobs(db_session, cv_owner, store):
    kept = "cv/2/v1_keep.pdf"
    db_session.add(
        CVVersion(
            user_id=cv_owner.id,
            version=1,
            file_path=kept,
            file_format="pdf",
            file_size=4,
            is_active=True,
        )
    )
    db_session.commit()
    store.put(kept, b"keep")
    store.put("cv/2/v2_orphan.pdf", b"gone")

    result = sweep_orphaned_blobs(db_session, store=store, min_age_seconds=0)
    assert result == {"deleted": 1, "skipped_recent": 0}
    assert store.list_keys("cv") == [kept]


def test_sweep_keeps_blob_of_upload_not_yet_committed(db_session, cv_owner, tmp_path):
    """A sweep between blob write and row commit must not delete the new file."""
    sweeps = []

    class SweepAfterPutStore(LocalObjectStore):
        def put(self, key, data, content_type="application/octet-stream"):
            super().put(key, data, content_type)
            other = session_module.SessionLocal()
            try:
                sweeps.append(sweep_orphaned_blobs(other, store=self))
            finally:
                other.close()

    racing = SweepAfterPutStore(root=tmp_path / "blobs", url_prefix="/uploads")
    version = cv_version_service.upload_version(
        db_session, cv_owner.id, b"%PDF-1.4 fresh", file_name="cv.pdf", store=racing
    )

    assert sweeps == [{"deleted": 0, "skipped_recent": 1}]
    assert version.is_active
    assert racing.get(version.file_path) == b"%PDF-1.4 fresh"


def test_sweep_deletes_only_old_orphans(db_session, cv_owner, store):
    store.put("cv/2/v1_old.pdf", b"old")
    store.put("cv/2/v2_new.pdf", b"new")
    two_hours_ago = time.time() - 2 * 3600
    os.utime(store.root / "cv" / "2" / "v1_old.pdf", (two_hours_ago, two_hours_ago))

    result = sweep_orphaned_blobs(db_session, store=store, min_age_seconds=3600)

    assert result == {"deleted": 1, "skipped_recent": 1}
    assert store.list_keys("cv") == ["cv/2/v2_new.pdf"]


def test_sweep_rechecks_reference_before_delete(db_session, cv_owner, tmp_path):
    """A row committed after the key listing keeps its blob."""
    key = "cv/2/v1_late.pdf"

    class CommitAfterListStore(LocalObjectStore):
        def list_objects(self, prefix):
            objects = super().list_objects(prefix)
            db_session.add(
                CVVersion(
                    user_id=cv_owner.id,
                    version=1,
                    file_path=key,
                    file_format="pdf",
                    file_size=4,
                    is_active=True,
                )
            )
            db_session.commit()
            return objects

    late = CommitAfterListStore(root=tmp_path / "blobs", url_prefix="/uploads")
    late.put(key, b"late")

    result = sweep_orphaned_blobs(db_session, store=late, min_age_seconds=0)

    assert result == {"deleted": 0, "skipped_recent": 0}
    assert late.get(key) == b"late"


@pytest.mark.parametrize(
    "size,label",
    [(0, "0 B"), (1023, "1023 B"), (2048, "2.00 KB"), (3 * 1024 * 1024, "3.00 MB")],
)
def test_format_file_size(size, label):
    assert format_file_size(size) == label
