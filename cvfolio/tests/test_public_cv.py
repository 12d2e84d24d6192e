"""Tests for the public /api/cv endpoints"""
import sqlite3
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from cvfolio.app.core.errors import NotFoundError
from cvfolio.app.models.cv_download import CVDownload
from cvfolio.app.services import cv_version_service, download_tracker

DOCX = b"PK\x03\x04 fake docx body"


def _upload(db_session, data=DOCX, file_name="cv.docx"):
    return cv_version_service.upload_version(db_session, 2, data, file_name=file_name)


def _download_count(db_session, version_id):
    db_session.expire_all()
    return db_session.query(CVDownload).filter(CVDownload.cv_version_id == version_id).count()


def test_public_cv_without_versions(client):
    r = client.get("/api/cv/2")
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "Mert"
    assert data["cv_url"] is None
    assert data["active_version"] is None


def test_public_cv_unknown_user(client):
    assert client.get("/api/cv/999").status_code == 404


def test_public_cv_shows_active_version(client, db_session):
    _upload(db_session)
    v2 = _upload(db_session)
    data = client.get("/api/cv/2").json()
    assert data["active_version"]["id"] == v2.id
    assert data["cv_url"] == f"/uploads/{v2.file_path}"


def test_download_without_cv_is_404(client):
    r = client.get("/api/cv/2/download", follow_redirects=False)
    assert r.status_code == 404


def test_download_redirects_and_records(client, db_session):
    v = _upload(db_session)
    r = client.get(
        "/api/cv/2/download",
        headers={"User-Agent": "pytest-agent"},
        follow_redirects=False,
    )
    assert r.status_code == 307
    assert r.headers["location"] == f"/uploads/{v.file_path}"
    assert _download_count(db_session, v.id) == 1
    event = db_session.query(CVDownload).one()
    assert event.user_id == 2
    assert event.user_agent == "pytest-agent"


def test_upload_then_fetch_resolved_url_round_trip(client, db_session):
    """The resolved download URL serves exactly the uploaded bytes."""
    _upload(db_session)
    url = client.get("/api/cv/2/download", follow_redirects=False).headers["location"]
    r = client.get(url)
    assert r.status_code == 200
    assert r.content == DOCX


def test_proxy_file_serves_bytes(client, db_session):
    v = _upload(db_session, data=b"%PDF-1.4 public", file_name="cv.pdf")
    r = client.get("/api/cv/2/file")
    assert r.status_code == 200
    assert r.content == b"%PDF-1.4 public"
    assert r.headers["content-type"] == "application/pdf"
    assert 'filename="cv_v1.pdf"' in r.headers["content-disposition"]
    assert _download_count(db_session, v.id) == 1


def test_download_still_served_when_recording_fails(client, db_session):
    """Analytics loss must not break the download."""
    v = _upload(db_session)
    with patch.object(download_tracker, "record_download", side_effect=RuntimeError("db down")):
        r = client.get("/api/cv/2/download", follow_redirects=False)
    assert r.status_code == 307
    assert _download_count(db_session, v.id) == 0


def test_record_download_safely_unknown_version(db_session):
    assert download_tracker.record_download_safely(12345) is False


def test_record_download_unknown_version_raises(db_session):
    with pytest.raises(NotFoundError):
        download_tracker.record_download(db_session, 12345)


def test_resolve_download_url(db_session, cv_owner):
    v = _upload(db_session)
    assert download_tracker.resolve_download_url(db_session, v.id) == f"/uploads/{v.file_path}"


def test_public_cv_database_timeout_is_504(client):
    """A locked database on the public page surfaces as a classified timeout."""
    locked = OperationalError("SELECT users", {}, sqlite3.OperationalError("database is locked"))
    with patch.object(cv_version_service, "_get_user", side_effect=locked):
        r = client.get("/api/cv/2")
    assert r.status_code == 504
    assert r.json()["detail"]["error"] == "TransientNetworkError"


def test_public_cv_unknown_user_detail(client):
    r = client.get("/api/cv/999")
    assert r.json()["detail"]["error"] == "NotFoundError"
