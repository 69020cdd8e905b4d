import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
from sqlalchemy.future import select

from conftest import ADMIN_USER_ID, VIEWER_USER_ID, auth_header
from models.media_asset import MediaAsset
from models.movie import Movie
from models.series import Episode, Series
from services.ingestion import verify_webhook_signature
from services.providers import ProviderError, ProviderNotConfiguredError, UploadInfo


ADMIN = auth_header(ADMIN_USER_ID)
WEBHOOK_SECRET = "whsec_test_secret"


def _signed_headers(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None):
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()
    return {"Mux-Signature": f"t={timestamp},v1={digest}", "Content-Type": "application/json"}


async def _asset(stream_env, upload_id):
    async with stream_env.session_maker() as session:
        result = await session.execute(select(MediaAsset).where(MediaAsset.upload_id == upload_id))
        return result.scalar_one_or_none()


async def _movie(stream_env, movie_id):
    async with stream_env.session_maker() as session:
        result = await session.execute(select(Movie).where(Movie.id == movie_id))
        return result.scalar_one_or_none()


@pytest.mark.asyncio
async def test_direct_upload_mints_distinct_sessions(stream_env):
    first = await stream_env.client.post("/mux-direct-upload", headers=ADMIN)
    second = await stream_env.client.post("/mux-direct-upload", headers=ADMIN)

    assert first.status_code == 200
    assert second.status_code == 200
    first_data, second_data = first.json(), second.json()
    assert first_data["url"].startswith("https://")
    assert first_data["uploadId"] != second_data["uploadId"]
    assert stream_env.media.calls[0] == ("create_direct_upload", "public", "*")

    asset = await _asset(stream_env, first_data["uploadId"])
    assert asset.status == "uploading"
    assert asset.user_id == ADMIN_USER_ID
    assert asset.playback_id is None
    assert asset.id == first_data["mediaAssetId"]


@pytest.mark.asyncio
async def test_direct_upload_requires_admin(stream_env):
    anonymous = await stream_env.client.post("/mux-direct-upload")
    viewer = await stream_env.client.post("/mux-direct-upload", headers=auth_header(VIEWER_USER_ID))

    assert anonymous.status_code == 401
    assert viewer.status_code == 403
    assert stream_env.media.calls == []


@pytest.mark.asyncio
async def test_direct_upload_rejects_unknown_entry(stream_env):
    response = await stream_env.client.post(
        "/mux-direct-upload",
        headers=ADMIN,
        json={"entryType": "movie", "entryId": "missing-movie"},
    )
    assert response.status_code == 404
    assert stream_env.media.calls == []


@pytest.mark.asyncio
async def test_provider_failure_maps_to_bad_gateway_without_local_record(stream_env):
    stream_env.media.error = ProviderError("mux", "invalid token secret abc123", status_code=401)

    response = await stream_env.client.post("/mux-direct-upload", headers=ADMIN)

    assert response.status_code == 502
    assert "abc123" not in response.text
    async with stream_env.session_maker() as session:
        assets = (await session.execute(select(MediaAsset))).scalars().all()
    assert assets == []


@pytest.mark.asyncio
async def test_unconfigured_provider_maps_to_service_unavailable(stream_env):
    stream_env.media.error = ProviderNotConfiguredError("mux", "MUX_TOKEN_ID / MUX_TOKEN_SECRET are not configured")

    upload = await stream_env.client.post("/mux-direct-upload", headers=ADMIN)
    status = await stream_env.client.get("/mux-asset-status/upload-1", headers=ADMIN)

    assert upload.status_code == 503
    assert status.status_code == 503


@pytest.mark.asyncio
async def test_asset_status_walks_uploading_processing_ready(stream_env):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]

    waiting = await stream_env.client.get(f"/mux-asset-status/{upload_id}", headers=ADMIN)
    assert waiting.status_code == 200
    assert waiting.json() == {"ready": False, "state": "uploading"}

    stream_env.media.attach_asset(upload_id, "asset-1", status="preparing")
    processing = (await stream_env.client.get(f"/mux-asset-status/{upload_id}", headers=ADMIN)).json()
    assert processing["ready"] is False
    assert processing["state"] == "processing"
    assert processing["assetId"] == "asset-1"
    assert "playbackId" not in processing

    stream_env.media.attach_asset(upload_id, "asset-1", status="ready", playback_ids=["play-1"])
    ready = (await stream_env.client.get(f"/mux-asset-status/{upload_id}", headers=ADMIN)).json()
    assert ready == {"ready": True, "state": "ready", "assetId": "asset-1", "playbackId": "play-1"}

    # Polling is read-only; the local record only moves on finalize or webhook.
    asset = await _asset(stream_env, upload_id)
    assert asset.status == "uploading"
    assert asset.playback_id is None


@pytest.mark.asyncio
async def test_ready_asset_without_playback_id_is_not_ready(stream_env):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]
    stream_env.media.attach_asset(upload_id, "asset-2", status="ready", playback_ids=[])

    body = (await stream_env.client.get(f"/mux-asset-status/{upload_id}", headers=ADMIN)).json()

    assert body["ready"] is False
    assert body["state"] == "processing"
    assert "playbackId" not in body


@pytest.mark.asyncio
async def test_asset_status_reports_failed_uploads(stream_env):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]
    stream_env.media.uploads[upload_id] = UploadInfo(
        upload_id=upload_id,
        status="errored",
        error_message="File could not be processed",
    )

    body = (await stream_env.client.get(f"/mux-asset-status/{upload_id}", headers=ADMIN)).json()
    assert body == {"ready": False, "state": "failed", "error": "File could not be processed"}

    stream_env.media.attach_asset(upload_id, "asset-3", status="errored")
    encoded = (await stream_env.client.get(f"/mux-asset-status/{upload_id}", headers=ADMIN)).json()
    assert encoded["state"] == "failed"
    assert encoded["ready"] is False


@pytest.mark.asyncio
async def test_finalize_creates_movie_and_is_idempotent(stream_env):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]
    payload = {
        "movieTitle": "Night Train",
        "description": "A long ride.",
        "playbackId": "play-9",
        "uploadId": upload_id,
        "assetId": "asset-9",
    }

    first = await stream_env.client.post("/upload-movie-mux", headers=ADMIN, json=payload)
    assert first.status_code == 200
    movie_id = first.json()["id"]
    assert first.json()["playbackId"] == "play-9"

    second = await stream_env.client.post(
        "/upload-movie-mux",
        headers=ADMIN,
        json={"movieId": movie_id, "playbackId": "play-9", "uploadId": upload_id},
    )
    assert second.status_code == 200
    assert second.json()["id"] == movie_id

    movie = await _movie(stream_env, movie_id)
    assert movie.mux_playback_id == "play-9"
    assert movie.mux_upload_id == upload_id
    assert movie.mux_asset_id == "asset-9"

    asset = await _asset(stream_env, upload_id)
    assert asset.status == "ready"
    assert asset.playback_id == "play-9"
    assert asset.entry_id == movie_id

    listed = (await stream_env.client.get("/movies")).json()
    assert [entry["id"] for entry in listed] == [movie_id]


@pytest.mark.asyncio
async def test_finalize_without_movie_requires_title_and_description(stream_env):
    response = await stream_env.client.post(
        "/upload-movie-mux",
        headers=ADMIN,
        json={"movieTitle": "Untold", "playbackId": "play-1"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required fields"

    missing_playback = await stream_env.client.post(
        "/upload-movie-mux",
        headers=ADMIN,
        json={"movieTitle": "Untold", "description": "x"},
    )
    assert missing_playback.status_code == 422


@pytest.mark.asyncio
async def test_finalize_unknown_movie_is_not_found(stream_env):
    response = await stream_env.client.post(
        "/upload-movie-mux",
        headers=ADMIN,
        json={"movieId": "nope", "playbackId": "play-1"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_finalize_episode_attaches_playback(stream_env):
    async with stream_env.session_maker() as session:
        series = Series(id="series-1", title="Harbor")
        session.add(series)
        session.add(Episode(id="ep-1", series_id="series-1", season_number=1, episode_number=1, title="Pilot"))
        await session.commit()

    response = await stream_env.client.post(
        "/upload-episode-mux",
        headers=ADMIN,
        json={"episodeId": "ep-1", "playbackId": "play-ep"},
    )
    assert response.status_code == 200

    detail = (await stream_env.client.get("/series/series-1")).json()
    assert detail["episodes"][0]["playbackId"] == "play-ep"


def test_webhook_signature_checks_secret_and_tolerance():
    body = b'{"type":"video.asset.ready"}'
    now = 1_700_000_000
    digest = hmac.new(b"secret", f"{now}.".encode() + body, hashlib.sha256).hexdigest()
    header = f"t={now},v1={digest}"

    assert verify_webhook_signature(body, header, "secret", now=now) is True
    assert verify_webhook_signature(body, header, "other", now=now) is False
    assert verify_webhook_signature(body + b" ", header, "secret", now=now) is False
    assert verify_webhook_signature(body, header, "secret", tolerance_seconds=300, now=now + 301) is False
    assert verify_webhook_signature(body, None, "secret", now=now) is False
    assert verify_webhook_signature(body, "t=abc,v1=00", "secret", now=now) is False


@pytest.mark.asyncio
async def test_webhook_requires_configured_secret(stream_env):
    with patch("routers.media.settings.MUX_WEBHOOK_SECRET", ""):
        response = await stream_env.client.post("/mux-webhook", content=b"{}")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(stream_env):
    body = json.dumps({"type": "video.asset.ready", "data": {}}).encode()
    with patch("routers.media.settings.MUX_WEBHOOK_SECRET", WEBHOOK_SECRET):
        response = await stream_env.client.post(
            "/mux-webhook",
            content=body,
            headers=_signed_headers(body, secret="wrong"),
        )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_ready_event_finalizes_linked_movie(stream_env):
    created = await stream_env.client.post(
        "/movies",
        headers=ADMIN,
        json={"title": "Ferry", "description": "Crossing."},
    )
    movie_id = created.json()["id"]
    upload_id = (
        await stream_env.client.post(
            "/mux-direct-upload",
            headers=ADMIN,
            json={"entryType": "movie", "entryId": movie_id},
        )
    ).json()["uploadId"]

    events = [
        {"type": "video.upload.asset_created", "data": {"id": upload_id, "asset_id": "asset-w"}},
        {
            "type": "video.asset.ready",
            "data": {"id": "asset-w", "upload_id": upload_id, "playback_ids": [{"id": "play-w", "policy": "public"}]},
        },
    ]
    statuses = []
    with patch("routers.media.settings.MUX_WEBHOOK_SECRET", WEBHOOK_SECRET):
        for event in events:
            body = json.dumps(event).encode()
            response = await stream_env.client.post("/mux-webhook", content=body, headers=_signed_headers(body))
            assert response.status_code == 200
            statuses.append(response.json()["status"])

    assert statuses == ["processing", "ready"]
    movie = await _movie(stream_env, movie_id)
    assert movie.mux_playback_id == "play-w"
    assert movie.mux_asset_id == "asset-w"


@pytest.mark.asyncio
async def test_webhook_error_event_marks_asset_failed(stream_env):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]
    event = {
        "type": "video.asset.errored",
        "data": {"id": "asset-x", "upload_id": upload_id, "errors": {"messages": ["Invalid video stream"]}},
    }
    body = json.dumps(event).encode()
    with patch("routers.media.settings.MUX_WEBHOOK_SECRET", WEBHOOK_SECRET):
        response = await stream_env.client.post("/mux-webhook", content=body, headers=_signed_headers(body))

    assert response.status_code == 200
    asset = await _asset(stream_env, upload_id)
    assert asset.status == "failed"
    assert asset.playback_id is None
    assert asset.error_message == "Invalid video stream"


@pytest.mark.asyncio
async def test_webhook_ignores_unknown_uploads(stream_env):
    body = json.dumps({"type": "video.upload.asset_created", "data": {"id": "never-seen"}}).encode()
    with patch("routers.media.settings.MUX_WEBHOOK_SECRET", WEBHOOK_SECRET):
        response = await stream_env.client.post("/mux-webhook", content=body, headers=_signed_headers(body))

    assert response.status_code == 200
    assert response.json()["mediaAssetId"] is None


async def _post_events(stream_env, events):
    responses = []
    with patch("routers.media.settings.MUX_WEBHOOK_SECRET", WEBHOOK_SECRET):
        for event in events:
            body = json.dumps(event).encode()
            responses.append(await stream_env.client.post("/mux-webhook", content=body, headers=_signed_headers(body)))
    return responses


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type", ["video.upload.errored", "video.upload.cancelled"])
async def test_webhook_upload_failure_events_mark_asset_failed(stream_env, event_type):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]

    (response,) = await _post_events(
        stream_env,
        [{"type": event_type, "data": {"id": upload_id, "error": {"message": "Upload did not complete"}}}],
    )

    assert response.json()["status"] == "failed"
    asset = await _asset(stream_env, upload_id)
    assert asset.status == "failed"
    assert asset.playback_id is None
    assert asset.error_message == "Upload did not complete"


@pytest.mark.asyncio
async def test_webhook_ready_event_without_playback_ids_leaves_asset_processing(stream_env):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]

    responses = await _post_events(
        stream_env,
        [
            {"type": "video.upload.asset_created", "data": {"id": upload_id, "asset_id": "asset-np"}},
            {"type": "video.asset.ready", "data": {"id": "asset-np", "upload_id": upload_id, "playback_ids": []}},
        ],
    )

    assert [response.json()["status"] for response in responses] == ["processing", "processing"]
    asset = await _asset(stream_env, upload_id)
    assert asset.status == "processing"
    assert asset.playback_id is None


@pytest.mark.asyncio
async def test_late_failure_event_does_not_demote_ready_asset(stream_env):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]
    finalized = await stream_env.client.post(
        "/upload-movie-mux",
        headers=ADMIN,
        json={"movieTitle": "Lighthouse", "description": "Keeper.", "playbackId": "play-r", "uploadId": upload_id},
    )
    assert finalized.status_code == 200

    await _post_events(
        stream_env,
        [
            {"type": "video.upload.errored", "data": {"id": upload_id}},
            {"type": "video.asset.errored", "data": {"id": "asset-r", "upload_id": upload_id}},
        ],
    )

    asset = await _asset(stream_env, upload_id)
    assert asset.status == "ready"
    assert asset.playback_id == "play-r"
    assert asset.error_message is None


@pytest.mark.asyncio
async def test_finalize_rejects_upload_linked_to_another_entry(stream_env):
    upload_id = (await stream_env.client.post("/mux-direct-upload", headers=ADMIN)).json()["uploadId"]
    first = await stream_env.client.post(
        "/upload-movie-mux",
        headers=ADMIN,
        json={"movieTitle": "First", "description": "One.", "playbackId": "play-1", "uploadId": upload_id},
    )
    first_id = first.json()["id"]

    second = await stream_env.client.post(
        "/upload-movie-mux",
        headers=ADMIN,
        json={"movieTitle": "Second", "description": "Two.", "playbackId": "play-2", "uploadId": upload_id},
    )

    assert second.status_code == 409
    asset = await _asset(stream_env, upload_id)
    assert asset.entry_id == first_id
    assert asset.playback_id == "play-1"
    listed = (await stream_env.client.get("/movies")).json()
    assert [entry["id"] for entry in listed] == [first_id]
