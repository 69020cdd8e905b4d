import hmac
import itertools
from types import SimpleNamespace
from typing import Dict, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from models.user import User
from routers import rate_limit
from services.providers import (
    AssetInfo,
    BaseImageHost,
    BaseMediaProvider,
    BasePaymentGateway,
    DirectUpload,
    GatewayOrder,
    HostedImage,
    ProviderError,
    UploadInfo,
    get_image_host,
    get_media_provider,
    get_payment_gateway,
    payment_signature,
)
from services.session_token import issue_session


ADMIN_USER_ID = "admin-user"
VIEWER_USER_ID = "viewer-user"
OTHER_USER_ID = "other-user"
GATEWAY_SECRET = "s3cr3t"


def auth_header(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {issue_session(user_id).token}"}


class FakeMediaProvider(BaseMediaProvider):
    provider_name = "mux"

    def __init__(self):
        self._ids = itertools.count(1)
        self.uploads: Dict[str, UploadInfo] = {}
        self.assets: Dict[str, AssetInfo] = {}
        self.error: Optional[ProviderError] = None
        self.calls = []

    async def create_direct_upload(self, *, playback_policy: str, cors_origin: str) -> DirectUpload:
        self.calls.append(("create_direct_upload", playback_policy, cors_origin))
        if self.error:
            raise self.error
        upload_id = f"upload-{next(self._ids)}"
        self.uploads[upload_id] = UploadInfo(upload_id=upload_id, status="waiting")
        return DirectUpload(upload_id=upload_id, url=f"https://storage.mux.test/{upload_id}", status="waiting")

    async def retrieve_upload(self, upload_id: str) -> UploadInfo:
        self.calls.append(("retrieve_upload", upload_id))
        if self.error:
            raise self.error
        if upload_id not in self.uploads:
            raise ProviderError("mux", "not found", status_code=404)
        return self.uploads[upload_id]

    async def retrieve_asset(self, asset_id: str) -> AssetInfo:
        self.calls.append(("retrieve_asset", asset_id))
        if self.error:
            raise self.error
        return self.assets[asset_id]

    def attach_asset(self, upload_id: str, asset_id: str, status: str = "preparing", playback_ids=()):
        self.uploads[upload_id] = UploadInfo(upload_id=upload_id, status="asset_created", asset_id=asset_id)
        self.assets[asset_id] = AssetInfo(asset_id=asset_id, status=status, playback_ids=tuple(playback_ids))


class FakeImageHost(BaseImageHost):
    provider_name = "imagekit"

    def __init__(self):
        self.uploads = []
        self.error: Optional[ProviderError] = None

    async def upload(self, data, *, file_name, content_type=None, folder=None) -> HostedImage:
        if self.error:
            raise self.error
        self.uploads.append({"file_name": file_name, "size": len(data), "folder": folder})
        return HostedImage(file_id=f"file-{len(self.uploads)}", url=f"https://ik.test{folder or ''}/{file_name}", name=file_name)

    def authentication_parameters(self, token=None, expire=None):
        return {"token": token or "tok", "expire": expire or 1, "signature": "sig", "publicKey": "pub", "urlEndpoint": "https://ik.test"}


class FakePaymentGateway(BasePaymentGateway):
    provider_name = "razorpay"

    def __init__(self, secret: str = GATEWAY_SECRET):
        self.secret = secret
        self._ids = itertools.count(1)
        self.error: Optional[ProviderError] = None

    async def create_order(self, *, amount, currency, receipt, notes=None) -> GatewayOrder:
        if self.error:
            raise self.error
        return GatewayOrder(order_id=f"order_{next(self._ids)}", amount=amount, currency=currency, status="created", receipt=receipt)

    def verify_payment_signature(self, order_id, payment_id, signature) -> bool:
        expected = payment_signature(order_id, payment_id, self.secret)
        return hmac.compare_digest(expected, signature or "")


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def stream_env(tmp_path):
    db_path = tmp_path / "stream.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_maker() as session:
        session.add_all([
            User(id=ADMIN_USER_ID, username="admin", email="admin@local.invalid", is_admin=True),
            User(id=VIEWER_USER_ID, username="viewer", email="viewer@local.invalid"),
            User(id=OTHER_USER_ID, username="other", email="other@local.invalid"),
        ])
        await session.commit()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    media = FakeMediaProvider()
    images = FakeImageHost()
    gateway = FakePaymentGateway()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_media_provider] = lambda: media
    app.dependency_overrides[get_image_host] = lambda: images
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield SimpleNamespace(
            client=client,
            engine=engine,
            session_maker=session_maker,
            media=media,
            images=images,
            gateway=gateway,
        )

    for dependency in (get_db, get_media_provider, get_image_host, get_payment_gateway):
        app.dependency_overrides.pop(dependency, None)
    await engine.dispose()
