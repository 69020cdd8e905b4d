from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.future import select

from conftest import OTHER_USER_ID, VIEWER_USER_ID, auth_header
from models.promo_redemption import PromoRedemption
from models.subscription import Subscription
from models.user import User
from services.entitlements import add_months, as_utc


VIEWER = auth_header(VIEWER_USER_ID)


def test_add_months_clamps_to_month_end():
    start = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)

    assert add_months(start, 1) == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert add_months(start, 3) == datetime(2026, 4, 30, 12, 0, tzinfo=timezone.utc)
    assert add_months(start, 12) == datetime(2027, 1, 31, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_new_user_has_no_access(stream_env):
    premium = await stream_env.client.get(f"/check-premium/{VIEWER_USER_ID}", headers=VIEWER)
    subscription = await stream_env.client.get(f"/check-subscription/{VIEWER_USER_ID}", headers=VIEWER)
    access = await stream_env.client.get(f"/access/{VIEWER_USER_ID}", headers=VIEWER)

    assert premium.json() == {"user_id": VIEWER_USER_ID, "is_premium": False}
    assert subscription.json() == {"user_id": VIEWER_USER_ID, "active": False, "subscription": None}
    assert access.json()["has_access"] is False
    assert access.json()["access_reason"] == "none"


@pytest.mark.asyncio
async def test_entitlement_reads_are_scoped_to_the_session_user(stream_env):
    for path in ("/check-premium", "/check-subscription", "/access"):
        response = await stream_env.client.get(f"{path}/{OTHER_USER_ID}", headers=VIEWER)
        assert response.status_code == 403

    anonymous = await stream_env.client.get(f"/access/{VIEWER_USER_ID}")
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_premium_flag_grants_access(stream_env):
    async with stream_env.session_maker() as session:
        user = (await session.execute(select(User).where(User.id == VIEWER_USER_ID))).scalar_one()
        user.is_premium = True
        await session.commit()

    body = (await stream_env.client.get(f"/access/{VIEWER_USER_ID}", headers=VIEWER)).json()

    assert body["is_premium"] is True
    assert body["has_access"] is True
    assert body["access_reason"] == "premium"


@pytest.mark.asyncio
async def test_expired_subscription_does_not_grant_access(stream_env):
    now = datetime.now(timezone.utc)
    async with stream_env.session_maker() as session:
        session.add(
            Subscription(
                user_id=VIEWER_USER_ID,
                plan_id="monthly",
                starts_at=now - timedelta(days=40),
                expires_at=now - timedelta(days=10),
            )
        )
        await session.commit()

    body = (await stream_env.client.get(f"/check-subscription/{VIEWER_USER_ID}", headers=VIEWER)).json()
    assert body["active"] is False


@pytest.mark.asyncio
async def test_promo_code_redeems_once(stream_env):
    first = await stream_env.client.post("/apply-promo", headers=VIEWER, json={"code": "useoli"})
    assert first.status_code == 200
    assert first.json()["code"] == "USEOLI"
    assert first.json()["months"] == 1

    second = await stream_env.client.post("/apply-promo", headers=VIEWER, json={"code": "USEOLI"})
    assert second.status_code == 400
    assert second.json()["detail"] == "Promo code already used"

    access = (await stream_env.client.get(f"/access/{VIEWER_USER_ID}", headers=VIEWER)).json()
    assert access["has_access"] is True
    assert access["access_reason"] == "subscription"
    assert access["is_premium"] is False

    async with stream_env.session_maker() as session:
        redemptions = (await session.execute(select(PromoRedemption))).scalars().all()
        windows = (await session.execute(select(Subscription))).scalars().all()
    assert len(redemptions) == 1
    assert len(windows) == 1
    assert as_utc(windows[0].expires_at) == add_months(as_utc(windows[0].starts_at), 1)


@pytest.mark.asyncio
async def test_promo_code_is_per_user(stream_env):
    viewer = await stream_env.client.post("/apply-promo", headers=VIEWER, json={"code": "USEOLI"})
    other = await stream_env.client.post("/apply-promo", headers=auth_header(OTHER_USER_ID), json={"code": "USEOLI"})

    assert viewer.status_code == 200
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_unknown_promo_code_is_rejected(stream_env):
    response = await stream_env.client.post("/apply-promo", headers=VIEWER, json={"code": "FREEFOREVER"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid promo code"


@pytest.mark.asyncio
async def test_promo_extends_from_end_of_active_window(stream_env):
    now = datetime.now(timezone.utc)
    existing_end = now + timedelta(days=20)
    async with stream_env.session_maker() as session:
        session.add(
            Subscription(
                user_id=VIEWER_USER_ID,
                plan_id="monthly",
                starts_at=now - timedelta(days=10),
                expires_at=existing_end,
            )
        )
        await session.commit()

    response = await stream_env.client.post("/apply-promo", headers=VIEWER, json={"code": "USEOLI"})

    assert response.status_code == 200
    window = response.json()["subscription"]
    assert datetime.fromisoformat(window["starts_at"]) == existing_end
    assert datetime.fromisoformat(window["expires_at"]) == add_months(existing_end, 1)
