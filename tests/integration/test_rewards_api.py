"""HTTP surface of the rewards engine."""

from __future__ import annotations

from datetime import timedelta

import pytest
from httpx import AsyncClient

from phantom.db.models import ActivityKind
from phantom.rewards.activity_store import record_activity
from phantom.rewards.progress import credit_coins, utcnow

USER = 1
ADMIN = 99


def as_user(user_id: int = USER) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


def as_admin() -> dict[str, str]:
    return {"X-User-Id": str(ADMIN), "X-User-Role": "admin"}


class TestAuthHeaders:
    @pytest.mark.asyncio
    async def test_missing_user(self, client: AsyncClient):
        response = await client.get("/api/v1/rewards/progress")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_route_requires_role(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/rewards/prizes",
            json={"title": "Mug", "thumbnail": "mug.png", "amount": 100, "count": 1},
            headers=as_user(),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-Id": "abc"})
        assert response.status_code == 200
        assert response.headers["X-Request-Id"] == "abc"


class TestProgressAndDaily:
    @pytest.mark.asyncio
    async def test_new_user_progress(self, client: AsyncClient):
        response = await client.get("/api/v1/rewards/progress", headers=as_user())
        assert response.status_code == 200
        data = response.json()
        assert data["xp"] == 0
        assert data["level"] == 1
        assert data["remaining_xp"] == 100
        assert data["achievements"] == []

    @pytest.mark.asyncio
    async def test_daily_claim_flow(self, client: AsyncClient):
        info = await client.get("/api/v1/rewards/daily", headers=as_user())
        assert info.json()["eligible"] is True
        assert info.json()["next_amount"] == 5

        claim = await client.post("/api/v1/rewards/daily/claim", headers=as_user())
        assert claim.status_code == 200
        assert claim.json()["amount"] == 5
        assert claim.json()["coin_balance"] == 5

        again = await client.post("/api/v1/rewards/daily/claim", headers=as_user())
        assert again.status_code == 400
        assert again.json()["detail"] == "You are ineligible to claim at this time, try again later."


class TestMissionsAPI:
    @pytest.mark.asyncio
    async def test_create_list_claim(self, client: AsyncClient, session_factory):
        created = await client.post(
            "/api/v1/rewards/missions",
            json={
                "title": "Write a review",
                "icon": "review.png",
                "task_type": "REVIEW",
                "task_count": 1,
                "reward_amount": 30,
                "starts_at": (utcnow() - timedelta(hours=1)).isoformat(),
            },
            headers=as_admin(),
        )
        assert created.status_code == 201
        mission_id = created.json()["id"]

        early = await client.post(f"/api/v1/rewards/missions/{mission_id}/claim", headers=as_user())
        assert early.status_code == 403

        async with session_factory() as db:
            await record_activity(db, USER, ActivityKind.REVIEW, "review-1", target_id="place-1")
            await db.commit()

        listing = await client.get("/api/v1/rewards/missions", headers=as_user())
        mission = listing.json()["missions"][0]
        assert mission["progress"] == {"completed": 1, "total": 1}
        assert mission["is_claimed"] is False
        assert listing.json()["pagination"]["total_count"] == 1

        claim = await client.post(f"/api/v1/rewards/missions/{mission_id}/claim", headers=as_user())
        assert claim.status_code == 200
        assert claim.json()["coin_balance"] == 30

        twice = await client.post(f"/api/v1/rewards/missions/{mission_id}/claim", headers=as_user())
        assert twice.status_code == 409

    @pytest.mark.asyncio
    async def test_admin_list_and_delete(self, client: AsyncClient):
        created = await client.post(
            "/api/v1/rewards/missions",
            json={
                "title": "React",
                "icon": "react.png",
                "task_type": "REACT",
                "task_count": 3,
                "reward_amount": 10,
                "starts_at": utcnow().isoformat(),
            },
            headers=as_admin(),
        )
        mission_id = created.json()["id"]

        all_missions = await client.get("/api/v1/rewards/missions/all", headers=as_admin())
        assert all_missions.json()["pagination"]["total_count"] == 1

        deleted = await client.delete(f"/api/v1/rewards/missions/{mission_id}", headers=as_admin())
        assert deleted.status_code == 204
        missing = await client.delete(f"/api/v1/rewards/missions/{mission_id}", headers=as_admin())
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_mission_body(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/rewards/missions",
            json={"title": "x", "icon": "i", "task_type": "NOPE", "task_count": 1,
                  "reward_amount": 1, "starts_at": utcnow().isoformat()},
            headers=as_admin(),
        )
        assert response.status_code == 422


class TestPrizesAPI:
    @pytest.mark.asyncio
    async def test_redeem_and_review(self, client: AsyncClient, session_factory):
        async with session_factory() as db:
            await credit_coins(db, USER, 700)
            await db.commit()

        created = await client.post(
            "/api/v1/rewards/prizes",
            json={"title": "Gift card", "thumbnail": "card.png", "amount": 500, "count": 1},
            headers=as_admin(),
        )
        assert created.status_code == 201
        prize_id = created.json()["id"]

        redeemed = await client.post(f"/api/v1/rewards/prizes/{prize_id}/redeem", headers=as_user())
        assert redeemed.status_code == 200
        redemption = redeemed.json()
        assert redemption["status"] == "PENDING"
        assert redemption["prize"]["count"] == 0

        sold_out = await client.post(f"/api/v1/rewards/prizes/{prize_id}/redeem", headers=as_user())
        assert sold_out.status_code == 400
        assert sold_out.json()["detail"] == "prize was finished"

        prizes = await client.get("/api/v1/rewards/prizes", headers=as_user())
        assert prizes.json()["prizes"][0]["status"] == "PENDING"

        reviewed = await client.post(
            f"/api/v1/rewards/redemptions/{redemption['id']}/review",
            json={"validation": "DECLINED", "note": "address missing"},
            headers=as_admin(),
        )
        assert reviewed.status_code == 200
        assert reviewed.json()["status"] == "DECLINED"

        again = await client.post(
            f"/api/v1/rewards/redemptions/{redemption['id']}/review",
            json={"validation": "SUCCESSFUL"},
            headers=as_admin(),
        )
        assert again.status_code == 409
        assert again.json()["detail"] == "Prize Redemption Is Already Verified as DECLINED"

        progress = await client.get("/api/v1/rewards/progress", headers=as_user())
        assert progress.json()["coin_balance"] == 700

        history = await client.get("/api/v1/rewards/redemptions", headers=as_user())
        assert history.json()["pagination"]["total_count"] == 1
        everything = await client.get("/api/v1/rewards/redemptions/all", headers=as_admin())
        assert everything.json()["pagination"]["total_count"] == 1

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, client: AsyncClient):
        created = await client.post(
            "/api/v1/rewards/prizes",
            json={"title": "Gift card", "thumbnail": "card.png", "amount": 500, "count": 1},
            headers=as_admin(),
        )
        response = await client.post(
            f"/api/v1/rewards/prizes/{created.json()['id']}/redeem", headers=as_user(),
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "insufficient balance"


class TestReferralsAPI:
    @pytest.mark.asyncio
    async def test_referral_paid_once(self, client: AsyncClient):
        body = {"referrer_id": USER, "referred_user_id": 7, "referred_name": "Sam"}
        paid = await client.post("/api/v1/rewards/referrals", json=body, headers=as_admin())
        assert paid.status_code == 201
        assert paid.json()["amount"] == 250
        assert paid.json()["coin_reward_type"] == "REFERRAL"

        again = await client.post("/api/v1/rewards/referrals", json=body, headers=as_admin())
        assert again.status_code == 409
        assert again.json()["detail"] == "Referrer already set"

        progress = await client.get("/api/v1/rewards/progress", headers=as_user())
        assert progress.json()["coin_balance"] == 250

    @pytest.mark.asyncio
    async def test_referral_requires_admin(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/rewards/referrals",
            json={"referrer_id": USER, "referred_user_id": 7},
            headers=as_user(),
        )
        assert response.status_code == 403
