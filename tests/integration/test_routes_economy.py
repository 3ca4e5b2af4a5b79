"""Integration tests for player stats, wallet and roulette routes."""

from flask.testing import FlaskClient

from plaza.db.models import UserProfile


class TestStatsRoutes:
    def test_defaults(self, client: FlaskClient, auth_headers: dict[str, str]) -> None:
        response = client.get("/api/stats", headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json() == {
            "stats": {"health": 100, "hunger": 100, "thirst": 100, "alcoholism": 0}
        }

    def test_adjust_clamps(self, client: FlaskClient, auth_headers: dict[str, str]) -> None:
        response = client.post(
            "/api/stats/adjust",
            json={"changes": {"health": 50, "thirst": -40, "alcoholism": 120}},
            headers=auth_headers,
        )

        assert response.get_json()["stats"] == {
            "health": 100,
            "hunger": 100,
            "thirst": 60,
            "alcoholism": 100,
        }

    def test_adjust_unknown_stat(self, client: FlaskClient, auth_headers: dict[str, str]) -> None:
        response = client.post(
            "/api/stats/adjust", json={"changes": {"mana": 3}}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.get_json()["error"]["message"] == "Unknown stats: mana"


class TestWalletRoutes:
    def test_deposit_and_transfer(
        self,
        client: FlaskClient,
        auth_headers: dict[str, str],
        other_headers: dict[str, str],
    ) -> None:
        deposit = client.post("/api/wallet/deposit", json={"amount": 100}, headers=auth_headers)
        transfer = client.post(
            "/api/wallet/transfer", json={"to_user_id": "bob-id", "amount": 30}, headers=auth_headers
        )

        assert deposit.get_json() == {"balance": 100}
        assert transfer.status_code == 200
        assert transfer.get_json()["balance"] == 70
        assert transfer.get_json()["transaction"]["amount"] == 30

        bobs_wallet = client.get("/api/wallet", headers=other_headers).get_json()
        assert bobs_wallet["balance"] == 30
        assert len(bobs_wallet["transactions"]) == 1
        assert bobs_wallet["transactions"][0]["from_user_id"] == "alice-id"

    def test_insufficient_funds(
        self, client: FlaskClient, auth_headers: dict[str, str], other_user: UserProfile
    ) -> None:
        response = client.post(
            "/api/wallet/transfer", json={"to_user_id": "bob-id", "amount": 1}, headers=auth_headers
        )

        assert response.status_code == 409
        error = response.get_json()["error"]
        assert error["code"] == "CONFLICT"
        assert error["message"] == "Insufficient funds"
        assert error["retryable"] is False

    def test_non_positive_amount(self, client: FlaskClient, auth_headers: dict[str, str]) -> None:
        response = client.post("/api/wallet/deposit", json={"amount": 0}, headers=auth_headers)
        assert response.status_code == 400
        assert response.get_json()["error"]["details"]["field"] == "amount"

    def test_transfer_to_unknown_user(
        self, client: FlaskClient, auth_headers: dict[str, str]
    ) -> None:
        client.post("/api/wallet/deposit", json={"amount": 10}, headers=auth_headers)
        response = client.post(
            "/api/wallet/transfer", json={"to_user_id": "ghost", "amount": 1}, headers=auth_headers
        )
        assert response.status_code == 404
        assert response.get_json()["error"]["message"] == "Recipient not found"


class TestRouletteRoute:
    def test_spin_recorded(self, client: FlaskClient, auth_headers: dict[str, str]) -> None:
        response = client.post("/api/roulette/spin", headers=auth_headers)

        assert response.status_code == 200
        spun_at = response.get_json()["last_roulette_spin"]
        assert spun_at is not None
        profile = client.get("/api/profile", headers=auth_headers).get_json()
        assert profile["last_roulette_spin"] == spun_at
