"""Integration tests for the Plaid endpoints."""

from datetime import date, timedelta

import pytest

from bankbridge.core.dependencies import get_plaid
from bankbridge.main import app
from tests.helpers import stored_banks
from tests.mocks import ACCESS_TOKEN, MockPlaidClient, SAMPLE_TRANSACTIONS


def _use_plaid(mock: MockPlaidClient) -> None:
    app.dependency_overrides[get_plaid] = lambda: mock


class TestCreateLinkToken:
    def test_creates_link_token(self, client, mock_plaid):
        response = client.post("/link-token", json={"userId": "u1"})

        assert response.status_code == 200
        assert response.json() == {"link_token": "link-sandbox-test-token"}
        request = mock_plaid.called("link_token_create")[0]
        # Hashed so the raw user id never reaches Plaid
        assert request.user.client_user_id != "u1"

    def test_generates_user_when_body_is_empty(self, client, mock_plaid):
        response = client.post("/api/plaid/create_link_token")

        assert response.status_code == 200
        request = mock_plaid.called("link_token_create")[0]
        assert request.user.client_user_id.startswith("user-")

    def test_get_is_not_allowed(self, client):
        assert client.get("/link-token").status_code == 405

    def test_provider_failure_returns_500_with_details(self, client):
        _use_plaid(MockPlaidClient(
            fail_on="link_token_create",
            error_body={"error_code": "INVALID_API_KEYS", "error_message": "invalid client_id or secret"},
        ))

        response = client.post("/link-token", json={"userId": "u1"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to create link token"
        assert body["details"]["error_code"] == "INVALID_API_KEYS"


class TestExchangeToken:
    def test_example_flow_stores_connected_bank(self, client, mock_plaid, sync_engine):
        assert client.get("/user/u1/banks").json() == {"banks": []}

        response = client.post("/exchange-token", json={"public_token": "pub-123", "userId": "u1"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "item_id": "item-sandbox-1",
            "institution_id": "ins_109508",
        }
        assert ACCESS_TOKEN not in response.text

        banks = client.get("/user/u1/banks")
        assert ACCESS_TOKEN not in banks.text
        [bank] = banks.json()["banks"]
        assert bank["status"] == "connected"
        assert bank["itemId"] == "item-sandbox-1"
        assert bank["institutionName"] == "First Platypus Bank"

        [row] = stored_banks(sync_engine, "u1")
        assert row.encrypted_access_token

    def test_exchanging_twice_keeps_one_row(self, client, sync_engine):
        client.post("/exchange-token", json={"public_token": "pub-1", "userId": "u1"})
        client.post("/exchange-token", json={"public_token": "pub-2", "userId": "u1"})

        assert len(stored_banks(sync_engine, "u1")) == 1

    def test_uses_institution_from_request(self, client, mock_plaid):
        response = client.post(
            "/api/plaid/exchange_token",
            json={
                "public_token": "pub-1",
                "userId": "u1",
                "institutionId": "ins_3",
                "institutionName": "Chase",
                "accountIds": ["acc-9"],
            },
        )

        assert response.json()["institution_id"] == "ins_3"
        assert mock_plaid.called("item_get") == []
        assert mock_plaid.called("institutions_get_by_id") == []
        bank = client.get("/user/u1/banks").json()["banks"][0]
        assert bank["institutionName"] == "Chase"
        assert bank["accountIds"] == ["acc-9"]

    def test_item_without_institution_is_keyed_by_item(self, client):
        _use_plaid(MockPlaidClient(institution_id=None, item_id="item-x"))

        response = client.post("/exchange-token", json={"public_token": "pub-1", "userId": "u1"})

        assert response.json()["institution_id"] == "item-x"

    def test_failed_institution_lookup_still_stores_bank(self, client, sync_engine):
        _use_plaid(MockPlaidClient(fail_on="institutions_get_by_id"))

        response = client.post("/exchange-token", json={"public_token": "pub-1", "userId": "u1"})

        assert response.status_code == 200
        assert response.json()["institution_id"] == "ins_109508"
        [row] = stored_banks(sync_engine, "u1")
        assert row.institution_id == "ins_109508"
        assert row.institution_name == "ins_109508"
        assert row.logo_url is None

    def test_failed_item_lookup_keys_bank_by_item(self, client, sync_engine):
        mock = MockPlaidClient(fail_on="item_get")
        _use_plaid(mock)

        response = client.post("/exchange-token", json={"public_token": "pub-1", "userId": "u1"})

        assert response.status_code == 200
        assert response.json()["institution_id"] == "item-sandbox-1"
        assert mock.called("institutions_get_by_id") == []
        [row] = stored_banks(sync_engine, "u1")
        assert row.institution_id == "item-sandbox-1"
        assert row.item_id == "item-sandbox-1"

    @pytest.mark.parametrize("payload", [
        {"userId": "u1"},
        {"public_token": "pub-1"},
        {"public_token": "", "userId": "u1"},
    ])
    def test_missing_fields_rejected_before_provider_call(self, client, mock_plaid, payload):
        response = client.post("/exchange-token", json=payload)

        assert response.status_code == 400
        assert mock_plaid.calls == []

    def test_provider_failure_is_forwarded_without_secrets(self, client, sync_engine):
        _use_plaid(MockPlaidClient(
            fail_on="item_public_token_exchange",
            error_body={
                "error_code": "INVALID_PUBLIC_TOKEN",
                "error_message": "bad token pub-secret-1",
                "request_id": "req-9",
            },
        ))

        response = client.post("/exchange-token", json={"public_token": "pub-secret-1", "userId": "u1"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to exchange token"
        assert body["details"]["error_code"] == "INVALID_PUBLIC_TOKEN"
        assert body["details"]["request_id"] == "req-9"
        assert "pub-secret-1" not in response.text
        assert stored_banks(sync_engine, "u1") == []


class TestTransactions:
    def _connect(self, client, institution_id: str = "ins_1", token: str = ACCESS_TOKEN):
        client.post("/user/u1/banks", json={
            "institutionId": institution_id,
            "institutionName": institution_id.upper(),
            "accessToken": token,
            "itemId": f"item-{institution_id}",
        })

    def test_no_banks_returns_400_without_provider_call(self, client, mock_plaid):
        response = client.post("/transactions", json={"userId": "u1"})

        assert response.status_code == 400
        assert "No banks connected" in response.json()["error"]
        assert mock_plaid.called("transactions_get") == []

    def test_fetch_does_not_create_user(self, client, sync_engine):
        from tests.helpers import stored_user

        client.post("/transactions", json={"userId": "nobody"})

        assert stored_user(sync_engine, "nobody") is None

    def test_defaults_to_trailing_30_days(self, client, mock_plaid):
        self._connect(client)

        response = client.post("/transactions", json={"userId": "u1"})

        assert response.status_code == 200
        assert response.json()["total_transactions"] == len(SAMPLE_TRANSACTIONS)
        assert [t["transaction_id"] for t in response.json()["transactions"]] == ["txn-1", "txn-2"]
        request = mock_plaid.called("transactions_get")[0]
        today = date.today()
        assert request.end_date == today
        assert request.start_date == today - timedelta(days=30)

    def test_passes_explicit_dates(self, client, mock_plaid):
        self._connect(client)

        client.post("/api/plaid/transactions", json={
            "userId": "u1",
            "start_date": "2026-01-01",
            "end_date": "2026-01-31",
        })

        request = mock_plaid.called("transactions_get")[0]
        assert request.start_date == date(2026, 1, 1)
        assert request.end_date == date(2026, 1, 31)

    def test_inverted_dates_return_400(self, client, mock_plaid):
        self._connect(client)

        response = client.post("/transactions", json={
            "userId": "u1",
            "start_date": "2026-02-01",
            "end_date": "2026-01-01",
        })

        assert response.status_code == 400
        assert mock_plaid.called("transactions_get") == []

    def test_selects_named_institution(self, client, mock_plaid):
        other_token = "access-sandbox-11111111-2222-3333-4444-555555555555"
        self._connect(client, "ins_1")
        self._connect(client, "ins_2", token=other_token)

        client.post("/transactions", json={"userId": "u1", "institutionId": "ins_2"})

        assert mock_plaid.called("transactions_get")[0].access_token == other_token

    def test_defaults_to_first_bank(self, client, mock_plaid):
        self._connect(client, "ins_1")
        self._connect(client, "ins_2", token="access-sandbox-11111111-2222-3333-4444-555555555555")

        client.post("/transactions", json={"userId": "u1"})

        assert mock_plaid.called("transactions_get")[0].access_token == ACCESS_TOKEN

    def test_unknown_institution_returns_404(self, client, mock_plaid):
        self._connect(client)

        response = client.post("/transactions", json={"userId": "u1", "institutionId": "ins_404"})

        assert response.status_code == 404
        assert response.json()["error"] == "Bank not found"
        assert mock_plaid.called("transactions_get") == []

    def test_records_sync_metadata(self, client):
        self._connect(client)

        client.post("/transactions", json={"userId": "u1"})

        bank = client.get("/user/u1/banks").json()["banks"][0]
        assert bank["lastSyncTransactionCount"] == len(SAMPLE_TRANSACTIONS)
        assert bank["lastSyncAt"] is not None

    def test_provider_failure_scrubs_access_token(self, client):
        _use_plaid(MockPlaidClient(
            fail_on="transactions_get",
            error_body={
                "error_code": "ITEM_LOGIN_REQUIRED",
                "error_message": f"login required for {ACCESS_TOKEN}",
                "access_token": ACCESS_TOKEN,
            },
        ))
        self._connect(client)

        response = client.post("/transactions", json={"userId": "u1"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to fetch transactions"
        assert body["details"]["error_code"] == "ITEM_LOGIN_REQUIRED"
        assert ACCESS_TOKEN not in response.text
