from __future__ import annotations

import json

import pytest

from pix_checkout.models import TrackingParams

WEBHOOK_URL = "/api/webhook/blackcat"
HEADERS = {"X-Webhook-Event": "transaction.paid", "X-Webhook-Source": "blackcat"}


def _paid_payload(**overrides) -> dict:
    payload = {
        "event": "transaction.paid",
        "timestamp": "2026-10-19T14:30:05Z",
        "transactionId": "bc_tx_1",
        "externalReference": "PED-MGX1-AB12",
        "status": "PAID",
        "amount": 5989,
        "fees": 339,
        "netAmount": 5650,
        "paymentMethod": "pix",
        "paidAt": "2026-10-19T14:30:00Z",
        "endToEndId": "E1234567820261019143000000000001",
        "customer": {"name": "Maria Silva", "email": "maria@example.com"},
    }
    payload.update(overrides)
    return payload


class TestTransactionPaid:
    def test_paid_event_sent_and_store_cleaned(self, client, store, attribution) -> None:
        store.save("PED-MGX1-AB12", TrackingParams(utm_source="google", utm_campaign="natal"))

        resp = client.post(WEBHOOK_URL, json=_paid_payload(), headers=HEADERS)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Pagamento processado"}
        assert store.get("PED-MGX1-AB12") is None

        assert len(attribution.events) == 1
        event = attribution.events[0]
        assert event.orderId == "PED-MGX1-AB12"
        assert event.status == "paid"
        assert event.approvedDate == "2026-10-19 14:30:00"
        assert event.trackingParameters.utm_source == "google"
        assert event.trackingParameters.utm_campaign == "natal"
        assert event.customer.name == "Maria Silva"
        assert event.customer.phone is None
        assert event.products[0].name == "Pedido PED-MGX1-AB12"
        assert event.products[0].priceInCents == 5989
        assert event.commission.totalPriceInCents == 5989
        assert event.commission.gatewayFeeInCents == 339
        assert event.commission.userCommissionInCents == 5650

    def test_approved_date_defaults_to_now(self, client, attribution) -> None:
        client.post(WEBHOOK_URL, json=_paid_payload(paidAt=None))
        assert attribution.events[0].approvedDate

    def test_missing_customer_uses_placeholder(self, client, attribution) -> None:
        client.post(WEBHOOK_URL, json=_paid_payload(customer=None, netAmount=None))
        event = attribution.events[0]
        assert event.customer.name == "Cliente"
        assert event.customer.email == ""
        assert event.commission.userCommissionInCents == 5989

    def test_attribution_failure_still_acknowledged(self, client, store, attribution, utmify_down) -> None:
        store.save("PED-MGX1-AB12", TrackingParams(utm_source="google"))
        attribution.error = utmify_down

        resp = client.post(WEBHOOK_URL, json=_paid_payload())

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        # Kept so a redelivered webhook can still attribute the sale
        assert store.get("PED-MGX1-AB12") is not None

    def test_order_id_falls_back_to_transaction_id(self, client, attribution) -> None:
        client.post(WEBHOOK_URL, json=_paid_payload(externalReference=None))
        assert attribution.events[0].orderId == "bc_tx_1"


class TestTrackingRecovery:
    def test_metadata_used_when_store_misses(self, client, attribution) -> None:
        metadata = json.dumps({
            "orderId": "PED-MGX1-AB12",
            "trackingParams": {"utm_source": "tiktok", "utm_content": "video-3", "sck": "abc"},
        })
        client.post(WEBHOOK_URL, json=_paid_payload(metadata=metadata))

        tracking = attribution.events[0].trackingParameters
        assert tracking == TrackingParams(utm_source="tiktok", utm_content="video-3", sck="abc")

    def test_flat_metadata_shape(self, client, attribution) -> None:
        metadata = json.dumps({"utm_source": "instagram", "utm_term": "agenda"})
        client.post(WEBHOOK_URL, json=_paid_payload(metadata=metadata))

        tracking = attribution.events[0].trackingParameters
        assert tracking.utm_source == "instagram"
        assert tracking.utm_term == "agenda"

    def test_store_wins_over_metadata(self, client, store, attribution) -> None:
        store.save("PED-MGX1-AB12", TrackingParams(utm_source="google"))
        metadata = json.dumps({"trackingParams": {"utm_source": "tiktok"}})
        client.post(WEBHOOK_URL, json=_paid_payload(metadata=metadata))
        assert attribution.events[0].trackingParameters.utm_source == "google"

    @pytest.mark.parametrize("metadata", ["{not json", "[1, 2]", '"just a string"', None])
    def test_unreadable_metadata_gives_null_params(self, client, attribution, metadata) -> None:
        resp = client.post(WEBHOOK_URL, json=_paid_payload(metadata=metadata))
        assert resp.status_code == 200
        assert attribution.events[0].trackingParameters == TrackingParams()


class TestTransactionFailed:
    def test_refused_event_with_zero_commission(self, client, store, attribution) -> None:
        store.save("PED-MGX1-AB12", TrackingParams(utm_source="google"))
        payload = _paid_payload(event="transaction.failed", status="CANCELLED", paidAt=None, reason="expired")

        resp = client.post(WEBHOOK_URL, json=payload)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Falha processada"}
        event = attribution.events[0]
        assert event.status == "refused"
        assert event.approvedDate is None
        assert event.commission.totalPriceInCents == 5989
        assert event.commission.gatewayFeeInCents == 0
        assert event.commission.userCommissionInCents == 0
        assert event.trackingParameters.utm_source == "google"
        assert store.get("PED-MGX1-AB12") is None

    def test_store_cleaned_even_when_attribution_fails(self, client, store, attribution, utmify_down) -> None:
        store.save("PED-MGX1-AB12", TrackingParams(utm_source="google"))
        attribution.error = utmify_down

        resp = client.post(WEBHOOK_URL, json=_paid_payload(event="transaction.failed"))

        assert resp.status_code == 200
        assert store.get("PED-MGX1-AB12") is None


class TestAcknowledgeOnly:
    def test_transaction_created(self, client, store, attribution) -> None:
        store.save("PED-MGX1-AB12", TrackingParams(utm_source="google"))
        resp = client.post(WEBHOOK_URL, json=_paid_payload(event="transaction.created", status="PENDING"))
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Evento recebido"}
        assert attribution.events == []
        assert store.get("PED-MGX1-AB12") is not None

    @pytest.mark.parametrize("event", ["withdrawal.created", "withdrawal.completed", "withdrawal.failed"])
    def test_withdrawal_events(self, client, attribution, event) -> None:
        resp = client.post(WEBHOOK_URL, json={"event": event, "withdrawalId": "wd_1", "amount": 10000})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Evento de saque recebido"}
        assert attribution.events == []

    def test_unknown_event(self, client, attribution) -> None:
        resp = client.post(WEBHOOK_URL, json={"event": "transaction.chargeback", "transactionId": "bc_tx_1"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Evento recebido"}
        assert attribution.events == []


class TestMalformedEnvelope:
    def test_body_not_json(self, client, attribution) -> None:
        resp = client.post(WEBHOOK_URL, content=b"<xml/>", headers={"Content-Type": "application/json"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Erro ao processar webhook"}
        assert attribution.events == []

    def test_missing_event(self, client) -> None:
        resp = client.post(WEBHOOK_URL, json={"transactionId": "bc_tx_1"})
        assert resp.status_code == 500

    def test_body_is_a_list(self, client) -> None:
        resp = client.post(WEBHOOK_URL, json=[{"event": "transaction.paid"}])
        assert resp.status_code == 500

    @pytest.mark.parametrize("payload", [
        {"event": "withdrawal.completed", "withdrawalId": "wd_1", "amount": 100.5},
        {"event": "withdrawal.failed", "withdrawalId": 987, "fees": "n/a", "reason": {"code": 1}},
        {"event": "transaction.created", "transactionId": "bc_tx_1", "timestamp": 1760880000},
        {"event": "transaction.chargeback", "transactionId": 12345, "customer": "Maria", "netAmount": [1]},
    ])
    def test_loosely_typed_fields_still_acknowledged(self, client, attribution, payload) -> None:
        resp = client.post(WEBHOOK_URL, json=payload)
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert attribution.events == []

    def test_paid_event_with_loosely_typed_fields(self, client, attribution) -> None:
        payload = _paid_payload(
            externalReference=None, transactionId=12345, timestamp=1760880000,
            amount=5989.4, fees="339", netAmount=None, customer={"name": "Maria", "email": 7},
        )

        resp = client.post(WEBHOOK_URL, json=payload)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Pagamento processado"}
        event = attribution.events[0]
        assert event.orderId == "12345"
        assert event.commission.totalPriceInCents == 5989
        assert event.commission.gatewayFeeInCents == 339
        assert event.commission.userCommissionInCents == 5989
        assert event.customer.email == "7"
