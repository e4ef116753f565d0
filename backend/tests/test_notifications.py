"""Tests for the refund, cancellation and order namespaces."""
import pytest

from relay.notifications import (
    CancellationDispatcher,
    OrderDispatcher,
    OrderStatusUpdate,
    RefundDispatcher,
)


def single(effects):
    assert len(effects) == 1, effects
    return effects[0]


@pytest.fixture
def refund():
    dispatcher = RefundDispatcher()
    dispatcher.dispatch("c-seller", "register_user", {"userId": "toko_1"})
    dispatcher.dispatch("c-buyer", "register_user", {"userId": "pembeli_5"})
    return dispatcher


@pytest.fixture
def cancellation():
    dispatcher = CancellationDispatcher()
    dispatcher.dispatch("c-seller", "register_user", {"userId": "toko_1"})
    dispatcher.dispatch("c-buyer", "register_user", {"userId": "pembeli_5"})
    return dispatcher


class TestRegistration:
    def test_register_user_emits_nothing(self):
        dispatcher = RefundDispatcher()
        assert dispatcher.dispatch("c-1", "register_user", {"userId": "toko_1"}) == []
        assert dispatcher.registry.connection_for("toko_1") == "c-1"

    def test_namespaces_do_not_share_presence(self, refund):
        assert CancellationDispatcher().registry.lookup("toko_1") is None
        assert refund.registry.lookup("toko_1") is not None

    def test_reregistration_moves_identity(self, refund):
        refund.dispatch("c-seller-2", "register_user", {"userId": "toko_1"})

        assert refund.registry.connection_for("toko_1") == "c-seller-2"
        assert refund.registry.identity_for("c-seller") is None

    def test_disconnect_removes_identity(self, refund):
        refund.disconnect("c-buyer")
        assert refund.registry.lookup("pembeli_5") is None
        assert refund.disconnect("c-buyer") == []


class TestRefund:
    def test_refund_request_reaches_seller(self, refund):
        payload = {"id_toko": 1, "order_number": "INV-9", "reason": "rusak"}
        effect = single(refund.dispatch("c-buyer", "request_refund_from_buyer", payload))

        assert effect.event == "new_refund_notification"
        assert effect.recipients == frozenset({"c-seller"})
        assert effect.payload == payload

    def test_refund_request_to_offline_seller(self, refund):
        payload = {"id_toko": 2, "order_number": "INV-9"}
        assert refund.dispatch("c-buyer", "request_refund_from_buyer", payload) == []

    def test_refund_status_update_reaches_buyer(self, refund):
        payload = {"id_pembeli": 5, "order_number": "INV-9", "status": "approved", "message": "ok"}
        effect = single(refund.dispatch("c-seller", "refund_status_update", payload))

        assert effect.event == "refund_status_changed"
        assert effect.recipients == frozenset({"c-buyer"})
        assert effect.payload["status"] == "approved"
        assert effect.payload["order_number"] == "INV-9"
        assert effect.payload["timestamp"].endswith("Z")

    def test_check_refund_status(self, refund):
        effect = single(refund.dispatch("c-buyer", "check_refund_status", {"order_number": 3}))

        assert effect.event == "refund_status_check_response"
        assert effect.recipients == frozenset({"c-buyer"})
        assert effect.payload["order_number"] == 3
        assert effect.payload["message"] == "Status check request received"

    def test_announcement_goes_to_everyone(self, refund):
        effect = single(
            refund.dispatch("c-seller", "broadcast_refund_announcement", {"message": "libur"})
        )

        assert effect.event == "refund_announcement"
        assert effect.is_broadcast
        assert effect.payload["from"] == "toko_1"
        assert effect.payload["message"] == "libur"

    def test_missing_target_is_dropped(self, refund):
        assert refund.dispatch("c-seller", "refund_status_update", {"status": "x"}) == []


class TestCancellation:
    def test_request_reaches_seller(self, cancellation):
        payload = {"id_toko": "1", "order_number": "INV-1"}
        effect = single(
            cancellation.dispatch("c-buyer", "request_cancellation_from_buyer", payload)
        )

        assert effect.event == "new_cancellation_notification"
        assert effect.recipients == frozenset({"c-seller"})

    def test_response_reaches_buyer(self, cancellation):
        payload = {"id_pembeli": 5, "order_number": "INV-1", "response": "approved"}
        effect = single(cancellation.dispatch("c-seller", "respond_to_cancellation", payload))

        assert effect.event == "cancellation_response"
        assert effect.recipients == frozenset({"c-buyer"})
        assert effect.payload["response"] == "approved"

    def test_status_update_to_offline_buyer(self, cancellation):
        payload = {"id_pembeli": 9, "status": "processing"}
        assert cancellation.dispatch("c-seller", "cancellation_status_update", payload) == []

    def test_withdrawn_request_reaches_seller(self, cancellation):
        effect = single(
            cancellation.dispatch(
                "c-buyer", "cancel_cancellation_request", {"id_toko": 1, "order_number": "INV-1"}
            )
        )

        assert effect.event == "cancellation_request_cancelled"
        assert effect.payload["cancelled_by"] == "pembeli_5"

    def test_check_status_and_announcement(self, cancellation):
        check = single(cancellation.dispatch("c-buyer", "check_cancellation_status", {}))
        assert check.event == "cancellation_status_check_response"

        announce = single(
            cancellation.dispatch("c-seller", "broadcast_cancellation_announcement", {"message": "m"})
        )
        assert announce.event == "cancellation_announcement"
        assert announce.is_broadcast


class TestOrder:
    def test_new_order_reaches_seller(self):
        order = OrderDispatcher()
        order.dispatch("c-seller", "register_user", {"userId": "toko_1"})

        effect = single(
            order.dispatch(
                "c-checkout", "new_order_placed",
                {"id_toko": 1, "order_data": {"order_number": "INV-7", "total": 1000}},
            )
        )

        assert effect.event == "new_order_notification"
        assert effect.recipients == frozenset({"c-seller"})
        assert effect.payload["message"] == "Pesanan baru #INV-7 telah masuk!"
        assert effect.payload["order"]["total"] == 1000

    def test_order_status_update_to_online_seller(self):
        order = OrderDispatcher()
        order.dispatch("c-seller", "register_user", {"userId": "toko_1"})

        effect = single(
            order.order_status_update(OrderStatusUpdate(id_toko=1, order_number="INV-7"))
        )

        assert effect.event == "order_status_updated"
        assert effect.payload["message"] == "Pembayaran untuk pesanan #INV-7 berhasil."

    def test_order_status_update_to_offline_seller(self):
        order = OrderDispatcher()
        assert order.order_status_update(OrderStatusUpdate(id_toko=1)) == []
