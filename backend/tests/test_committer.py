"""Sale commit: validation, persistence, side effects and notifications."""

from sqlalchemy.exc import OperationalError

from refill_pos.register import (
    CommitState,
    ConnectivityGate,
    InlineDispatcher,
    LocalStore,
    RegisterSession,
    TaskDispatcher,
)
from refill_pos.register import pricing


class _FailingStore(LocalStore):
    """Local store whose queue or cart writes hit a disk error."""

    def __init__(self, *, queue=False, cart=False):
        super().__init__()
        self.fail_queue = queue
        self.fail_cart = cart

    def save_queue(self, operations):
        if self.fail_queue:
            raise OperationalError("UPDATE register_state", {}, Exception("disk I/O error"))
        super().save_queue(operations)

    def save_cart(self, data):
        if self.fail_cart:
            raise OperationalError("UPDATE register_state", {}, Exception("disk I/O error"))
        super().save_cart(data)


def _add(session, product_id, quantity=1, mode=None):
    product = session.catalog.get(product_id)
    for _ in range(quantity):
        session.cart.add(product, mode)


def test_cash_sale_of_plain_product(remote, make_session):
    session = make_session(remote)
    _add(session, "ice-1", 3)

    result = session.complete_sale(100)

    assert result.ok
    assert result.trail == [
        CommitState.IDLE,
        CommitState.VALIDATING,
        CommitState.PERSISTING,
        CommitState.SIDE_EFFECTS,
        CommitState.SETTLED,
    ]
    sale = result.sale
    assert sale.total == 60
    assert sale.change == 40
    assert len(sale.items) == 1
    assert sale.items[0].subtotal == 60
    assert sale.items[0].sale_mode is None

    stored = remote.sales.get(sale.id)
    assert stored.total == 60
    assert [item.quantity for item in stored.items] == [3]

    assert session.cart.is_empty
    assert session.sales[0].id == sale.id


def test_deposit_sale_records_one_outstanding_container_per_item(remote, make_session):
    session = make_session(remote)
    _add(session, "gas-1", 2, pricing.DEPOSIT)
    assert session.cart_total() == 600
    assert session.deposit_total() == 400

    result = session.complete_sale(1000)

    assert result.ok
    assert result.sale.total == 600
    records = list(remote.containers.rows.values())
    assert len(records) == 1
    assert records[0]["quantity"] == 2
    assert records[0]["deposit_amount"] == 200
    assert records[0]["sale_item_id"] == result.sale.items[0].id
    assert records[0]["status"] == "pending"


def test_exchange_sale_grows_empty_stock(remote, make_session):
    session = make_session(remote)
    _add(session, "gas-1", 2)

    assert session.complete_sale(600).ok

    assert session.catalog.get("gas-1").stock == 8
    assert session.catalog.get("gas-1").empty_stock == 4
    assert remote.products.rows["gas-1"]["stock"] == 8
    assert remote.products.rows["gas-1"]["empty_stock"] == 4
    assert not remote.containers.rows


def test_outright_sale_does_not_touch_empty_stock(remote, make_session):
    session = make_session(remote)
    _add(session, "gas-1", 1, pricing.OUTRIGHT)

    result = session.complete_sale(5000)

    assert result.ok
    assert result.sale.total == 300 + 200 + pricing.OUTRIGHT_MARKUP
    assert session.catalog.get("gas-1").empty_stock == 2
    assert not remote.containers.rows


def test_stock_logs_carry_mode_specific_reasons(remote, make_session):
    session = make_session(remote)
    _add(session, "ice-1", 1)
    _add(session, "gas-1", 1, pricing.EXCHANGE)
    _add(session, "gas-1", 1, pricing.DEPOSIT)

    result = session.complete_sale(10000)

    logs = list(remote.stock_logs.rows.values())
    assert sorted(log["reason"] for log in logs) == ["deposit_sale", "exchange", "sale"]
    assert all(log["sale_id"] == result.sale.id for log in logs)
    assert all(log["change_amount"] == -1 for log in logs)


def test_sequential_sales_chain_stock_decrements(remote, make_session):
    session = make_session(remote)
    for _ in range(2):
        _add(session, "ice-1", 3)
        assert session.complete_sale(100).ok

    assert session.catalog.get("ice-1").stock == 44
    assert remote.products.rows["ice-1"]["stock"] == 44


def test_stock_never_goes_negative(remote, make_session):
    session = make_session(remote)
    _add(session, "ice-1", 60)

    assert session.complete_sale(2000).ok
    assert session.catalog.get("ice-1").stock == 0
    assert remote.products.rows["ice-1"]["stock"] == 0


def test_item_subtotals_match_header_total_after_discount(remote, make_session):
    session = make_session(remote)
    _add(session, "ice-1", 2)
    _add(session, "gas-1", 1)

    result = session.complete_sale(500, discount_amount=40)

    assert result.sale.total == 340 - 40
    assert sum(item.subtotal for item in result.sale.items) - 40 == result.sale.total


def test_insufficient_cash_fails_validation_without_remote_writes(remote, make_session):
    session = make_session(remote)
    _add(session, "ice-1", 3)

    result = session.complete_sale(50)

    assert not result.ok
    assert result.trail == [CommitState.IDLE, CommitState.VALIDATING, CommitState.FAILED]
    assert "less than total" in result.error
    assert remote.count("sales.insert") == 0
    assert session.cart.item_count() == 3
    assert session.last_error is None


def test_transfer_ignores_tendered_amount(remote, make_session):
    session = make_session(remote)
    _add(session, "ice-1", 3)

    result = session.complete_sale(0, payment_method="transfer")

    assert result.ok
    assert result.sale.payment == 60
    assert result.sale.change == 0


def test_empty_cart_and_unknown_method_fail(remote, make_session):
    session = make_session(remote)
    assert session.complete_sale(100).error == "Cart is empty"

    _add(session, "ice-1")
    result = session.complete_sale(100, payment_method="coupon")
    assert not result.ok
    assert "Unknown payment method" in result.error


def test_remote_failure_while_online_leaves_stock_and_cart(remote, make_session):
    session = make_session(remote)
    _add(session, "ice-1", 3)
    remote.fail("sales.insert")

    result = session.complete_sale(100)

    assert result.state is CommitState.FAILED
    assert CommitState.PERSISTING in result.trail
    assert CommitState.SIDE_EFFECTS not in result.trail
    assert session.catalog.get("ice-1").stock == 50
    assert session.cart.item_count() == 3
    assert session.last_error
    assert not session.sales


def test_side_effect_failure_is_logged_not_fatal(remote, make_session, caplog):
    session = make_session(remote)
    _add(session, "ice-1", 2)
    remote.fail("stock_logs.insert")

    result = session.complete_sale(100)

    assert result.ok
    assert len(result.side_effect_errors) == 1
    assert "stock log" in result.side_effect_errors[0]
    assert remote.products.rows["ice-1"]["stock"] == 48
    assert "Side effect failed" in caplog.text


def test_low_stock_and_daily_target_notifications(remote, make_session, notifications):
    session = make_session(remote, daily_target=100)
    _add(session, "gas-1", 1)
    assert session.complete_sale(300).ok
    _add(session, "gas-1", 1)
    assert session.complete_sale(300).ok

    kinds = [kind for kind, _, _ in notifications]
    assert kinds.count("daily_target") == 1
    # gas drops from 10 to 8: above its threshold of 2
    assert "low_stock" not in kinds

    _add(session, "gas-1", 6)
    assert session.complete_sale(1800).ok
    low = [data for kind, _, data in notifications if kind == "low_stock"]
    assert low == [{"product_id": "gas-1", "stock": 2}]


def test_failing_notification_never_fails_the_sale(remote):
    def deliver(kind, message, data):
        raise RuntimeError("push service down")

    session = RegisterSession(
        remote=remote,
        store=LocalStore(),
        gate=ConnectivityGate(),
        dispatcher=InlineDispatcher(),
        deliver=deliver,
        daily_target=1,
    )
    session.refresh_catalog()
    session.update_stock("ice-1", -48)
    _add(session, "ice-1")

    result = session.complete_sale(20)

    assert result.ok
    assert session.catalog.get("ice-1").stock == 1


def test_product_deleted_while_in_cart_fails_validation(remote, make_session):
    session = make_session(remote)
    _add(session, "ice-1", 2)
    assert session.delete_product("ice-1")

    result = session.complete_sale(100)

    assert result.state is CommitState.FAILED
    assert "no longer in the catalog" in result.error
    assert CommitState.PERSISTING not in result.trail
    assert [p.id for p in session.products] == ["gas-1"]
    assert remote.count("sales.insert") == 0


def test_sale_before_first_refresh_leaves_snapshot_alone(remote, ice, make_session):
    session = make_session(remote, refresh=False)
    session.cart.add(ice)

    result = session.complete_sale(20)

    assert result.ok
    assert "ice-1" not in session.catalog
    assert session.products == []


def test_offline_sale_that_cannot_be_queued_fails_and_keeps_cart(remote, make_session):
    session = make_session(remote, store=_FailingStore(queue=True))
    session.set_online(False)
    _add(session, "ice-1")

    result = session.complete_sale(20)

    assert result.state is CommitState.FAILED
    assert "Could not save sale" in result.error
    assert session.last_error == result.error
    assert len(session.queue) == 0
    assert session.cart.item_count() == 1
    assert session.sales == []


def test_cart_save_failure_does_not_fail_the_sale(remote, make_session, caplog):
    session = make_session(remote, store=_FailingStore(cart=True))
    _add(session, "ice-1", 2)

    result = session.complete_sale(40)

    assert result.ok
    assert session.cart.is_empty
    assert remote.products.rows["ice-1"]["stock"] == 48
    assert "Failed to save cart locally" in caplog.text


def test_sale_settles_after_dispatcher_shutdown(remote):
    session = RegisterSession(
        remote=remote,
        store=LocalStore(),
        gate=ConnectivityGate(),
        dispatcher=TaskDispatcher(max_workers=1),
        deliver=lambda kind, message, data: None,
    )
    session.refresh_catalog()
    session.dispatcher.shutdown()
    _add(session, "ice-1")

    result = session.complete_sale(20)

    assert result.ok
    assert session.catalog.get("ice-1").stock == 49
