"""
Tests for WACService: persisted holdings, the WACRecord audit trail,
realized P/L and the cached inventory projection.
"""

from datetime import timedelta

import pytest

from exchange_kernel.db.engine import session_scope
from exchange_kernel.domain.values import Amount
from exchange_kernel.exceptions import (
    InsufficientHoldingError,
    InvalidCurrencyError,
    InvalidRateError,
)
from exchange_kernel.models.currency_holding import CurrencyHolding, WACRecord, WACTransactionType
from exchange_kernel.selectors.wac_selector import WACSelector
from exchange_kernel.services.wac_service import WACService, inventory_cache_key
from exchange_kernel.utils.cache import TTLCache


@pytest.fixture
def inventory_cache():
    cache = TTLCache(ttl_seconds=300, cleanup_interval_seconds=60, name="inventory")
    yield cache
    cache.close()


@pytest.fixture
def wac(session, clock, inventory_cache):
    return WACService(session, clock, inventory_cache)


def _buy(wac, tenant_id, actor_id, quantity, rate, currency="USD"):
    return wac.record_currency_purchase(
        tenant_id=tenant_id,
        currency=currency,
        quantity=Amount(quantity),
        rate=Amount(rate),
        actor_id=actor_id,
    )


def _sell(wac, tenant_id, actor_id, quantity, rate, currency="USD"):
    return wac.record_currency_sale(
        tenant_id=tenant_id,
        currency=currency,
        quantity=Amount(quantity),
        rate=Amount(rate),
        actor_id=actor_id,
    )


class TestPurchasesAndSales:

    def test_weighted_average_scenario(self, wac, session, tenant_id, actor_id):
        """1000 @ 1.35, 1000 @ 1.30, sell 500 @ 1.40: WAC 1.325, P/L 37.5, 1500 left."""
        _buy(wac, tenant_id, actor_id, "1000", "1.35")
        second = _buy(wac, tenant_id, actor_id, "1000", "1.30")
        assert second.new_wac == Amount("1.325")

        sale = _sell(wac, tenant_id, actor_id, "500", "1.40")
        assert sale.profit_or_loss == Amount("37.5")
        assert sale.new_wac == Amount("1.325")
        assert sale.previous_wac == Amount("1.325")

        position = WACSelector(session).position(tenant_id, "USD")
        assert position.quantity == Amount("1500")
        assert position.wac == Amount("1.325")
        assert position.total_cost == Amount("1987.5")

    def test_audit_trail_chains(self, wac, session, clock, tenant_id, actor_id):
        _buy(wac, tenant_id, actor_id, "1000", "1.35")
        clock.advance(1)
        _buy(wac, tenant_id, actor_id, "1000", "1.30")
        clock.advance(1)
        _sell(wac, tenant_id, actor_id, "500", "1.40")

        history = WACSelector(session).history(tenant_id, currency="USD")
        assert [r.transaction_type for r in history] == [
            WACTransactionType.BUY.value,
            WACTransactionType.BUY.value,
            WACTransactionType.SELL.value,
        ]
        for before, after in zip(history, history[1:]):
            assert after.previous_quantity == before.new_quantity
            assert after.previous_wac == before.new_wac
        assert history[2].quantity == Amount("-500")

    def test_sale_without_holding_rejected(self, wac, session, tenant_id, actor_id):
        with pytest.raises(InsufficientHoldingError):
            _sell(wac, tenant_id, actor_id, "1", "1.40", currency="EUR")
        assert session.query(CurrencyHolding).count() == 0
        assert session.query(WACRecord).count() == 0

    def test_oversell_leaves_position_untouched(self, wac, session, tenant_id, actor_id):
        _buy(wac, tenant_id, actor_id, "100", "1.35")
        with pytest.raises(InsufficientHoldingError):
            _sell(wac, tenant_id, actor_id, "100.5", "1.40")
        position = WACSelector(session).position(tenant_id, "USD")
        assert position.quantity == Amount("100")

    def test_sell_everything_resets_wac(self, wac, session, tenant_id, actor_id):
        _buy(wac, tenant_id, actor_id, "100", "1.35")
        _sell(wac, tenant_id, actor_id, "100", "1.40")
        position = WACSelector(session).position(tenant_id, "USD")
        assert position.quantity.is_zero
        assert position.wac.is_zero

    def test_invalid_inputs(self, wac, tenant_id, actor_id):
        with pytest.raises(InvalidRateError):
            _buy(wac, tenant_id, actor_id, "10", "0")
        with pytest.raises(InvalidCurrencyError):
            _buy(wac, tenant_id, actor_id, "10", "1.3", currency="QQQ")

    def test_holdings_are_tenant_scoped(self, wac, session, tenant_id, other_tenant_id, actor_id):
        _buy(wac, tenant_id, actor_id, "100", "1.35")
        with pytest.raises(InsufficientHoldingError):
            _sell(wac, other_tenant_id, actor_id, "1", "1.40")


class TestAdjustInventory:

    def test_count_shortage(self, wac, session, tenant_id, actor_id):
        _buy(wac, tenant_id, actor_id, "100", "1.35")
        record = wac.adjust_inventory(
            tenant_id=tenant_id,
            currency="USD",
            quantity_delta=Amount("-2"),
            actor_id=actor_id,
            notes="Vault count",
        )
        assert record.transaction_type == WACTransactionType.ADJUSTMENT.value
        assert record.notes == "Vault count"
        assert WACSelector(session).position(tenant_id, "USD").quantity == Amount("98")

    def test_positive_adjustment_creates_holding(self, wac, session, tenant_id, actor_id):
        wac.adjust_inventory(
            tenant_id=tenant_id,
            currency="GBP",
            quantity_delta=Amount("20"),
            actor_id=actor_id,
            new_wac=Amount("1.71"),
        )
        position = WACSelector(session).position(tenant_id, "GBP")
        assert position.quantity == Amount("20")
        assert position.wac == Amount("1.71")

    def test_negative_adjustment_without_holding_rejected(self, wac, session, tenant_id, actor_id):
        with pytest.raises(InsufficientHoldingError):
            wac.adjust_inventory(
                tenant_id=tenant_id,
                currency="GBP",
                quantity_delta=Amount("-1"),
                actor_id=actor_id,
            )
        assert session.query(CurrencyHolding).count() == 0


class TestInventoryProjection:

    def test_inventory_lists_live_positions_at_cost(self, wac, tenant_id, actor_id):
        _buy(wac, tenant_id, actor_id, "1000", "1.35", currency="USD")
        _buy(wac, tenant_id, actor_id, "200", "1.50", currency="EUR")
        _buy(wac, tenant_id, actor_id, "10", "1.70", currency="GBP")
        _sell(wac, tenant_id, actor_id, "10", "1.75", currency="GBP")

        inventory = wac.get_currency_inventory(tenant_id)
        assert inventory.base_currency == "CAD"
        assert [p.currency for p in inventory.positions] == ["EUR", "USD"]
        assert inventory.total_value == Amount("1650")

    def test_inventory_cached_until_next_committed_mutation(
        self, wac, session, inventory_cache, tenant_id, actor_id
    ):
        _buy(wac, tenant_id, actor_id, "100", "1.35")
        session.commit()
        first = wac.get_currency_inventory(tenant_id)
        assert wac.get_currency_inventory(tenant_id) is first
        assert inventory_cache.get(inventory_cache_key(tenant_id, "CAD")) is first

        _buy(wac, tenant_id, actor_id, "100", "1.25")
        # Own uncommitted write: read live, leave the cache alone
        refreshed = wac.get_currency_inventory(tenant_id)
        assert refreshed is not first
        assert refreshed.positions[0].quantity == Amount("200")
        assert inventory_cache.get(inventory_cache_key(tenant_id, "CAD")) is first

        session.commit()
        assert inventory_cache.get(inventory_cache_key(tenant_id, "CAD")) is None
        assert wac.get_currency_inventory(tenant_id).positions[0].quantity == Amount("200")

    def test_rolled_back_mutation_never_cached(
        self, wac, session, inventory_cache, tenant_id, actor_id
    ):
        _buy(wac, tenant_id, actor_id, "100", "1.35")
        session.commit()
        _buy(wac, tenant_id, actor_id, "900", "1.35")
        assert wac.get_currency_inventory(tenant_id).positions[0].quantity == Amount("1000")
        session.rollback()

        current = wac.get_currency_inventory(tenant_id)
        assert current.positions[0].quantity == Amount("100")
        assert inventory_cache.get(inventory_cache_key(tenant_id, "CAD")) is current

    def test_read_during_uncommitted_purchase_is_not_served_after_commit(
        self, session_factory, clock, inventory_cache, tenant_id, actor_id
    ):
        with session_scope(session_factory) as setup:
            _buy(WACService(setup, clock, inventory_cache), tenant_id, actor_id, "1000", "1.35")

        writer = session_factory()
        try:
            _buy(WACService(writer, clock, inventory_cache), tenant_id, actor_id, "1000", "1.30")
            with session_scope(session_factory) as reader:
                during = WACService(reader, clock, inventory_cache).get_currency_inventory(tenant_id)
            assert during.positions[0].quantity == Amount("1000")
            writer.commit()
        finally:
            writer.close()

        with session_scope(session_factory) as reader:
            after = WACService(reader, clock, inventory_cache).get_currency_inventory(tenant_id)
        assert after.positions[0].quantity == Amount("2000")
        assert after.positions[0].wac == Amount("1.325")

    def test_mutation_only_invalidates_own_tenant(
        self, wac, session, inventory_cache, tenant_id, other_tenant_id, actor_id
    ):
        _buy(wac, other_tenant_id, actor_id, "5", "1.35")
        session.commit()
        other_inventory = wac.get_currency_inventory(other_tenant_id)
        _buy(wac, tenant_id, actor_id, "5", "1.35")
        session.commit()
        assert wac.get_currency_inventory(other_tenant_id) is other_inventory

    def test_works_without_cache(self, session, clock, tenant_id, actor_id):
        service = WACService(session, clock)
        _buy(service, tenant_id, actor_id, "10", "1.35")
        assert service.get_currency_inventory(tenant_id).positions[0].quantity == Amount("10")


class TestRealizedProfitLoss:

    def test_sums_sales_in_period(self, wac, session, clock, tenant_id, actor_id):
        start = clock.now()
        _buy(wac, tenant_id, actor_id, "1000", "1.30", currency="USD")
        _buy(wac, tenant_id, actor_id, "100", "1.50", currency="EUR")
        clock.advance(60)
        _sell(wac, tenant_id, actor_id, "100", "1.40", currency="USD")
        _sell(wac, tenant_id, actor_id, "50", "1.45", currency="EUR")
        clock.advance(days=2)
        _sell(wac, tenant_id, actor_id, "100", "1.50", currency="USD")

        report = WACSelector(session).realized_profit_loss(
            tenant_id, start, start + timedelta(days=1)
        )
        assert report.sale_count == 2
        assert report.by_currency == {"EUR": Amount("-2.5"), "USD": Amount("10")}
        assert report.total == Amount("7.5")
