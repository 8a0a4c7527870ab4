# Overview: Pytest coverage for order allocation, validation, confirm, edit and status transitions.

import json

import pytest

from stockledger.errors import NotFoundError, StockValidationError
from stockledger.models import Order, OrderItem, Product, ProductLog
from stockledger.services import order_service
from stockledger.services.line_items import LineItem


@pytest.fixture
def make_order(db_session, tenant):
    """Factory for normalized orders: lines are (product, quantity) or (product, quantity, variant)."""
    def _make(number, status, lines=()):
        order = Order(tenant_id=tenant.id, order_number=number, status=status)
        db_session.add(order)
        db_session.flush()
        for entry in lines:
            product, quantity = entry[0], entry[1]
            variant = entry[2] if len(entry) > 2 else None
            db_session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                product_variant_id=variant.id if variant is not None else None,
                name=product.name,
                quantity=quantity,
                price_cents=750,
            ))
        db_session.commit()
        return order
    return _make


def _widget(product, quantity):
    return [LineItem(name=product.name, quantity=quantity, product_id=product.id)]


class TestAllocations:

    def test_only_allocation_relevant_orders_count(self, db_session, tenant, product, make_order):
        make_order("O-1", "CONFIRMED", [(product, 4)])
        make_order("O-2", "DISPATCHED", [(product, 1)])
        make_order("O-3", "PENDING", [(product, 5)])
        make_order("O-4", "CANCELLED", [(product, 5)])

        allocations = order_service.compute_allocations(tenant.id)
        assert allocations.by_product[product.id] == 5

    def test_variant_allocations_are_separate(self, db_session, tenant, product, variants, make_order):
        red, _ = variants
        make_order("O-1", "CONFIRMED", [(product, 2, red), (product, 3)])

        allocations = order_service.compute_allocations(tenant.id)
        assert allocations.by_variant[red.id] == 2
        assert allocations.by_product[product.id] == 3

    def test_legacy_orders_allocate_too(self, db_session, tenant, product):
        order = Order(
            tenant_id=tenant.id,
            order_number="L-1",
            status="COMPLETED",
            selected_products=json.dumps([{"id": product.id, "name": "Widget"}]),
            product_quantities=json.dumps({str(product.id): 6}),
        )
        db_session.add(order)
        db_session.commit()

        assert order_service.compute_allocations(tenant.id).by_product[product.id] == 6


class TestValidateOrderStock:

    def test_available_is_current_minus_allocated(self, db_session, tenant, product, make_order):
        make_order("O-1", "CONFIRMED", [(product, 4)])

        result = order_service.validate_order_stock(tenant.id, _widget(product, 7))
        assert not result.is_valid
        shortfall = result.errors[0]
        assert shortfall.available == 6
        assert shortfall.requested == 7
        assert shortfall.message == "Insufficient stock for Widget. Available: 6, Requested: 7"

        assert order_service.validate_order_stock(tenant.id, _widget(product, 6)).is_valid

    def test_lines_for_the_same_product_are_combined(self, db_session, tenant, product):
        items = _widget(product, 6) + [LineItem(name="widget", quantity=5)]
        result = order_service.validate_order_stock(tenant.id, items)
        assert not result.is_valid
        assert result.errors[0].requested == 11

    def test_excluded_order_does_not_block_itself(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "CONFIRMED", [(product, 8)])

        assert not order_service.validate_order_stock(tenant.id, _widget(product, 4)).is_valid
        assert order_service.validate_order_stock(
            tenant.id, _widget(product, 4), exclude_order_id=order.id,
        ).is_valid

    def test_growing_own_order_passes_revalidation(self, app, monkeypatch, db_session, tenant, product, make_order):
        order = make_order("O-1", "CONFIRMED", [(product, 4)])

        assert order_service.validate_order_stock(
            tenant.id, _widget(product, 6), exclude_order_id=order.id,
        ).is_valid

        monkeypatch.setitem(app.config, "ORDER_EDIT_CREDITS_OWN_ALLOCATION", False)
        result = order_service.validate_order_stock(tenant.id, _widget(product, 11), exclude_order_id=order.id)
        assert result.errors[0].available == 10

    def test_legacy_shape_as_json_text(self, db_session, tenant, product):
        result = order_service.validate_order_stock(
            tenant.id,
            json.dumps([{"id": product.id, "name": "Widget"}]),
            json.dumps({str(product.id): 11}),
        )
        assert not result.is_valid
        assert result.errors[0].available == 10

    def test_unknown_and_inactive_products_are_not_found(self, db_session, tenant, product):
        ghost = Product(tenant_id=tenant.id, name="Ghost", current_quantity=50, is_active=False)
        db_session.add(ghost)
        db_session.commit()

        result = order_service.validate_order_stock(
            tenant.id,
            [LineItem(name="Nothing", quantity=1), LineItem(name="Ghost", quantity=1, product_id=ghost.id)],
        )
        assert len(result.errors) == 2
        assert all(error.available is None for error in result.errors)
        assert result.errors[0].message == "Product not found: Nothing"

    def test_validation_never_mutates(self, db_session, tenant, product):
        order_service.validate_order_stock(tenant.id, _widget(product, 3))
        assert product.current_quantity == 10
        assert db_session.query(ProductLog).count() == 0


class TestConfirm:

    def test_normalized_and_legacy_confirm_match(self, db_session, tenant, product, make_order):
        normalized = make_order("O-N", "PENDING", [(product, 3)])
        legacy = Order(
            tenant_id=tenant.id,
            order_number="O-L",
            status="PENDING",
            selected_products=json.dumps([{"id": product.id, "name": "Widget", "price": "7.50"}]),
            product_quantities=json.dumps({str(product.id): 3}),
        )
        db_session.add(legacy)
        db_session.commit()

        first = order_service.apply_order_confirm(tenant.id, normalized.id, "O-N")
        second = order_service.apply_order_confirm(tenant.id, legacy.id, "O-L")

        assert first.logs_created == second.logs_created == 1
        assert product.current_quantity == 4

        logs = db_session.query(ProductLog).order_by(ProductLog.id.asc()).all()
        assert [(log.action, log.quantity, log.reason) for log in logs] == [
            ("DECREASE", -3, order_service.REASON_CONFIRMED),
            ("DECREASE", -3, order_service.REASON_CONFIRMED),
        ]
        assert [log.order_id for log in logs] == [normalized.id, legacy.id]
        assert logs[0].reference == "Order: O-N"

    def test_variant_line_decrements_variant(self, db_session, tenant, product, variants, make_order):
        red, _ = variants
        red.current_quantity = 5
        db_session.commit()
        order = make_order("O-V", "PENDING", [(product, 2, red)])

        order_service.apply_order_confirm(tenant.id, order.id)

        assert red.current_quantity == 3
        assert product.current_quantity == 10

    def test_second_confirm_is_rejected(self, db_session, tenant, product):
        order = Order(
            tenant_id=tenant.id,
            order_number="L-1",
            status="CONFIRMED",
            selected_products=json.dumps([{"id": product.id, "name": "Widget"}]),
            product_quantities=json.dumps({str(product.id): 3}),
        )
        db_session.add(order)
        db_session.commit()

        order_service.apply_order_confirm(tenant.id, order.id)
        with pytest.raises(StockValidationError):
            order_service.apply_order_confirm(tenant.id, order.id)

        assert product.current_quantity == 7
        assert db_session.query(ProductLog).filter_by(order_id=order.id).count() == 1

    def test_cancelled_order_cannot_be_confirmed(self, db_session, tenant, product, make_order):
        order = make_order("O-C", "CANCELLED", [(product, 3)])

        with pytest.raises(StockValidationError):
            order_service.apply_order_confirm(tenant.id, order.id)
        assert product.current_quantity == 10

    def test_transition_after_confirm_takes_stock_once(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "PENDING", [(product, 3)])

        order_service.apply_order_confirm(tenant.id, order.id)
        result = order_service.transition_order_status(tenant.id, order.id, "CONFIRMED")

        assert result.logs_created == 0
        assert order.status == "CONFIRMED"
        assert product.current_quantity == 7

    def test_missing_order_raises(self, db_session, tenant):
        with pytest.raises(NotFoundError):
            order_service.apply_order_confirm(tenant.id, 424242)


class TestOrderEdit:

    def test_net_delta_is_applied_once(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "CONFIRMED", [(product, 4)])

        result = order_service.apply_order_edit(
            tenant.id, order.id, _widget(product, 4), None, _widget(product, 6), None,
        )

        assert result.logs_created == 1
        assert product.current_quantity == 8
        log = db_session.query(ProductLog).one()
        assert log.quantity == -2
        assert log.order_id == order.id
        assert log.reason == order_service.REASON_EDITED

    def test_ordering_less_returns_stock(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "DISPATCHED", [(product, 4)])

        order_service.apply_order_edit(
            tenant.id, order.id, _widget(product, 4), None, _widget(product, 1), None, "O-1",
        )
        assert product.current_quantity == 13

    def test_legacy_edit_payloads(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "CONFIRMED", [(product, 2)])
        selected = json.dumps([{"id": product.id, "name": "Widget"}])

        order_service.apply_order_edit(
            tenant.id, order.id,
            selected, json.dumps({str(product.id): 2}),
            selected, json.dumps({str(product.id): 5}),
        )
        assert product.current_quantity == 7

    def test_pending_order_edit_is_a_no_op(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "PENDING", [(product, 4)])

        result = order_service.apply_order_edit(
            tenant.id, order.id, _widget(product, 4), None, _widget(product, 9), None,
        )

        assert result.logs_created == 0
        assert product.current_quantity == 10
        assert db_session.query(ProductLog).count() == 0


class TestTransitions:

    def test_confirm_transition_decrements_stock(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "PENDING", [(product, 3)])

        result = order_service.transition_order_status(tenant.id, order.id, "CONFIRMED")

        assert result.logs_created == 1
        assert order.status == "CONFIRMED"
        assert product.current_quantity == 7

    def test_cancel_pending_has_no_stock_effect(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "PENDING", [(product, 3)])

        order_service.transition_order_status(tenant.id, order.id, "cancelled")

        assert order.status == "CANCELLED"
        assert product.current_quantity == 10

    def test_illegal_transition_raises_and_keeps_status(self, db_session, tenant, product, make_order):
        order = make_order("O-1", "COMPLETED", [(product, 3)])

        with pytest.raises(StockValidationError):
            order_service.transition_order_status(tenant.id, order.id, "PENDING")

        assert order.status == "COMPLETED"
        assert product.current_quantity == 10
