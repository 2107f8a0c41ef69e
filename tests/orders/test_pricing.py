import re

import pytest

from domain.order.aggregator import (
    CartLine,
    build_order,
    build_seller_payouts,
    calculate,
    generate_order_number,
)
from domain.order.availability import PRODUCT_SOLD_MESSAGE, SELF_PURCHASE_MESSAGE, check_availability
from domain.order.entity import ShippingAddress
from domain.order.pricing import calculate_service_fee, calculate_taxes, price_item
from domain.product.entity import Product
from domain.user.entity import User

BUYER_ID = 1
SELLER_A = 2
SELLER_B = 3


def _product(pid, seller_id, price, shipping=0, quantity=1, sold=False):
    return Product(
        id=pid,
        seller_id=seller_id,
        title=f"Item {pid}",
        selling_price=price,
        domestic_shipping=shipping,
        quantity=quantity,
        sold=sold,
        images=[f"https://cdn.example.com/{pid}.jpg"],
    )


def _sellers():
    return {
        SELLER_A: User(id=SELLER_A, email="a@example.com", first_name="Tunde", last_name="Bello"),
        SELLER_B: User(id=SELLER_B, email="b@example.com", first_name="Kemi", last_name="Ade"),
    }


def _address():
    return ShippingAddress(
        first_name="Ada", last_name="Obi", email="buyer@example.com", phone="+2348012345678",
        address="12 Admiralty Way", city="Lekki", state="Lagos", country="Nigeria",
    )


def test_price_item_reference_checkout():
    pricing = price_item(50000, 1, 2500)
    assert pricing.total_price == 50000
    assert pricing.shipping_cost == 2500
    assert pricing.item_service_fee == 1750
    # 7.5% of 51750 = 3881.25
    assert pricing.item_taxes == 3881
    assert pricing.item_total == 58131
    assert pricing.seller_revenue == 48250


def test_shipping_is_per_unit():
    pricing = price_item(12000, 2, 1000)
    assert pricing.total_price == 24000
    assert pricing.shipping_cost == 2000
    assert pricing.item_service_fee == 840
    assert pricing.item_taxes == 1863
    assert pricing.item_total == 28703


@pytest.mark.parametrize(
    "amount,fee",
    [(100, 4), (300, 11), (10, 0), (0, 0)],
)
def test_service_fee_rounds_half_up(amount, fee):
    assert calculate_service_fee(amount) == fee


@pytest.mark.parametrize("amount,tax", [(20, 2), (60, 5), (10, 1)])
def test_taxes_round_half_up(amount, tax):
    assert calculate_taxes(amount) == tax


def test_availability_checks_in_order():
    assert check_availability(None, 1, BUYER_ID).message == "Product not found"
    sold = _product(1, SELLER_A, 1000, quantity=0, sold=True)
    assert check_availability(sold, 1, BUYER_ID).message == PRODUCT_SOLD_MESSAGE
    low = _product(2, SELLER_A, 1000, quantity=1)
    assert check_availability(low, 3, BUYER_ID).message == "Only 1 items available"
    own = _product(3, BUYER_ID, 1000, quantity=5)
    assert check_availability(own, 1, BUYER_ID).message == SELF_PURCHASE_MESSAGE
    ok = _product(4, SELLER_A, 1000, quantity=5)
    assert check_availability(ok, 5, BUYER_ID).available


def test_calculate_multi_seller_totals():
    products = {
        1: _product(1, SELLER_A, 50000, shipping=2500),
        2: _product(2, SELLER_B, 12000, shipping=1000, quantity=3),
    }
    result = calculate([CartLine(1, 1), CartLine(2, 2)], products, _sellers(), BUYER_ID)

    assert result.subtotal == 74000
    assert result.total_shipping_cost == 4500
    assert result.total_service_fee == 2590
    assert result.total_taxes == 5744
    assert result.total_amount == 86834
    assert result.item_count == 3
    assert result.seller_count == 2
    assert result.unavailable_items == []
    assert result.items[0].seller_name == "Tunde Bello"


def test_unavailable_items_are_listed_but_not_totalled():
    products = {
        1: _product(1, SELLER_A, 50000, shipping=2500),
        2: _product(2, SELLER_B, 9000, quantity=0, sold=True),
    }
    result = calculate([CartLine(1, 1), CartLine(2, 1), CartLine(99, 1)], products, _sellers(), BUYER_ID)

    assert [i.product_id for i in result.items] == [1, 2]
    assert result.items[1].available is False
    assert result.unavailable_items == [2, 99]
    assert result.errors == ["Product not found: 99"]
    assert result.total_amount == 58131
    assert result.item_count == 1
    assert result.seller_count == 1


def test_seller_payouts_exclude_shipping_and_taxes():
    products = {
        1: _product(1, SELLER_A, 50000, shipping=2500),
        2: _product(2, SELLER_A, 10000, shipping=500),
        3: _product(3, SELLER_B, 12000, shipping=1000, quantity=2),
    }
    result = calculate([CartLine(1, 1), CartLine(2, 1), CartLine(3, 2)], products, _sellers(), BUYER_ID)
    payouts = {p.seller_id: p for p in build_seller_payouts(result.items)}

    assert payouts[SELLER_A].item_count == 2
    assert payouts[SELLER_A].revenue == 48250 + 9650
    assert payouts[SELLER_A].service_fee == 1750 + 350
    assert payouts[SELLER_B].revenue == 23160
    assert not payouts[SELLER_B].paid


def test_build_order_snapshots_items():
    products = {1: _product(1, SELLER_A, 50000, shipping=2500)}
    sellers = _sellers()
    calculation = calculate([CartLine(1, 1, selected_size="L")], products, sellers, BUYER_ID)
    order = build_order(
        calculation,
        buyer_id=BUYER_ID,
        order_number="ORD17000000000001",
        shipping_address=_address(),
        products=products,
        sellers=sellers,
    )

    assert order.total_amount == 58131
    assert order.seller_ids == [SELLER_A]
    item = order.items[0]
    assert item.product_size == "L"
    assert item.seller_email == "a@example.com"
    assert item.product_image == "https://cdn.example.com/1.jpg"
    assert item.inventory_applied is False
    assert order.status_history[0].startswith("Order created - ")


def test_order_number_format():
    assert generate_order_number(now_ms=1700000000000, rand=7) == "ORD17000000000007"
    assert re.fullmatch(r"ORD\d{13}\d{1,3}", generate_order_number())
