import pytest

from ticketon.services.pricing import (
    PriceQuote,
    calculate_price,
    reproduce_final_price,
    voucher_discount_for,
)


@pytest.mark.unit
class TestCalculatePrice:
    def test_percent_voucher_and_points(self):
        quote = calculate_price(
            unit_price=100000,
            quantity=2,
            voucher_percent=10,
            points_requested=5000,
            points_available=8000,
        )

        assert quote == PriceQuote(
            total_price=200000,
            voucher_discount=20000,
            coupon_discount=0,
            points_used=5000,
            final_price=175000,
        )

    def test_same_inputs_same_quote(self):
        kwargs = dict(
            unit_price=100000,
            quantity=2,
            voucher_percent=10,
            points_requested=5000,
            points_available=5000,
        )
        assert calculate_price(**kwargs) == calculate_price(**kwargs)

    def test_no_discounts(self):
        quote = calculate_price(unit_price=75000, quantity=3)

        assert quote.total_price == 225000
        assert quote.final_price == 225000
        assert quote.points_used == 0

    def test_amount_wins_over_percent(self):
        quote = calculate_price(
            unit_price=50000,
            quantity=2,
            voucher_amount=15000,
            voucher_percent=50,
        )

        assert quote.voucher_discount == 15000
        assert quote.final_price == 85000

    def test_coupon_applied_after_voucher(self):
        quote = calculate_price(
            unit_price=50000,
            quantity=1,
            voucher_amount=10000,
            coupon_discount=5000,
        )

        assert quote.final_price == 35000
        assert quote.coupon_discount == 5000

    def test_points_capped_by_balance(self):
        quote = calculate_price(
            unit_price=50000,
            quantity=1,
            points_requested=20000,
            points_available=3000,
        )

        assert quote.points_used == 3000
        assert quote.final_price == 47000

    def test_points_capped_by_remaining_price(self):
        quote = calculate_price(
            unit_price=10000,
            quantity=1,
            coupon_discount=4000,
            points_requested=50000,
            points_available=50000,
        )

        assert quote.points_used == 6000
        assert quote.final_price == 0

    def test_discounts_larger_than_price_floor_at_zero(self):
        quote = calculate_price(
            unit_price=10000,
            quantity=1,
            voucher_amount=8000,
            coupon_discount=8000,
            points_requested=1000,
            points_available=1000,
        )

        assert quote.final_price == 0
        assert quote.points_used == 0
        # only what was actually taken off is recorded
        assert quote.voucher_discount == 8000
        assert quote.coupon_discount == 2000

    def test_voucher_larger_than_total_records_total(self):
        quote = calculate_price(unit_price=30000, quantity=1, voucher_amount=50000, coupon_discount=5000)

        assert quote.voucher_discount == 30000
        assert quote.coupon_discount == 0
        assert quote.final_price == 0
        assert quote.total_price - quote.voucher_discount - quote.coupon_discount - quote.points_used == 0

    def test_free_event(self):
        quote = calculate_price(unit_price=0, quantity=4, points_requested=100, points_available=100)

        assert quote.final_price == 0
        assert quote.points_used == 0

    def test_percent_is_floored(self):
        assert voucher_discount_for(99999, discount_amount=None, discount_percent=10) == 9999

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_non_positive_quantity(self, quantity):
        with pytest.raises(ValueError):
            calculate_price(unit_price=1000, quantity=quantity)


@pytest.mark.unit
def test_final_price_reproducible_from_recorded_discounts():
    quote = calculate_price(
        unit_price=120000,
        quantity=3,
        voucher_percent=15,
        coupon_discount=25000,
        points_requested=7000,
        points_available=9000,
    )

    assert reproduce_final_price(
        total_price=quote.total_price,
        voucher_discount=quote.voucher_discount,
        coupon_discount=quote.coupon_discount,
        points_used=quote.points_used,
    ) == quote.final_price
