"""Tests for discount validation."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_payload, mock_pool
from discounts import DiscountValidator, compute_discount, get_discount_code

NOW = datetime.now(timezone.utc)

def discount_row(**fields):
    row = {
        'id': 1,
        'code': 'SAVE10',
        'status': 'active',
        'discount_type': 'percentage',
        'value': 10,
        'max_uses': None,
        'uses': 0,
        'start_time': None,
        'end_time': None,
    }
    row.update(fields)
    return row

def order_with_discount(discount=250, code='SAVE10'):
    return {
        'shop_id': 'shop-1',
        'order_id': '1-001-1-0',
        'data': make_payload(subTotal=2500, discount=discount, discountObj={'code': code}),
    }

@pytest.fixture
def conn():
    conn = MagicMock()
    conn.fetchrow = AsyncMock(return_value=discount_row())
    conn.execute = AsyncMock()
    return conn

@pytest.fixture
def validator(conn):
    return DiscountValidator(mock_pool(conn))

def test_get_discount_code():
    assert get_discount_code({'discountObj': {'code': ' SAVE10 '}}) == 'SAVE10'
    assert get_discount_code({'discountCode': 'FREE'}) == 'FREE'
    assert get_discount_code({'discountObj': {'code': ''}}) is None
    assert get_discount_code({}) is None

def test_compute_discount():
    assert compute_discount(discount_row(value=15), 999) == 149
    assert compute_discount(discount_row(discount_type='fixed', value=500), 2500) == 500
    assert compute_discount(discount_row(discount_type='fixed', value=500), 300) == 300

@pytest.mark.asyncio
async def test_order_without_code_is_valid(validator, conn):
    assert await validator.validate({'shop_id': 'shop-1', 'data': make_payload()}) == (True, None)
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
async def test_valid_discount_is_marked_used(validator, conn):
    """Test that a valid discount consumes one use when asked to."""
    assert await validator.validate(order_with_discount(), mark_if_valid=True) == (True, None)

    conn.execute.assert_awaited_once()
    assert conn.execute.call_args.args[1] == 1

@pytest.mark.asyncio
async def test_valid_discount_not_marked_by_default(validator, conn):
    assert await validator.validate(order_with_discount()) == (True, None)
    conn.execute.assert_not_called()

@pytest.mark.asyncio
@pytest.mark.parametrize('row, message', [
    (None, 'Invalid discount code'),
    (discount_row(status='inactive'), 'not active'),
    (discount_row(start_time=NOW + timedelta(days=1)), 'not active yet'),
    (discount_row(end_time=NOW - timedelta(days=1)), 'expired'),
    (discount_row(max_uses=5, uses=5), 'usage limit'),
    (discount_row(value=20), 'mismatch'),
])
async def test_invalid_discounts(validator, conn, row, message):
    conn.fetchrow.return_value = row

    valid, error = await validator.validate(order_with_discount(), mark_if_valid=True)

    assert valid is False
    assert message in error
    conn.execute.assert_not_called()

@pytest.mark.asyncio
async def test_validate_on_callers_connection(conn):
    """Test that a given connection is used instead of one from the pool."""
    pool = mock_pool(MagicMock())
    validator = DiscountValidator(pool)

    assert await validator.validate(order_with_discount(), mark_if_valid=True, conn=conn) == (True, None)

    pool.acquire.assert_not_called()
    conn.execute.assert_awaited_once()
