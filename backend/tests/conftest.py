import asyncio
import inspect
import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

BASE_TIME = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            funcargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**funcargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


def make_order(index: int, **overrides: object) -> dict[str, object]:
    """Raw order as the backend sends it, created ``index`` hours after BASE_TIME."""

    order: dict[str, object] = {
        "_id": f"ord-{index}",
        "customerId": {"_id": f"cus-{index}", "fullName": f"Customer {index}"},
        "item": f"Macrame piece {index}",
        "amount": 10 * index,
        "status": "pending",
        "createdAt": (BASE_TIME + timedelta(hours=index)).isoformat().replace("+00:00", "Z"),
    }
    order.update(overrides)
    return order


def make_customer(index: int, **overrides: object) -> dict[str, object]:
    customer: dict[str, object] = {
        "_id": f"cus-{index}",
        "fullName": f"Customer {index}",
        "phone": f"+1555000{index:04d}",
        "totalOrders": index,
        "totalSpent": 25.5 * index,
        "createdAt": (BASE_TIME + timedelta(days=index)).isoformat(),
    }
    customer.update(overrides)
    return customer


@pytest.fixture
def raw_orders() -> list[dict[str, object]]:
    """Eight orders in ascending creation order."""

    return [make_order(i) for i in range(1, 9)]


@pytest.fixture
def raw_customers() -> list[dict[str, object]]:
    """Seven customers in ascending creation order."""

    return [make_customer(i) for i in range(1, 8)]
