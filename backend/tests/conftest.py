import asyncio
import inspect
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from position_ledger.models import Asset  # noqa: E402
from position_ledger.store.memory import InMemoryPositionStore  # noqa: E402


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            arguments = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**arguments))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


def make_asset(**overrides) -> Asset:
    values = dict(
        id="asset-1",
        symbol="ACME",
        owner="user-1",
        price_drop_percent=2.0,
        profit_loss_ratio=5.0,
        swing_take_profit_percent=10.0,
        hold_take_profit_percent=25.0,
        swing_hold_ratio=50.0,
        commission_percent=None,
    )
    values.update(overrides)
    return Asset(**values)


@pytest.fixture
def store() -> InMemoryPositionStore:
    return InMemoryPositionStore()


@pytest.fixture
def asset(store: InMemoryPositionStore) -> Asset:
    store.assets["asset-1"] = make_asset()
    return make_asset()
