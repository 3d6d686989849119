import asyncio
from pathlib import Path

from conftest import make_asset
from position_ledger.admin import build_parser, main
from position_ledger.config import LedgerSettings
from position_ledger.core.telemetry import setup_telemetry
from position_ledger.db.base import Database
from position_ledger.models import AssetParams, WalletType
from position_ledger.store.sql import SqlAlchemyPositionStore
from position_ledger.wallets import adjust_wallet_contribution


def _seed(url: str) -> None:
    async def _run():
        database = Database(url=url)
        try:
            await database.create_all()
            store = SqlAlchemyPositionStore(database)
            asset = await store.create_asset(make_asset())
            await adjust_wallet_contribution(
                store, asset.id, 100.0, WalletType.SWING, 10, 1000, AssetParams.from_asset(asset)
            )
        finally:
            await database.dispose()

    asyncio.run(_run())


def test_split_then_check_via_cli(tmp_path: Path, capsys):
    url = f"sqlite+aiosqlite:///{tmp_path / 'admin.db'}"
    _seed(url)

    assert main(["--database-url", url, "split", "asset-1", "--date", "2024-06-01", "--ratio", "4"]) == 0
    assert main(["--database-url", url, "check-splits", "asset-1"]) == 0
    assert main(["--database-url", url, "recalc-targets", "asset-1"]) == 0
    assert main(["--database-url", url, "migrate-cash-flow", "asset-1"]) == 0

    output = capsys.readouterr().out
    assert "1 wallets adjusted" in output
    assert "Asset factor 4.0, expected 4.0" in output


def test_missing_asset_fails_cleanly(tmp_path: Path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"

    assert main(["--database-url", url, "--create-schema", "check-splits", "missing"]) == 1


def test_parser_requires_a_command():
    parser = build_parser()
    args = parser.parse_args(["resume-split", "asset-1", "txn-1"])
    assert (args.asset_id, args.transaction_id) == ("asset-1", "txn-1")


def test_settings_hide_database_password():
    settings = LedgerSettings(database_url="postgresql+asyncpg://ledger:secret@db:5432/ledger")

    logged = settings.dict_for_logging()

    assert "secret" not in logged["database_url"]
    assert logged["default_swing_hold_ratio"] == 50.0


def test_telemetry_is_a_no_op_when_disabled():
    assert setup_telemetry(LedgerSettings(telemetry_enabled=False)) is False
