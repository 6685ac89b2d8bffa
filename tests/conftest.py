from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal

import pytest

# Point the app at a throwaway SQLite file *before* cryptotaxsim is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="cryptotaxsim-tests-")
os.environ["CRYPTOTAXSIM_DB_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["CRYPTOTAXSIM_PERSIST_RUNS"] = "true"
os.environ.pop("CRYPTOTAXSIM_RULES_PATH", None)

from cryptotaxsim.schemas import Transaction  # noqa: E402


def make_tx(
    id: str,
    type: str,
    asset: str,
    quantity,
    price,
    date: str,
    fees=0,
) -> Transaction:
    return Transaction(
        id=id,
        type=type,
        asset=asset,
        quantity=Decimal(str(quantity)),
        price=Decimal(str(price)),
        date=datetime.fromisoformat(date).replace(tzinfo=timezone.utc),
        fees=Decimal(str(fees)),
    )


@pytest.fixture
def tx():
    return make_tx


@pytest.fixture(scope="module")
def client():
    from fastapi.testclient import TestClient

    from cryptotaxsim.app import app

    with TestClient(app) as c:  # context manager runs the startup hook (init_db)
        yield c
