# HTTP smoke tests. Run with:
#   pytest -q -m smoke
from __future__ import annotations

import csv
import io

import pytest

pytestmark = pytest.mark.smoke

ROUND_TRIP = {
    "transactions": [
        {"id": "1", "type": "buy", "asset": "BTC", "quantity": 1, "price": 10000,
         "date": "2024-01-01T00:00:00Z", "fees": 0},
        {"id": "2", "type": "sell", "asset": "BTC", "quantity": 1, "price": 15000,
         "date": "2024-06-01T00:00:00Z", "fees": 10},
    ],
    "country": "us",
    "income": 50000,
    "year": 2024,
}


def _calculate(client, body=None):
    res = client.post("/api/tax/calculate", json=body or ROUND_TRIP)
    assert res.status_code == 200, res.text
    payload = res.json()
    assert payload["status"] == "success"
    return payload


def test_health_and_version(client):
    assert client.get("/health").json() == {"status": "ok"}
    v = client.get("/version").json()
    assert v["name"] == "CryptoTaxSim"
    assert v["version"]


def test_countries(client):
    res = client.get("/api/tax/countries")
    assert res.status_code == 200
    codes = [c["code"] for c in res.json()["data"]]
    assert codes == ["us", "uk", "germany", "australia", "japan", "singapore", "canada"]


def test_tax_info(client):
    res = client.get("/api/tax/info/uk")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["country"] == "uk"
    assert data["rules"]["taxFreeAllowance"] == "12300"
    assert data["rules"]["shortTermRates"][1] == {"rate": "0.1", "min": "12301", "max": "50270"}
    assert "tax-free allowance" in data["summary"]


def test_tax_info_unknown_country(client):
    res = client.get("/api/tax/info/mars")
    assert res.status_code == 400
    assert res.json() == {"status": "error", "message": "Tax information for mars is not available"}


def test_calculate_round_trip(client):
    payload = _calculate(client)
    data = payload["data"]

    assert data["totalGain"] == "4990"
    assert data["taxableGain"] == "4990"
    assert data["taxRate"] == "0.22"
    assert data["taxAmount"] == "1097.8"
    assert data["shortTermGains"] == "4990"
    assert data["longTermGains"] == "0"
    assert data["remainingTaxFreeAllowance"] == "0"

    (d,) = data["transactions"]
    assert d["id"] == "2"
    assert d["acquiredFrom"] == "1"
    assert d["holdingPeriod"] == 152
    assert d["isLongTerm"] is False
    assert d["gain"] == "4990"
    assert d["acquiredDate"].startswith("2024-01-01T00:00:00")
    assert isinstance(payload["runId"], int)


def test_calculate_singapore(client):
    body = dict(ROUND_TRIP, country="singapore")
    data = _calculate(client, body)["data"]
    assert data["taxAmount"] == "0"
    assert data["taxableGain"] == "0"


def test_calculate_requires_transactions(client):
    for body in ({}, {"transactions": []}, {"country": "us"}):
        res = client.post("/api/tax/calculate", json=body)
        assert res.status_code == 400
        assert res.json() == {"status": "error", "message": "Transaction history is required"}


def test_calculate_unknown_country(client):
    res = client.post("/api/tax/calculate", json=dict(ROUND_TRIP, country="Atlantis"))
    assert res.status_code == 400
    assert res.json()["message"] == "Tax rules for atlantis are not available"


def test_calculate_bad_input_is_400(client):
    bad = {"transactions": [dict(ROUND_TRIP["transactions"][0], quantity=-1)]}
    res = client.post("/api/tax/calculate", json=bad)
    assert res.status_code == 400
    body = res.json()
    assert body["status"] == "error"
    assert body["message"].startswith("Invalid request:")

    res = client.post("/api/tax/calculate", json={"transactions": [{"id": "x", "type": "swap"}]})
    assert res.status_code == 400


def test_unexpected_failure_is_500(client, monkeypatch):
    import cryptotaxsim.app as app_module

    def boom(req):
        raise RuntimeError("kaput")

    monkeypatch.setattr(app_module, "run_calculation", boom)
    res = client.post("/api/tax/calculate", json=ROUND_TRIP)
    assert res.status_code == 500
    assert res.json() == {"status": "error", "message": "Failed to calculate taxes", "error": "kaput"}


def test_storage_failure_is_500(client, monkeypatch):
    import cryptotaxsim.app as app_module

    def broken_save(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(app_module, "save_run", broken_save)
    res = client.post("/api/tax/calculate", json=ROUND_TRIP)
    assert res.status_code == 500
    assert res.json() == {"status": "error", "message": "Failed to calculate taxes", "error": "disk full"}


def test_calculate_very_large_amounts(client):
    body = {
        "transactions": [
            {"id": "1", "type": "buy", "asset": "BTC", "quantity": "1000000000000000",
             "price": "10000000000", "date": "2024-01-01T00:00:00Z"},
            {"id": "2", "type": "sell", "asset": "BTC", "quantity": "1000000000000000",
             "price": "20000000000", "date": "2024-06-01T00:00:00Z"},
        ],
        "country": "us",
        "income": 50000,
        "year": 2024,
    }
    payload = _calculate(client, body)
    data = payload["data"]

    assert data["totalGain"] == "10000000000000000000000000"
    assert data["taxRate"] == "0.37"
    assert data["taxAmount"] == "3700000000000000000000000"
    assert data["transactions"][0]["quantity"] == "1000000000000000"

    detail = client.get(f"/api/tax/history/{payload['runId']}").json()["data"]
    assert detail["totalGain"] == "10000000000000000000000000"


def test_history_roundtrip(client):
    run_id = _calculate(client)["runId"]

    listing = client.get("/api/tax/history").json()["data"]
    assert run_id in [r["id"] for r in listing]

    detail = client.get(f"/api/tax/history/{run_id}").json()["data"]
    assert detail["country"] == "us"
    assert detail["year"] == 2024
    assert detail["taxAmount"] == "1097.8"
    assert detail["disposalCount"] == 1
    assert len(detail["inputHash"]) == 64
    assert detail["result"]["transactions"][0]["holdingPeriod"] == 152


def test_same_input_same_digest(client):
    a = _calculate(client)["runId"]
    b = _calculate(client)["runId"]
    assert a != b
    da = client.get(f"/api/tax/history/{a}").json()["data"]
    db = client.get(f"/api/tax/history/{b}").json()["data"]
    assert da["inputHash"] == db["inputHash"]
    assert da["outputHash"] == db["outputHash"]


def test_history_unknown_run(client):
    res = client.get("/api/tax/history/999999")
    assert res.status_code == 404
    assert res.json()["status"] == "error"


def test_history_disposals_csv(client):
    run_id = _calculate(client)["runId"]
    res = client.get(f"/api/tax/history/{run_id}/disposals.csv")
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")

    rows = list(csv.DictReader(io.StringIO(res.text)))
    assert len(rows) == 1
    assert rows[0]["sell_id"] == "2"
    assert rows[0]["buy_id"] == "1"
    assert rows[0]["gain"] == "4990"
    assert rows[0]["holding_days"] == "152"


def test_history_report_pdf(client):
    run_id = _calculate(client)["runId"]
    res = client.get(f"/api/tax/history/{run_id}/report.pdf")
    assert res.status_code == 200
    assert res.headers["content-type"] == "application/pdf"
    assert res.content.startswith(b"%PDF")


CSV_BYTES = (
    b"id,type,asset,quantity,price,date,fees\n"
    b"1,buy,BTC,1,10000,2024-01-01,0\n"
    b"2,sell,BTC,1,15000,2024-06-01,10\n"
    b"3,sell,BTC,oops,1,2024-07-01,0\n"
)


def test_upload_csv_preview(client):
    res = client.post("/api/tax/upload/csv", files={"file": ("txs.csv", CSV_BYTES, "text/csv")})
    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["total_valid"] == 2
    assert data["total_errors"] == 1
    assert data["preview_first_5"][1]["fees"] == "10"


def test_upload_rejects_non_csv(client):
    res = client.post("/api/tax/upload/csv", files={"file": ("txs.txt", CSV_BYTES, "text/plain")})
    assert res.status_code == 400
    assert res.json()["message"] == "Please upload a .csv file"


def test_calculate_from_csv(client):
    res = client.post(
        "/api/tax/calculate/csv",
        files={"file": ("txs.csv", CSV_BYTES, "text/csv")},
        data={"country": "us", "income": "50000", "year": "2024"},
    )
    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["totalGain"] == "4990"
    assert data["taxAmount"] == "1097.8"
    assert any("1 CSV row(s) skipped" in w for w in data["warnings"])


def test_calculate_from_csv_without_valid_rows(client):
    res = client.post(
        "/api/tax/calculate/csv",
        files={"file": ("txs.csv", b"type,asset\nbuy,BTC\n", "text/csv")},
    )
    assert res.status_code == 400
    assert "Missing required columns" in res.json()["message"]
