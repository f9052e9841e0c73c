from __future__ import annotations

import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from simple_ledger.infrastructure.persistence.store import InMemoryStore
from simple_ledger.infrastructure.settings import Settings
from simple_ledger.interface import api
from simple_ledger.interface.api import create_app
from simple_ledger.interface.cli import build_dashboard


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        dashboard = build_dashboard(settings=Settings(data_dir=Path("unused")), store=InMemoryStore())
        self.client = TestClient(create_app(dashboard))

    def _sign_up(self, username: str = "ana") -> dict:
        resp = self.client.post("/auth/sign-up", json={"username": username, "password": "segredo1"})
        self.assertEqual(resp.status_code, 201)
        return resp.json()

    def _add(self, **overrides) -> dict:
        body = {"type": "expense", "amount": 320, "description": "Mercado", "category": "Alimentação", "date": "2024-01-15"}
        body.update(overrides)
        resp = self.client.post("/transactions", json=body)
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_module_level_app_serves_requests(self) -> None:
        self.assertEqual(TestClient(api.app).get("/health").json(), {"status": "ok"})

    def test_user_routes_require_sign_in(self) -> None:
        for path in ("/transactions", "/summary", "/accounts", "/auth/me"):
            with self.subTest(path=path):
                self.assertEqual(self.client.get(path).status_code, 401)

    def test_sign_up_sign_out_sign_in(self) -> None:
        payload = self._sign_up()
        self.assertTrue(payload["ok"])
        self.assertEqual(self.client.get("/auth/me").json()["username"], "ana")

        self.client.post("/auth/sign-out")
        self.assertEqual(self.client.get("/auth/me").status_code, 401)

        bad = self.client.post("/auth/sign-in", json={"identifier": "ana", "password": "errada"})
        self.assertEqual(bad.status_code, 401)
        self.assertEqual(bad.json()["message"], "Incorrect password")

        good = self.client.post("/auth/sign-in", json={"identifier": "ana", "password": "segredo1"})
        self.assertEqual(good.status_code, 200)

    def test_sign_up_validation_failure(self) -> None:
        resp = self.client.post("/auth/sign-up", json={"username": "an", "password": "segredo1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Username must be at least 3 characters")

    def test_create_list_and_summary(self) -> None:
        self._sign_up()
        self._add(type="income", amount=5500, category="Salário", description="Salário")
        created = self._add()

        self.assertTrue(created["id"].startswith("transaction_"))
        self.assertEqual(created["status"], "confirmado")

        listing = self.client.get("/transactions", params={"type": "despesa"}).json()
        self.assertEqual(listing["count"], 1)
        self.assertEqual(listing["totals"]["total_expense"], 320)

        summary = self.client.get("/summary").json()
        self.assertEqual((summary["total_income"], summary["total_expense"], summary["net_balance"]), (5500, 320, 5180))

    def test_invalid_transaction_is_rejected(self) -> None:
        self._sign_up()
        resp = self.client.post("/transactions", json={"type": "expense", "amount": 10, "description": "x", "category": "Salário"})
        self.assertEqual(resp.status_code, 422)

    def test_unknown_type_filter_is_rejected(self) -> None:
        self._sign_up()
        self.assertEqual(self.client.get("/transactions", params={"type": "transfer"}).status_code, 422)

    def test_sorting_by_amount(self) -> None:
        self._sign_up()
        for amount in (25, 5500, 320):
            self._add(amount=amount)

        rows = self.client.get("/transactions", params={"sort": "amount", "direction": "asc"}).json()["transactions"]
        self.assertEqual([r["amount"] for r in rows], [25, 320, 5500])

    def test_patch_and_delete(self) -> None:
        self._sign_up()
        created = self._add()

        patched = self.client.patch(f"/transactions/{created['id']}", json={"amount": 350})
        self.assertEqual(patched.json()["amount"], 350)
        self.assertEqual(self.client.patch("/transactions/transaction_missing", json={"amount": 1}).status_code, 404)

        self.assertEqual(self.client.delete(f"/transactions/{created['id']}").json(), {"deleted": True})
        self.assertEqual(self.client.delete(f"/transactions/{created['id']}").json(), {"deleted": False})

    def test_bulk_delete(self) -> None:
        self._sign_up()
        ids = [self._add(amount=a)["id"] for a in (1, 2, 3)]

        resp = self.client.post("/transactions/bulk-delete", json={"ids": ids[:2] + ["transaction_missing"]})

        self.assertEqual(resp.json(), {"deleted": 2})
        self.assertEqual(self.client.get("/transactions").json()["count"], 1)

    def test_export_download(self) -> None:
        self._sign_up()
        self._add()

        resp = self.client.get("/transactions/export")

        self.assertEqual(resp.status_code, 200)
        self.assertIn('attachment; filename="transacoes_', resp.headers["content-disposition"])
        self.assertEqual(resp.json()[0]["description"], "Mercado")

    def test_breakdown_and_history(self) -> None:
        self._sign_up()
        self._add()
        self._add(type="income", amount=1000, category="Freelance", description="Projeto", date="2024-02-10")

        self.assertEqual(self.client.get("/breakdown").json()[0]["name"], "Alimentação")
        self.assertEqual(self.client.get("/breakdown", params={"type": "income"}).json()[0]["name"], "Freelance")
        self.assertEqual([m["month"] for m in self.client.get("/history", params={"months": 1}).json()], ["2024-02"])

    def test_accounts_crud(self) -> None:
        self._sign_up()
        created = self.client.post(
            "/accounts", json={"name": "Roxinho", "type": "credit_card", "bank": "Nubank", "brand": "Mastercard", "balance": "1.500,00"}
        )
        self.assertEqual(created.status_code, 201)
        account = created.json()
        self.assertEqual(account["balance"], 1500.0)

        listed = self.client.get("/accounts").json()
        self.assertEqual(listed[0]["typeLabel"], "Cartão de Crédito")
        self.assertTrue(listed[0]["isCard"])

        replaced = self.client.put(f"/accounts/{account['id']}", json={"name": "Conta", "type": "checking", "bank": "Nubank"})
        self.assertNotIn("brand", replaced.json())
        self.assertEqual(
            self.client.put("/accounts/account_missing", json={"name": "X", "type": "checking", "bank": "Y"}).status_code,
            404,
        )
        self.assertEqual(self.client.delete(f"/accounts/{account['id']}").json(), {"deleted": True})

    def test_transaction_with_account_gets_its_name(self) -> None:
        self._sign_up()
        account = self.client.post("/accounts", json={"name": "Itaú", "type": "checking", "bank": "Itaú"}).json()

        created = self._add(accountId=account["id"])

        self.assertEqual(created["accountName"], "Itaú")
        rows = self.client.get("/transactions", params={"account": "Itaú"}).json()
        self.assertEqual(rows["count"], 1)

    def test_username_update_and_password_reset(self) -> None:
        self.client.post("/auth/sign-up", json={"username": "ana", "password": "segredo1", "email": "ana@example.com"})

        renamed = self.client.put("/auth/username", json={"username": "ana_paula"})
        self.assertEqual(renamed.json()["user"]["username"], "ana_paula")

        self.assertEqual(self.client.post("/auth/reset-password", json={"email": "ana@example.com"}).status_code, 200)
        self.assertEqual(self.client.post("/auth/reset-password", json={"email": "x@example.com"}).status_code, 400)

    def test_remote_config_validation(self) -> None:
        resp = self.client.post("/auth/remote-config", json={"url": "ftp://nope", "anonKey": "k"})
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.json()["remote_configured"])


if __name__ == "__main__":
    unittest.main()
