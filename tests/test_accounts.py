from __future__ import annotations

import unittest

from simple_ledger.application.accounts import AccountRegistry, new_account_id
from simple_ledger.domain.errors import LedgerValidationError, StorageError
from simple_ledger.domain.models import AccountType
from simple_ledger.domain.schemas import AccountInput, parse_balance
from simple_ledger.infrastructure.persistence.store import InMemoryStore


class _ReadOnlyStore(InMemoryStore):
    def _save_raw(self, key: str, payload: str) -> None:
        raise StorageError(f"Could not write {key}: read-only")


class BalanceParsingTests(unittest.TestCase):
    def test_brazilian_format(self) -> None:
        self.assertEqual(parse_balance("1.234,56"), 1234.56)
        self.assertEqual(parse_balance("R$ 99,90"), 99.9)

    def test_dot_decimal_with_comma_grouping(self) -> None:
        self.assertEqual(parse_balance("1,234.56"), 1234.56)

    def test_plain_and_numeric_values(self) -> None:
        self.assertEqual(parse_balance("1500"), 1500.0)
        self.assertEqual(parse_balance(-42.5), -42.5)

    def test_garbage_becomes_zero(self) -> None:
        for value in ("abc", "", None, "nan", float("inf")):
            with self.subTest(value=value):
                self.assertEqual(parse_balance(value), 0.0)


class AccountInputTests(unittest.TestCase):
    def test_card_fields_dropped_for_bank_accounts(self) -> None:
        data = AccountInput(name="Conta", type="checking", bank="Itaú", brand="Visa", issuer="Itaú")
        self.assertIsNone(data.brand)
        self.assertIsNone(data.issuer)

    def test_card_fields_kept_for_cards(self) -> None:
        data = AccountInput(name="Roxinho", type="credit_card", bank="Nubank", brand=" Mastercard ", issuer="")
        self.assertEqual(data.brand, "Mastercard")
        self.assertIsNone(data.issuer)


class AccountRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.registry = AccountRegistry(self.store)

    def _add(self, user_id: str = "u1", **overrides):
        data = {"name": "Conta Principal", "type": "checking", "bank": "Banco do Brasil", "balance": "1.000,00"}
        data.update(overrides)
        return self.registry.add(user_id, data)

    def test_id_shape(self) -> None:
        self.assertRegex(new_account_id(), r"^account_\d+_[0-9a-f]{6}$")

    def test_add_stamps_owner_and_parses_balance(self) -> None:
        account = self._add()

        self.assertEqual(account.user_id, "u1")
        self.assertEqual(account.balance, 1000.0)
        self.assertEqual(account.type_label, "Conta Corrente")
        self.assertFalse(account.is_card)
        self.assertEqual(self.registry.list_by_user("u1"), [account])

    def test_add_requires_name_bank_and_type(self) -> None:
        for missing in ("name", "bank", "type"):
            with self.subTest(missing=missing):
                with self.assertRaises(LedgerValidationError):
                    self._add(**{missing: ""})
        self.assertEqual(self.registry.list_by_user("u1"), [])

    def test_accounts_are_stored_per_user(self) -> None:
        mine = self._add("u1")
        theirs = self._add("u2", name="Poupança", type="savings")

        self.assertEqual(self.store.keys(), ["accounts_u1", "accounts_u2"])
        self.assertEqual(self.registry.list_by_user("u1"), [mine])
        self.assertEqual(self.registry.list_by_user("u2"), [theirs])
        self.assertIsNone(self.registry.get("u1", theirs.id))

    def test_card_storage_keeps_brand_and_issuer(self) -> None:
        card = self._add(name="Black", type=AccountType.CREDIT_CARD, brand="Visa", issuer="Inter")
        stored = self.store.read("accounts", "u1")

        self.assertEqual(stored[0]["brand"], "Visa")
        self.assertEqual(stored[0]["issuer"], "Inter")
        self.assertEqual(stored[0]["userId"], "u1")
        self.assertTrue(card.is_card)

    def test_bank_account_storage_omits_card_fields(self) -> None:
        self._add(brand="Visa")
        stored = self.store.read("accounts", "u1")
        self.assertNotIn("brand", stored[0])
        self.assertNotIn("issuer", stored[0])

    def test_update_replaces_the_record(self) -> None:
        account = self._add()
        updated = self.registry.update("u1", account.id, {"name": "Salário", "type": "savings", "bank": "Caixa"})

        self.assertEqual(updated.id, account.id)
        self.assertEqual(updated.type, AccountType.SAVINGS)
        self.assertEqual(updated.balance, 0.0)
        self.assertEqual(self.registry.list_by_user("u1"), [updated])

    def test_update_and_delete_unknown_id_are_no_ops(self) -> None:
        self._add()
        self.assertIsNone(self.registry.update("u1", "account_missing", {"name": "X", "type": "checking", "bank": "Y"}))
        self.assertFalse(self.registry.delete("u1", "account_missing"))
        self.assertEqual(len(self.registry.list_by_user("u1")), 1)

    def test_delete(self) -> None:
        account = self._add()
        self.assertTrue(self.registry.delete("u1", account.id))
        self.assertEqual(AccountRegistry(self.store).list_by_user("u1"), [])

    def test_rows_owned_by_someone_else_are_ignored_on_load(self) -> None:
        self.store.write(
            "accounts",
            "u1",
            [
                {"id": "a1", "name": "Minha", "type": "checking", "bank": "BB", "balance": 10, "userId": "u1"},
                {"id": "a2", "name": "Alheia", "type": "checking", "bank": "BB", "balance": 10, "userId": "u9"},
            ],
        )
        self.assertEqual([a.id for a in AccountRegistry(self.store).list_by_user("u1")], ["a1"])


class AccountStorageFailureTests(unittest.TestCase):
    def test_add_and_delete_keep_in_memory_state_and_log(self) -> None:
        registry = AccountRegistry(_ReadOnlyStore())

        with self.assertLogs("simple_ledger.application.accounts", level="ERROR") as logs:
            account = registry.add("u1", {"name": "Conta", "type": "checking", "bank": "BB"})
        self.assertEqual(registry.list_by_user("u1"), [account])
        self.assertIn("accounts_u1", logs.output[0])

        with self.assertLogs("simple_ledger.application.accounts", level="ERROR"):
            self.assertTrue(registry.delete("u1", account.id))
        self.assertEqual(registry.list_by_user("u1"), [])


if __name__ == "__main__":
    unittest.main()
