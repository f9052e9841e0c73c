from __future__ import annotations

import unittest

from simple_ledger.application.ledger import TransactionLedger
from simple_ledger.application.table import TransactionTable
from simple_ledger.domain.models import ALL, SortDirection, SortField
from simple_ledger.infrastructure.persistence.store import InMemoryStore


class TransactionTableTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = TransactionLedger(InMemoryStore())
        self.groceries = self.ledger.add(
            {"type": "expense", "amount": 320, "description": "Mercado", "category": "Alimentação", "date": "2024-01-15", "user_id": "u1"}
        )
        self.bus = self.ledger.add(
            {"type": "expense", "amount": 4.4, "description": "Ônibus", "category": "Transporte", "date": "2024-01-20", "user_id": "u1"}
        )
        self.salary = self.ledger.add(
            {"type": "income", "amount": 5500, "description": "Salário", "category": "Salário", "date": "2024-01-05", "user_id": "u1"}
        )
        self.table = TransactionTable()

    def test_rows_default_to_date_descending(self) -> None:
        rows = self.table.rows(self.ledger.all())
        self.assertEqual([t.id for t in rows], [self.bus.id, self.groceries.id, self.salary.id])

    def test_sort_by_toggles_direction(self) -> None:
        self.assertEqual(self.table.sort_by("date").direction, SortDirection.ASC)
        state = self.table.sort_by(SortField.AMOUNT)
        self.assertEqual((state.field, state.direction), (SortField.AMOUNT, SortDirection.DESC))
        rows = self.table.rows(self.ledger.all())
        self.assertEqual(rows[0].id, self.salary.id)

    def test_totals_follow_the_filters(self) -> None:
        self.table.set_filters(type="despesa")

        totals = self.table.totals(self.ledger.all())
        self.assertEqual(totals.total_income, 0)
        self.assertEqual(totals.total_expense, 324.4)
        self.assertEqual(self.table.filters.category, ALL)

    def test_set_filters_keeps_other_predicates(self) -> None:
        self.table.set_filters(search="mer")
        self.table.set_filters(category="Alimentação")

        self.assertEqual(self.table.filters.search, "mer")
        self.assertEqual([t.id for t in self.table.rows(self.ledger.all())], [self.groceries.id])

    def test_toggle_one(self) -> None:
        self.table.toggle(self.bus.id)
        self.assertTrue(self.table.is_selected(self.bus.id))
        self.table.toggle(self.bus.id)
        self.assertEqual(self.table.selected, [])

    def test_toggle_all_selects_visible_then_clears(self) -> None:
        self.table.set_filters(type="expense")
        visible = self.table.rows(self.ledger.all())

        self.table.toggle_all(visible)
        self.assertEqual(set(self.table.selected), {self.bus.id, self.groceries.id})

        self.table.toggle_all(visible)
        self.assertEqual(self.table.selected, [])

    def test_toggle_all_replaces_a_stale_selection_of_equal_size(self) -> None:
        self.table.set_filters(type="expense")
        visible = self.table.rows(self.ledger.all())
        self.table.toggle(self.salary.id)
        self.table.toggle(self.bus.id)

        self.table.toggle_all(visible)

        self.assertEqual(set(self.table.selected), {self.bus.id, self.groceries.id})

    def test_delete_selected_removes_rows_and_clears_selection(self) -> None:
        self.table.toggle(self.bus.id)
        self.table.toggle(self.salary.id)

        removed = self.table.delete_selected(self.ledger)

        self.assertEqual(removed, 2)
        self.assertEqual(self.table.selected, [])
        self.assertEqual([t.id for t in self.ledger.all()], [self.groceries.id])

    def test_reset(self) -> None:
        self.table.set_filters(status="pendente")
        self.table.sort_by("amount")
        self.table.toggle(self.bus.id)

        self.table.reset()

        self.assertEqual(self.table.filters.status, ALL)
        self.assertEqual(self.table.sort.field, SortField.DATE)
        self.assertEqual(self.table.selected, [])


if __name__ == "__main__":
    unittest.main()
