import unittest

from fakes import FakeSupabase

from backend.db import PersistError, insert_update, list_updates, update_exists
from backend.scripts import db_sanity


class TestUpdatesStore(unittest.TestCase):
    def setUp(self):
        self.sb = FakeSupabase()

    def test_exists_is_exact_and_case_sensitive(self):
        insert_update(self.sb, {"link": "https://ui.edu.ng/News/1", "category": "Federal"})
        self.assertTrue(update_exists(self.sb, "https://ui.edu.ng/News/1"))
        self.assertFalse(update_exists(self.sb, "https://ui.edu.ng/news/1"))

    def test_exists_with_category(self):
        insert_update(self.sb, {"link": "https://www.jamb.gov.ng/a", "category": "JAMB"})
        self.assertTrue(update_exists(self.sb, "https://www.jamb.gov.ng/a", "JAMB"))
        self.assertFalse(update_exists(self.sb, "https://www.jamb.gov.ng/a", "Federal"))

    def test_writer_assigns_timestamps(self):
        new_id = insert_update(
            self.sb, {"link": "https://ui.edu.ng/x", "created_at": "1999-01-01T00:00:00"}
        )
        row = self.sb.tables["updates"][0]
        self.assertEqual(row["id"], new_id)
        self.assertNotEqual(row["created_at"], "1999-01-01T00:00:00")
        self.assertEqual(row["created_at"], row["updated_at"])

    def test_write_failure_is_persist_error(self):
        self.sb.fail_tables.add("updates")
        with self.assertRaises(PersistError):
            insert_update(self.sb, {"link": "https://ui.edu.ng/x"})

    def test_list_filters_and_orders(self):
        self.sb.tables["updates"] = [
            {"id": 1, "source": "JAMB", "category": "JAMB", "created_at": "2026-01-01"},
            {"id": 2, "source": "JAMB", "category": "JAMB", "created_at": "2026-03-01"},
            {"id": 3, "source": "University of Ibadan", "category": "Federal", "created_at": "2026-02-01"},
        ]
        self.assertEqual([r["id"] for r in list_updates(self.sb, category="JAMB")], [2, 1])
        self.assertEqual([r["id"] for r in list_updates(self.sb, limit=2)], [2, 3])
        self.assertEqual(
            [r["id"] for r in list_updates(self.sb, source="University of Ibadan")], [3]
        )


class TestDbSanity(unittest.TestCase):
    def test_all_tables_readable(self):
        self.assertEqual(db_sanity.main(FakeSupabase()), 0)

    def test_reports_unreadable_table(self):
        sb = FakeSupabase(fail_tables={"subscriptions"})
        self.assertEqual(db_sanity.check_tables(sb)["subscriptions"][:12], "RuntimeError")
        self.assertEqual(db_sanity.main(sb), 1)


if __name__ == "__main__":
    unittest.main()
