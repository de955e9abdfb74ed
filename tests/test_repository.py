import datetime as dt
import unittest

from errors import BackingStoreError
from repository import SalesRepository


class FakeCursor:
	def __init__(self, conn):
		self.conn = conn
		self.lastrowid = None
		self.description = None
		self._rows = []

	def execute(self, sql, params=()):
		self.conn.executed.append((sql, params))
		if self.conn.fail_on and self.conn.fail_on in sql:
			raise RuntimeError("(2006, 'MySQL server has gone away')")
		if sql.startswith("INSERT"):
			self.lastrowid = 41
			self._rows = []
		else:
			self._rows = list(self.conn.results.pop(0)) if self.conn.results else []

	def fetchone(self):
		return self._rows[0] if self._rows else None

	def fetchall(self):
		return self._rows


class FakeConnection:
	def __init__(self, results=None, fail_on=None):
		self.results = list(results or [])
		self.fail_on = fail_on
		self.executed = []
		self.commits = 0
		self.rollbacks = 0

	def cursor(self):
		return FakeCursor(self)

	def commit(self):
		self.commits += 1

	def rollback(self):
		self.rollbacks += 1


class SalesRepositoryTests(unittest.TestCase):
	def test_insert_returns_created_row(self):
		created = {
			"id": 41,
			"team_leader": "Ana",
			"rrpp_name": "Luis",
			"ticket_quantity": 2,
			"city": "Lima",
			"receipt_filename": None,
			"created_at": dt.datetime(2025, 3, 1, 20, 15, 0),
		}
		conn = FakeConnection(results=[[created]])
		repo = SalesRepository(lambda: conn)
		row = repo.insert(
			{"team_leader": "Ana", "rrpp_name": "Luis", "ticket_quantity": 2, "city": "Lima", "receipt_filename": None}
		)
		self.assertEqual(row["id"], 41)
		self.assertEqual(row["created_at"], "2025-03-01T20:15:00")
		insert_sql, params = conn.executed[0]
		self.assertTrue(insert_sql.startswith("INSERT INTO sales"))
		self.assertEqual(params, ("Ana", "Luis", 2, "Lima", None))
		self.assertEqual(conn.executed[1][1], (41,))
		self.assertEqual(conn.commits, 1)

	def test_insert_failure_rolls_back(self):
		conn = FakeConnection(fail_on="INSERT")
		repo = SalesRepository(lambda: conn)
		with self.assertRaises(BackingStoreError) as ctx:
			repo.insert({"team_leader": "a", "rrpp_name": "b", "ticket_quantity": 1, "city": "General"})
		self.assertIn("gone away", str(ctx.exception))
		self.assertEqual(conn.rollbacks, 1)
		self.assertEqual(conn.commits, 0)

	def test_failed_read_back_undoes_the_insert(self):
		conn = FakeConnection(fail_on="SELECT")
		repo = SalesRepository(lambda: conn)
		with self.assertRaises(BackingStoreError):
			repo.insert({"team_leader": "a", "rrpp_name": "b", "ticket_quantity": 1, "city": "General"})
		self.assertTrue(conn.executed[0][0].startswith("INSERT"))
		self.assertEqual(conn.commits, 0)
		self.assertEqual(conn.rollbacks, 1)

	def test_list_all_orders_newest_first(self):
		conn = FakeConnection(results=[[{"id": 2, "created_at": dt.datetime(2025, 1, 2)}, {"id": 1, "created_at": None}]])
		rows = SalesRepository(lambda: conn).list_all()
		sql, _ = conn.executed[0]
		self.assertIn("ORDER BY created_at DESC", sql)
		self.assertEqual(rows[0]["created_at"], "2025-01-02T00:00:00")
		self.assertIsNone(rows[1]["created_at"])

	def test_tuple_rows_are_mapped_by_description(self):
		conn = FakeConnection(results=[[(5,), (7,)]])
		original_cursor = conn.cursor

		def cursor():
			cur = original_cursor()
			cur.description = (("ticket_quantity", None),)
			return cur

		conn.cursor = cursor
		self.assertEqual(SalesRepository(lambda: conn).select_ticket_quantities(), [5, 7])

	def test_ticket_quantities(self):
		conn = FakeConnection(results=[[{"ticket_quantity": 2}, {"ticket_quantity": 3}]])
		self.assertEqual(SalesRepository(lambda: conn).select_ticket_quantities(), [2, 3])

	def test_read_failures_become_backing_store_errors(self):
		conn = FakeConnection(fail_on="SELECT")
		repo = SalesRepository(lambda: conn)
		with self.assertRaises(BackingStoreError):
			repo.list_all()
		with self.assertRaises(BackingStoreError):
			repo.select_ticket_quantities()

	def test_connection_failure_becomes_backing_store_error(self):
		def connect():
			raise RuntimeError("(2003, \"Can't connect to MySQL server\")")

		with self.assertRaises(BackingStoreError):
			SalesRepository(connect).list_all()


if __name__ == "__main__":
	unittest.main()
