from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Dict, List, Mapping, Optional

from errors import BackingStoreError
from logging_config import get_logger

log = get_logger(__name__)

SALE_COLUMNS = "id, team_leader, rrpp_name, ticket_quantity, city, receipt_filename, created_at"


def _fetchone_dict(cursor) -> Optional[Dict[str, Any]]:
	row = cursor.fetchone()
	if row is None:
		return None
	if isinstance(row, dict):
		return row
	desc = [col[0] for col in cursor.description]
	return dict(zip(desc, row))


def _fetchall_dict(cursor) -> List[Dict[str, Any]]:
	rows = cursor.fetchall() or []
	if rows and isinstance(rows[0], dict):
		return list(rows)
	desc = [col[0] for col in cursor.description]
	return [dict(zip(desc, r)) for r in rows]


def _serialize_row(row: Dict[str, Any]) -> Dict[str, Any]:
	row = dict(row)
	if isinstance(row.get("created_at"), (dt.date, dt.datetime)):
		row["created_at"] = row["created_at"].isoformat()
	return row


class SalesRepository:
	"""The ``sales`` table behind a DB-API connection.

	``connection_factory`` returns the connection to use for one call; in the
	app that is flask-mysqldb's per-request ``mysql.connection``.
	"""

	def __init__(self, connection_factory: Callable[[], Any]) -> None:
		self._connection_factory = connection_factory

	def insert(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
		conn = None
		try:
			conn = self._connection_factory()
			cur = conn.cursor()
			cur.execute(
				"INSERT INTO sales (team_leader, rrpp_name, ticket_quantity, city, receipt_filename) "
				"VALUES (%s,%s,%s,%s,%s)",
				(
					fields["team_leader"],
					fields["rrpp_name"],
					fields["ticket_quantity"],
					fields["city"],
					fields.get("receipt_filename"),
				),
			)
			new_id = cur.lastrowid
			# Read back before commit so a failed read also undoes the insert.
			cur.execute(f"SELECT {SALE_COLUMNS} FROM sales WHERE id=%s", (new_id,))
			row = _fetchone_dict(cur)
			conn.commit()
		except Exception as exc:
			if conn is not None:
				_rollback(conn)
			raise BackingStoreError(str(exc)) from exc
		if row is None:
			return {**fields, "id": new_id}
		return _serialize_row(row)

	def list_all(self) -> List[Dict[str, Any]]:
		try:
			cur = self._connection_factory().cursor()
			cur.execute(f"SELECT {SALE_COLUMNS} FROM sales ORDER BY created_at DESC, id DESC")
			rows = _fetchall_dict(cur)
		except Exception as exc:
			raise BackingStoreError(str(exc)) from exc
		return [_serialize_row(r) for r in rows]

	def select_ticket_quantities(self) -> List[int]:
		try:
			cur = self._connection_factory().cursor()
			cur.execute("SELECT ticket_quantity FROM sales")
			rows = _fetchall_dict(cur)
		except Exception as exc:
			raise BackingStoreError(str(exc)) from exc
		return [int(r["ticket_quantity"] or 0) for r in rows]


def _rollback(conn) -> None:
	# The insert failure is what gets reported to the caller.
	try:
		conn.rollback()
	except Exception as exc:
		log.warning("rollback after failed insert also failed: %s", exc)
