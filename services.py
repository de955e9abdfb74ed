"""
Sale handlers behind the HTTP routes.

Each function takes the repository and receipt store it needs explicitly, so
the routes in ``app`` stay thin and tests can pass in-memory fakes.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from errors import ClientInputError
from logging_config import get_logger
from receipts import build_storage_key, upload_with_fallback

log = get_logger(__name__)

DEFAULT_CITY = "General"
REQUIRED_FIELDS = ("team_leader", "rrpp_name", "ticket_quantity")
MISSING_FIELDS_MESSAGE = "All fields are required"
SALE_RECORDED_MESSAGE = "Sale recorded successfully"
# Upper bound of the signed INT column in schema.sql.
MAX_TICKET_QUANTITY = 2**31 - 1


def _parse_int(value: Any, field: str, *, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
	try:
		parsed = int(str(value).strip())
	except (TypeError, ValueError):
		raise ClientInputError(f"{field} must be an integer")
	if minimum is not None and parsed < minimum:
		raise ClientInputError(f"{field} must be >= {minimum}")
	if maximum is not None and parsed > maximum:
		raise ClientInputError(f"{field} must be <= {maximum}")
	return parsed


def resolve_city(value: Any) -> str:
	# Rows created before the city field existed read as "General".
	if isinstance(value, str) and value.strip():
		return value.strip()
	return DEFAULT_CITY


@dataclass(frozen=True)
class Receipt:
	filename: Optional[str]
	content_type: Optional[str]
	data: bytes


@dataclass(frozen=True)
class SaleSubmission:
	team_leader: str
	rrpp_name: str
	ticket_quantity: int
	city: str

	@classmethod
	def from_form(cls, form: Mapping[str, Any]) -> "SaleSubmission":
		values = {name: str(form.get(name) or "").strip() for name in REQUIRED_FIELDS}
		if not all(values.values()):
			raise ClientInputError(MISSING_FIELDS_MESSAGE)
		return cls(
			team_leader=values["team_leader"],
			rrpp_name=values["rrpp_name"],
			ticket_quantity=_parse_int(
				values["ticket_quantity"], "ticket_quantity", minimum=1, maximum=MAX_TICKET_QUANTITY
			),
			city=resolve_city(form.get("city")),
		)


def submit_sale(
	repository,
	store,
	submission: SaleSubmission,
	receipt: Optional[Receipt] = None,
	*,
	now_ms: Optional[int] = None,
) -> Dict[str, Any]:
	"""Store the receipt (if any), then insert the sale row.

	The upload finishes before the insert starts, so a failed upload never
	leaves a sale behind. The reverse is not compensated: if the insert fails
	after a successful upload the object stays in the bucket.
	"""
	receipt_filename = None
	if receipt is not None:
		key = build_storage_key(receipt.filename, now_ms)
		receipt_filename = upload_with_fallback(store, key, receipt.data, receipt.content_type)

	row = repository.insert(
		{
			"team_leader": submission.team_leader,
			"rrpp_name": submission.rrpp_name,
			"ticket_quantity": submission.ticket_quantity,
			"city": submission.city,
			"receipt_filename": receipt_filename,
		}
	)
	log.info("sale recorded id=%s tickets=%s city=%s", row["id"], submission.ticket_quantity, submission.city)
	return {"success": True, "id": row["id"], "message": SALE_RECORDED_MESSAGE}


def list_sales(repository, store) -> List[Dict[str, Any]]:
	rows = repository.list_all()
	enriched = []
	for row in rows:
		filename = row.get("receipt_filename")
		enriched.append({**row, "receipt_url": store.resolve_public_url(filename) if filename else None})
	return enriched


def sales_stats(repository) -> Dict[str, int]:
	quantities = repository.select_ticket_quantities()
	return {"totalSales": len(quantities), "totalTickets": sum(quantities)}


def health() -> Dict[str, str]:
	now = dt.datetime.now(dt.timezone.utc)
	return {"status": "OK", "timestamp": now.isoformat(timespec="milliseconds").replace("+00:00", "Z")}
