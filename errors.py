"""Failure kinds raised by the sales API and mapped to HTTP statuses in ``app``."""

from __future__ import annotations

from werkzeug.exceptions import BadRequest, RequestEntityTooLarge


class ClientInputError(BadRequest):
	"""Missing or malformed form field (400)."""


class PayloadTooLargeError(RequestEntityTooLarge):
	"""Receipt attachment over the configured size cap (413)."""


class UploadError(Exception):
	"""Object-store write or bucket creation failed after the fallback retry."""


class BackingStoreError(Exception):
	"""Any failure reported by the database driver."""
