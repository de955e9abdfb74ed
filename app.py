from __future__ import annotations

import os
from typing import Any, Dict, Optional

import dicttoxml
from flask import Flask, Response, jsonify, make_response, request
from flask_mysqldb import MySQL
from werkzeug.exceptions import BadRequest, HTTPException, NotFound, RequestEntityTooLarge

from config import Config
from errors import BackingStoreError, ClientInputError, PayloadTooLargeError, UploadError
from logging_config import configure_logging, get_logger
from receipts import build_attachment_store
from repository import SalesRepository
import services


mysql = MySQL()
log = get_logger(__name__)

# Room for the text fields and multipart boundaries around a maximum-size receipt.
FORM_OVERHEAD_BYTES = 256 * 1024

_ENV_KEYS = (
	"MYSQL_USER",
	"MYSQL_PASSWORD",
	"MYSQL_HOST",
	"MYSQL_DB",
	"STORAGE_ENDPOINT_URL",
	"STORAGE_PUBLIC_URL",
	"STORAGE_REGION",
	"STORAGE_SERVICE_ACCESS_KEY_ID",
	"STORAGE_SERVICE_SECRET_KEY",
	"STORAGE_ANON_ACCESS_KEY_ID",
	"STORAGE_ANON_SECRET_KEY",
	"RECEIPTS_BUCKET",
	"LOG_LEVEL",
	"LOG_ACCESS_LEVEL",
	"APP_ENV",
)
_INT_ENV_KEYS = ("MYSQL_PORT", "RECEIPT_MAX_BYTES")


def _get_format(*, strict: bool = True) -> str:
	fmt = (request.args.get("format") or "json").strip().lower()
	if fmt not in {"json", "xml"}:
		if not strict:
			return "json"
		raise ClientInputError("format must be 'json' or 'xml'")
	return fmt


def _to_xml(payload: Any, root: str = "response") -> bytes:
	# dicttoxml wraps list items in <item>; type attributes only add noise
	return dicttoxml.dicttoxml(payload, custom_root=root, attr_type=False)


def api_response(payload: Any, status: int = 200, *, root: str = "response", strict: bool = True) -> Response:
	fmt = _get_format(strict=strict)
	if fmt == "xml":
		xml_bytes = _to_xml(payload, root=root)
		resp = make_response(xml_bytes, status)
		resp.headers["Content-Type"] = "application/xml; charset=utf-8"
		return resp
	return make_response(jsonify(payload), status)


def error_response(message: str, status: int, *, details: Optional[Dict[str, Any]] = None) -> Response:
	payload: Dict[str, Any] = {"error": message, "status": status}
	if details:
		payload["details"] = details
	# A bad ?format= must not turn the error itself into another error.
	return api_response(payload, status=status, root="error", strict=False)


def _too_large_message(max_bytes: int) -> str:
	return f"The file is too large. Maximum {max_bytes // (1024 * 1024)}MB."


def _read_receipt(max_bytes: int) -> Optional[services.Receipt]:
	unexpected = [name for name in request.files if name != "receipt"]
	if unexpected:
		raise ClientInputError(f"Upload error: unexpected file field '{unexpected[0]}'")
	files = request.files.getlist("receipt")
	if len(files) > 1:
		raise ClientInputError("Upload error: only one receipt file is allowed")
	if not files or not files[0].filename:
		return None
	storage = files[0]
	data = storage.stream.read(max_bytes + 1)
	if len(data) > max_bytes:
		raise PayloadTooLargeError(_too_large_message(max_bytes))
	return services.Receipt(
		filename=storage.filename,
		content_type=storage.mimetype or None,
		data=data,
	)


def create_app(
	test_config: Optional[Dict[str, Any]] = None,
	*,
	repository: Optional[SalesRepository] = None,
	attachments=None,
) -> Flask:
	app = Flask(__name__)
	app.config.from_object(Config)

	# Ensure env vars always take precedence (Config class attributes are evaluated at import time).
	for name in _ENV_KEYS:
		value = os.getenv(name)
		if value is not None:
			app.config[name] = value
	for name in _INT_ENV_KEYS:
		value = os.getenv(name)
		if value is not None:
			app.config[name] = int(value)

	if test_config:
		app.config.update(test_config)

	app.config["MAX_CONTENT_LENGTH"] = app.config["RECEIPT_MAX_BYTES"] + FORM_OVERHEAD_BYTES

	configure_logging(
		level=app.config["LOG_LEVEL"],
		json_logs=app.config["LOG_JSON"],
		access_level=app.config["LOG_ACCESS_LEVEL"],
	)

	mysql.init_app(app)

	if repository is None:
		repository = SalesRepository(lambda: mysql.connection)
	if attachments is None:
		attachments = build_attachment_store(app.config)
	app.extensions["sales_repository"] = repository
	app.extensions["receipt_store"] = attachments

	@app.get("/api/health")
	def health() -> Response:
		# Liveness must not depend on the query string.
		return api_response(services.health(), strict=False)

	# -------------------------
	# Sales
	# -------------------------
	@app.get("/api/sales")
	def list_sales() -> Response:
		return api_response(services.list_sales(repository, attachments), root="sales")

	@app.get("/api/stats")
	def sales_stats() -> Response:
		return api_response(services.sales_stats(repository), root="stats")

	@app.post("/api/sales")
	def create_sale() -> Response:
		receipt = _read_receipt(app.config["RECEIPT_MAX_BYTES"])
		submission = services.SaleSubmission.from_form(request.form)
		payload = services.submit_sale(repository, attachments, submission, receipt)
		return api_response(payload)

	# -------------------------
	# Consistent JSON/XML errors
	# -------------------------
	@app.errorhandler(BadRequest)
	def _bad_request(err: BadRequest):
		return error_response(str(err.description or "Bad request"), 400)

	@app.errorhandler(RequestEntityTooLarge)
	def _too_large(err: RequestEntityTooLarge):
		if isinstance(err, PayloadTooLargeError):
			return error_response(str(err.description), 413)
		return error_response(_too_large_message(app.config["RECEIPT_MAX_BYTES"]), 413)

	@app.errorhandler(NotFound)
	def _not_found(err: NotFound):
		return error_response("Not found", 404)

	@app.errorhandler(HTTPException)
	def _http_error(err: HTTPException):
		return error_response(str(err.description or err.name), err.code or 500)

	@app.errorhandler(UploadError)
	def _upload_failed(err: UploadError):
		log.error("receipt upload failed: %s", err)
		return error_response(f"Receipt upload failed: {err}", 500)

	@app.errorhandler(BackingStoreError)
	def _backing_store(err: BackingStoreError):
		log.error("database error: %s", err)
		return error_response(str(err) or "Database error", 500)

	@app.errorhandler(Exception)
	def _unhandled(err: Exception):
		log.exception("unhandled error on %s %s", request.method, request.path)
		return error_response(str(err) or "Internal server error", 500)

	return app


app = create_app()


if __name__ == "__main__":
	if app.config["APP_ENV"] != "production":
		port = int(os.getenv("PORT", 5000))
		app.run(host="0.0.0.0", port=port, debug=True)
