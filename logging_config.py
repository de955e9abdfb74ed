"""Root logging for the sales API; each record carries the request it came from."""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

from flask import has_request_context, request


class RequestContextFilter(logging.Filter):
	"""Stamp ``method`` and ``path`` on records; ``-`` outside a request."""

	def filter(self, record: logging.LogRecord) -> bool:
		if has_request_context():
			record.method = request.method
			record.path = request.path
		else:
			record.method = "-"
			record.path = "-"
		return True


class JsonFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
		payload: Dict[str, Any] = {
			"level": record.levelname,
			"logger": record.name,
			"message": record.getMessage(),
		}
		if getattr(record, "method", "-") != "-":
			payload["method"] = record.method
			payload["path"] = record.path
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload)


def configure_logging(level: str = "INFO", json_logs: bool = False, access_level: str = "WARNING") -> None:
	"""
	Install one stream handler on the root logger.

	``access_level`` applies to werkzeug's per-request access lines, which the
	dev server would otherwise print at INFO next to the app's own records.
	"""
	logging.config.dictConfig(
		{
			"version": 1,
			"disable_existing_loggers": False,
			"filters": {
				"request": {"()": RequestContextFilter},
			},
			"formatters": {
				"console": {
					"format": "%(asctime)s | %(levelname)s | %(name)s | %(method)s %(path)s | %(message)s",
					"datefmt": "%Y-%m-%d %H:%M:%S",
				},
				"json": {
					"()": JsonFormatter,
				},
			},
			"handlers": {
				"default": {
					"class": "logging.StreamHandler",
					"formatter": "json" if json_logs else "console",
					"filters": ["request"],
					"level": level,
				}
			},
			"loggers": {
				"werkzeug": {"level": access_level},
			},
			"root": {
				"handlers": ["default"],
				"level": level,
			},
		}
	)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name)
