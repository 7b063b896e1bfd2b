import logging
import json
import time
from flask import has_request_context, request

# context keys promoted to top-level fields so log queries can filter on them
LIFECYCLE_FIELDS = ("network", "contract", "version", "transaction_hash", "step")

QUIET_LOGGERS = ("web3", "urllib3", "celery.utils.functional")


class HealthCheckFilter(logging.Filter):
    """Drop records emitted while serving /healthz and /healthz/ledger."""

    def filter(self, record):
        return not (has_request_context() and request.path.startswith("/healthz"))


class JsonRequestFormatter(logging.Formatter):
    def format(self, record):
        data = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if has_request_context():
            data["request"] = {
                "method": request.method,
                "path": request.path,
                "remote_addr": request.headers.get("X-Forwarded-For", request.remote_addr),
                "request_id": request.headers.get("X-Request-ID"),
            }

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            extra = dict(context)
            for key in LIFECYCLE_FIELDS:
                if key in extra:
                    data[key] = extra.pop(key)
            if extra:
                data["context"] = extra

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False, default=str)


def setup_logging(app=None):
    config = app.config if app is not None else {}
    level_name = str(config.get("LOG_LEVEL") or ("DEBUG" if config.get("DEBUG") else "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonRequestFormatter())
    handler.addFilter(HealthCheckFilter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if app is not None:
        app.logger.handlers = [handler]
        app.logger.setLevel(level)
