import json
import logging

from coursegate.core.logging import JsonLogFormatter, configure_logging
from coursegate.middlewares import principal_ctx_var, request_id_ctx_var


def make_record(extra=None):
    record = logging.LogRecord("coursegate.gate", logging.INFO, __file__, 1, "gate.decision", None, None)
    if extra is not None:
        record.extra_data = extra
    return record


def test_formatter_carries_request_context_and_extra_data():
    rid = request_id_ctx_var.set("req-1")
    who = principal_ctx_var.set("U1")
    try:
        line = JsonLogFormatter(service="CourseGate").format(
            make_record({"reason": "entitled", "request_id": "spoofed"})
        )
    finally:
        request_id_ctx_var.reset(rid)
        principal_ctx_var.reset(who)

    payload = json.loads(line)
    assert payload["message"] == "gate.decision"
    assert payload["service"] == "CourseGate"
    assert payload["principal"] == "U1"
    assert payload["reason"] == "entitled"
    assert payload["request_id"] == "req-1"


def test_configure_logging_follows_settings(settings):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(settings.model_copy(update={"LOG_LEVEL": "warning"}))
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JsonLogFormatter)

        configure_logging(settings.model_copy(update={"APP_DEBUG": True}))
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
