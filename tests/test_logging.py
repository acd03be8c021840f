import json
import logging

import structlog

from stalewise import configure_logging, get_logger


def test_json_logging(capsys):
    structlog.reset_defaults()
    logging.root.handlers.clear()
    configure_logging("debug", json=True)

    get_logger("stalewise.test").info("cache.miss", topic="undoc-api", key="account-info")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "cache.miss"
    assert event["topic"] == "undoc-api"
    assert event["level"] == "info"
    assert event["logger"] == "stalewise.test"

    structlog.reset_defaults()
    logging.root.handlers.clear()
