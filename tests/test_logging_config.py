import logging

import pytest

from sessiongate.logging_config import PollingFilter, get_logging_config


def access_record(message: str) -> logging.LogRecord:
    return logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, message, None, None)


@pytest.mark.parametrize(
    "message",
    [
        '127.0.0.1:5000 - "GET /health HTTP/1.1" 200',
        '127.0.0.1:5000 - "GET /api/status HTTP/1.1" 200',
    ],
)
def test_polled_requests_are_dropped(message):
    assert PollingFilter().filter(access_record(message)) is False


@pytest.mark.parametrize(
    "message",
    [
        '127.0.0.1:5000 - "POST /api/disconnect HTTP/1.1" 200',
        '127.0.0.1:5000 - "GET /api/events HTTP/1.1" 200',
        '127.0.0.1:5000 - "GET /api/status?verbose=1 HTTP/1.1" 200',
    ],
)
def test_other_requests_are_kept(message):
    assert PollingFilter().filter(access_record(message)) is True


def test_filter_only_on_access_handler():
    config = get_logging_config("DEBUG")

    assert config["handlers"]["access"]["filters"] == ["polling"]
    assert "filters" not in config["handlers"]["console"]
    assert config["loggers"]["uvicorn.access"]["propagate"] is False
    assert config["loggers"]["sessiongate"]["level"] == "DEBUG"
    assert config["root"]["handlers"] == ["console"]
