import pytest
from loguru import logger
from pydantic import ValidationError

from tempmap import Settings, TempMap, configure_logging, settings


def test_default_settings():
    assert settings.default_timeout == 0
    assert settings.string_separator == " "
    assert settings.log_level == "INFO"


def test_default_timeout_applies_to_new_entries_only(scheduler):
    m = TempMap(scheduler=scheduler, settings=Settings(default_timeout=500))
    m.set("a", 1)
    m.set("b", 2, None)
    m.set("c", 3, 0)

    assert m.timeout("a") == 500
    assert m.timeout("b") is None
    assert m.timeout("c") is None

    scheduler.advance(200)
    m.set("a", 10)
    assert m.timeout("a") == 500


def test_derived_maps_inherit_settings(scheduler):
    custom = Settings(string_separator=",")
    m = TempMap({"a": 1, "b": 2}, scheduler=scheduler, settings=custom)

    assert m.clone().settings is custom
    assert m.filter(lambda *_: True).to_string() == "1,2"


def test_default_timeout_must_not_be_negative():
    with pytest.raises(ValidationError):
        Settings(default_timeout=-1)


@pytest.fixture
def log_messages():
    messages = []
    handler_id = configure_logging("DEBUG", sink=messages.append)
    yield messages
    logger.remove(handler_id)
    logger.disable("tempmap")


def test_configure_logging_enables_package_logs(log_messages, tmap, scheduler):
    tmap.set("a", 1, 100)
    scheduler.advance(100)

    text = "".join(log_messages)
    assert "Armed timer for 'a' (100ms)" in text
    assert "Entry 'a' expired" in text
    assert "[DEBUG] tempmap.cache" in text


def test_logs_are_silent_by_default(tmap):
    messages = []
    handler_id = logger.add(messages.append, level="DEBUG")
    try:
        tmap.set("a", 1)
        tmap.clear()
    finally:
        logger.remove(handler_id)
    assert messages == []


def test_configure_logging_keeps_application_handlers(tmap):
    app_messages = []
    app_handler = logger.add(app_messages.append, level="DEBUG")
    ours = []
    handler_id = configure_logging("DEBUG", sink=ours.append)
    try:
        tmap.set("a", 1, 100)
    finally:
        logger.remove(handler_id)
        logger.remove(app_handler)
        logger.disable("tempmap")

    assert any("Armed timer for 'a'" in message for message in ours)
    assert any("Armed timer for 'a'" in message for message in app_messages)
