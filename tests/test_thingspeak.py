import httpx
import pytest

from conftest import BASE_URL, FakeThingSpeak, feed
from errors import ConfigurationError, ProviderRejected, ProviderUnavailable
from thingspeak import ThingSpeakClient, parse_created_at


def _client_returning(response):
    return ThingSpeakClient(BASE_URL, transport=httpx.MockTransport(lambda request: response))


def test_parse_created_at():
    assert parse_created_at("1970-01-01T00:01:00Z") == 60
    assert parse_created_at("1970-01-01T01:00:00+01:00") == 0
    assert parse_created_at("1970-01-01T00:00:10") == 10
    assert parse_created_at("not a date") is None
    assert parse_created_at("") is None
    assert parse_created_at(None) is None


def test_fetch_readings_keeps_provider_order_and_maps_fields():
    fake = FakeThingSpeak()
    fake.feeds = [
        feed("2024-05-01T10:10:00Z", moisture=600, pump=1, light=300, temperature=21.5, humidity=60),
        feed("2024-05-01T10:00:00Z", moisture=850, pump=0, trigger=1),
    ]
    readings = list(fake.client().fetch_readings("123", "READ", results=10))

    assert [r.soil_moisture for r in readings] == [600.0, 850.0]
    first = readings[0]
    assert first.light_intensity == 300.0
    assert first.temperature == 21.5
    assert first.humidity == 60.0
    assert first.pump_state == 1
    assert readings[1].pump_state == 0
    assert readings[1].manual_trigger == 1

    request = fake.requests[0]
    assert request.url.path == "/channels/123/feeds.json"
    assert request.url.params["api_key"] == "READ"
    assert request.url.params["results"] == "10"


def test_entries_without_timestamp_are_dropped():
    fake = FakeThingSpeak()
    bad = feed("garbage")
    missing = feed("2024-05-01T10:00:00Z")
    del missing["created_at"]
    fake.feeds = [bad, missing, feed("2024-05-01T10:05:00Z", moisture=700)]

    readings = list(fake.client().fetch_readings("123", "READ"))
    assert [r.soil_moisture for r in readings] == [700.0]


def test_blank_fields_read_as_zero():
    fake = FakeThingSpeak()
    entry = feed("2024-05-01T10:00:00Z")
    entry["field2"] = ""
    entry["field4"] = None
    del entry["field5"]
    fake.feeds = [entry]

    reading = next(fake.client().fetch_readings("123", "READ"))
    assert reading.light_intensity == 0.0
    assert reading.humidity == 0.0
    assert reading.pump_state == 0


@pytest.mark.parametrize("channel,key", [(None, "READ"), ("123", None), ("", "")])
def test_missing_credentials_fail_before_any_request(channel, key):
    fake = FakeThingSpeak()
    with pytest.raises(ConfigurationError):
        fake.client().fetch_readings(channel, key)
    assert fake.requests == []


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="oops"),
    httpx.Response(200, text="<html>"),
    httpx.Response(200, json={"channel": {}}),
    httpx.Response(200, json=[1, 2]),
])
def test_bad_responses_raise_provider_unavailable(response):
    with pytest.raises(ProviderUnavailable):
        _client_returning(response).fetch_readings("123", "READ")


def test_network_error_raises_provider_unavailable():
    def boom(request):
        raise httpx.ConnectError("down", request=request)

    client = ThingSpeakClient(BASE_URL, transport=httpx.MockTransport(boom))
    with pytest.raises(ProviderUnavailable):
        client.fetch_readings("123", "READ")


def test_non_numeric_field_raises_provider_unavailable():
    fake = FakeThingSpeak()
    entry = feed("2024-05-01T10:00:00Z")
    entry["field1"] = "wet-ish"
    fake.feeds = [entry]
    with pytest.raises(ProviderUnavailable):
        list(fake.client().fetch_readings("123", "READ"))


def test_latest_reading():
    fake = FakeThingSpeak()
    assert fake.client().latest_reading("123", "READ") is None

    fake.feeds = [feed("2024-05-01T10:00:00Z", moisture=810), feed("2024-05-01T10:05:00Z", moisture=640)]
    latest = fake.client().latest_reading("123", "READ")
    assert latest.soil_moisture == 640.0
    assert fake.requests[-1].url.params["results"] == "1"


def test_send_manual_trigger():
    fake = FakeThingSpeak()
    assert fake.client().send_manual_trigger("WRITE") == 42

    request = fake.requests[0]
    assert request.method == "POST"
    assert request.url.params["api_key"] == "WRITE"
    assert request.url.params["field6"] == "1"


def test_send_manual_trigger_plain_entry_id():
    assert _client_returning(httpx.Response(200, text="17")).send_manual_trigger("WRITE") == 17


def test_send_manual_trigger_rejected():
    fake = FakeThingSpeak()
    fake.update_body = "0"
    with pytest.raises(ProviderRejected):
        fake.client().send_manual_trigger("WRITE")


def test_send_manual_trigger_requires_write_key():
    fake = FakeThingSpeak()
    with pytest.raises(ConfigurationError):
        fake.client().send_manual_trigger(None)
    assert fake.requests == []


def test_error_message_does_not_leak_api_key():
    with pytest.raises(ProviderUnavailable) as excinfo:
        _client_returning(httpx.Response(500, text="oops")).fetch_readings("123", "SECRET-READ")
    assert "SECRET-READ" not in excinfo.value.message
    assert "HTTP 500" in excinfo.value.message


@pytest.mark.parametrize("field,raw", [("field4", "nan"), ("field1", "inf"), ("field3", "-inf"), ("field5", "NaN")])
def test_entries_with_non_finite_values_are_dropped(field, raw):
    fake = FakeThingSpeak()
    broken = feed("2024-05-01T10:00:00Z", moisture=810)
    broken[field] = raw
    fake.feeds = [broken, feed("2024-05-01T10:05:00Z", moisture=700)]

    readings = list(fake.client().fetch_readings("123", "READ"))
    assert [r.soil_moisture for r in readings] == [700.0]
