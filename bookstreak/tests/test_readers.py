from bookstreak.features.users.service import get_reader, touch_reader


def test_first_request_registers_reader():
    assert get_reader("new-reader") is None
    reader = touch_reader("new-reader")
    assert reader.user_id == "new-reader"
    assert reader.last_seen_at is not None


def test_later_requests_bump_last_seen():
    first = touch_reader("returning-reader")
    second = touch_reader("returning-reader")
    assert second.created_at == first.created_at
    assert second.last_seen_at >= first.last_seen_at


def test_authenticated_request_registers_reader(client):
    client.get("/v1/streaks", headers={"X-User-Id": "header-reader"})
    assert get_reader("header-reader") is not None


def test_first_registration_returns_stored_record():
    registered = touch_reader("stored-reader")
    assert registered == get_reader("stored-reader")
