from useragent import client_ip, parse_user_agent


def test_client_ip_prefers_forwarded_headers():
    assert client_ip({"x-forwarded-for": " 1.2.3.4 , 10.0.0.1"}, "127.0.0.1") == "1.2.3.4"
    assert client_ip({"cf-connecting-ip": "5.6.7.8"}) == "5.6.7.8"
    assert client_ip({}, "9.9.9.9") == "9.9.9.9"
    assert client_ip({}) is None


def test_parse_android():
    ua = "Mozilla/5.0 (Linux; Android 13; SM-S911B) AppleWebKit/537.36 Mobile Safari/537.36"
    info = parse_user_agent(ua)
    assert info["os_name"] == "Android"
    assert info["os_version"] == "13"
    assert info["device_type"] == "mobile"
    assert info["device_model"] == "SM-S911B"


def test_parse_ipad_and_mac():
    ipad = parse_user_agent("Mozilla/5.0 (iPad; CPU OS 16_4 like Mac OS X)")
    assert ipad["os_name"] == "iOS"
    assert ipad["os_version"] == "16.4"
    assert ipad["device_type"] == "tablet"

    mac = parse_user_agent("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)")
    assert mac["os_name"] == "macOS"
    assert mac["os_version"] == "10.15.7"
    assert mac["device_type"] == "desktop"


def test_parse_empty():
    assert parse_user_agent(None) == {}
    assert parse_user_agent("") == {}
