from realtime.auth import extract_token


def _scope(query=b"", subprotocols=None, headers=None):
    return {"type": "websocket", "query_string": query, "subprotocols": subprotocols or [], "headers": headers or []}


class TestExtractToken:
    def test_query_string_first(self):
        scope = _scope(b"token=Q", headers=[(b"authorization", b"Bearer H")])
        assert extract_token(scope) == "Q"

    def test_subprotocol(self):
        assert extract_token(_scope(subprotocols=["Bearer S"])) == "S"

    def test_sec_websocket_protocol_header(self):
        assert extract_token(_scope(headers=[(b"sec-websocket-protocol", b"P, json")])) == "P"

    def test_authorization_header(self):
        assert extract_token(_scope(headers=[(b"authorization", b"Bearer H")])) == "H"

    def test_empty_authorization_header(self):
        assert extract_token(_scope(headers=[(b"authorization", b"Bearer ")])) is None

    def test_no_token(self):
        assert extract_token(_scope()) is None
