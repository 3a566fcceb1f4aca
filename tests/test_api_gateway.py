"""Gateway tests against a mocked requests session."""

from unittest.mock import MagicMock

import pytest
import requests

from mineralflow.core.result import PROTOCOL, SHAPE, TRANSPORT
from mineralflow.integrations.api_gateway import ApiGateway, SessionAuth, build_truck_query


def _response(status_code=200, json_body=None, text="", content=b"x"):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.content = content
    if isinstance(json_body, Exception):
        response.json.side_effect = json_body
    else:
        response.json.return_value = json_body
    return response


def _gateway(response=None, side_effect=None, token="secret"):
    session = MagicMock()
    if side_effect is not None:
        session.request.side_effect = side_effect
    else:
        session.request.return_value = response
    gateway = ApiGateway(
        base_url="http://backend:8080/",
        token_provider=SessionAuth(token),
        session=session,
        timeout=5,
    )
    return gateway, session


class TestCall:

    def test_success_returns_json(self):
        gateway, session = _gateway(_response(json_body=[{"id": 1}]))
        result = gateway.call("list_trucks")
        assert result.ok
        assert result.value == [{"id": 1}]

        args, kwargs = session.request.call_args
        assert args == ("GET", "http://backend:8080/api/landside/trucks")
        assert kwargs["timeout"] == 5
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

    def test_path_parameters(self):
        gateway, session = _gateway(_response(json_body={}))
        gateway.call("remove_material", id="w1", material_id="m9")
        args, _ = session.request.call_args
        assert args == ("DELETE", "http://backend:8080/api/warehouses/w1/materials/m9")

    def test_empty_token_still_sends_header(self):
        gateway, session = _gateway(_response(json_body=[]), token=None)
        gateway.token_provider.logout()
        gateway.call("list_warehouses")
        _, kwargs = session.request.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer "

    def test_http_500_is_protocol_failure(self):
        gateway, _ = _gateway(_response(500, json_body={"error": "boom"}, text='{"error": "boom"}'))
        result = gateway.call("list_purchase_orders")
        assert not result.ok
        assert result.failure.kind == PROTOCOL
        assert result.failure.status_code == 500
        assert result.failure.body == '{"error": "boom"}'
        assert result.failure.operation == "list_purchase_orders"

    def test_timeout_is_transport_failure(self):
        gateway, _ = _gateway(side_effect=requests.exceptions.Timeout())
        result = gateway.call("list_trucks")
        assert result.failure.kind == TRANSPORT

    def test_connection_error_is_transport_failure(self):
        gateway, _ = _gateway(side_effect=requests.exceptions.ConnectionError("refused"))
        result = gateway.call("list_shipping_orders")
        assert result.failure.kind == TRANSPORT
        assert "refused" in result.failure.message

    def test_bad_json_is_shape_failure(self):
        gateway, _ = _gateway(_response(json_body=ValueError("no json"), text="<html>"))
        result = gateway.call("list_trucks")
        assert result.failure.kind == SHAPE
        assert result.failure.body == "<html>"

    def test_204_is_ok_none(self):
        gateway, _ = _gateway(_response(204, content=b""))
        result = gateway.call("delete_truck", id="t1")
        assert result.ok
        assert result.value is None

    def test_unknown_operation_raises(self):
        gateway, _ = _gateway(_response(json_body=[]))
        with pytest.raises(KeyError):
            gateway.call("launch_rockets")


class TestTruckQuery:

    def test_filters_and_paging(self):
        params = build_truck_query({"status": ["GATE", "EXIT"], "material": ["slag"]}, page=2, limit=20)
        assert params == {"status": "GATE,EXIT", "material": "slag", "page": "2", "limit": "20"}

    def test_empty(self):
        assert build_truck_query() == {}
