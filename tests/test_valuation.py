from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from valuation_app.valuation import ValuationError, fetch_valuation

from conftest import VALID_VIN


@pytest.mark.asyncio
async def test_fetch_valuation_happy_path():
    mock_http_client = AsyncMock()

    mock_response = MagicMock()
    mock_response.raise_for_status.return_value = None
    mock_response.json.return_value = {"predictedPrice": 18250}

    mock_http_client.get.return_value = mock_response

    with patch("valuation_app.valuation.http_client", mock_http_client):
        result = await fetch_valuation(VALID_VIN, 35000, "10001")

    assert result == {"predictedPrice": 18250}
    params = mock_http_client.get.call_args.kwargs["params"]
    assert params["vin"] == VALID_VIN
    assert params["miles"] == 35000
    assert params["zip"] == "10001"


@pytest.mark.asyncio
async def test_fetch_valuation_provider_rejects():
    request = httpx.Request("GET", "https://provider.example/predict")
    response = httpx.Response(401, request=request)
    mock_response = MagicMock()
    mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
        "unauthorized", request=request, response=response
    )
    mock_http_client = AsyncMock()
    mock_http_client.get.return_value = mock_response

    with patch("valuation_app.valuation.http_client", mock_http_client):
        with pytest.raises(ValuationError, match="Valuation provider returned 401"):
            await fetch_valuation(VALID_VIN, 35000, "10001")


@pytest.mark.asyncio
async def test_fetch_valuation_unreachable():
    mock_http_client = AsyncMock()
    mock_http_client.get.side_effect = httpx.ConnectError("connection refused")

    with patch("valuation_app.valuation.http_client", mock_http_client):
        with pytest.raises(ValuationError, match="Valuation provider unavailable"):
            await fetch_valuation(VALID_VIN, 35000, "10001")


@pytest.mark.asyncio
async def test_fetch_valuation_malformed_json():
    mock_response = MagicMock()
    mock_response.raise_for_status.return_value = None
    mock_response.json.side_effect = ValueError("Expecting value")
    mock_http_client = AsyncMock()
    mock_http_client.get.return_value = mock_response

    with patch("valuation_app.valuation.http_client", mock_http_client):
        with pytest.raises(ValuationError, match="Invalid response"):
            await fetch_valuation(VALID_VIN, 35000, "10001")
