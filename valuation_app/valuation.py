import logging

import httpx

from .config import settings

http_client = httpx.AsyncClient(timeout=30.0)
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class ValuationError(Exception):
    pass


async def fetch_valuation(vin: str, mileage: int, zip_code: str) -> dict:
    """
    Request a market price prediction for a validated vehicle.

    Only call this with data returned by the report validation pipeline.

    Args:
        vin (str): Sanitized, checksum-valid VIN.
        mileage (int): Odometer reading in miles.
        zip_code (str): 5-digit ZIP code of the vehicle location.

    Returns:
        dict: The valuation payload.

    Raises:
        ValuationError: If the provider is unreachable or rejects the request.
    """
    params = {
        "vin": vin,
        "miles": mileage,
        "zip": zip_code,
        "dealer_type": "franchise",
    }
    if settings.valuation_api_key:
        params["api_key"] = settings.valuation_api_key

    try:
        response = await http_client.get(settings.valuation_api_url, params=params)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        logger.exception(f"Valuation provider rejected request for VIN: {vin[:8]}...")
        raise ValuationError(
            f"Valuation provider returned {e.response.status_code}"
        ) from e
    except httpx.HTTPError as e:
        logger.exception(f"Valuation request failed for VIN: {vin[:8]}...")
        raise ValuationError("Valuation provider unavailable") from e
    except ValueError as e:
        logger.exception(f"Valuation provider sent malformed JSON for VIN: {vin[:8]}...")
        raise ValuationError("Invalid response from valuation provider") from e

    logger.info(f"Valuation received for VIN: {vin[:8]}...")
    return data
