import logging

import httpx
from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .db import VinRecord

KEY_ATTRS = {"Make", "Model", "Model Year", "Body Class"}
ATTRS_COUNT = len(KEY_ATTRS)
http_client = httpx.AsyncClient(timeout=10.0)
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


async def fetch_data(vin: str) -> dict:
    """
    Fetch data from external API (vPIC)

    Args:
        vin (str): Vehicle Identification Number.

    Returns:
        dict: A dictionary with the vehicle data.
    """
    vpic_url = f"{settings.vpic_base_url}/DecodeVin/{vin}?format=json"
    try:
        # Make an asynchronous GET request to the vPIC API
        response = await http_client.get(vpic_url)
        response.raise_for_status()
        data = response.json()

        logger.info(f"Successfully decoded VIN: '{vin}' via vPIC API")
        return data
    except httpx.HTTPError as e:
        logger.exception(f"Error occurred during VIN decoding for VIN: {vin}")
        raise HTTPException(
            status_code=502, detail="Error occurred during VIN decoding"
        ) from e


def process_result(data: dict) -> dict:
    """
    Filter out key attribute values from the raw data

    Args:
        data (dict): The input data dictionary, expected to have a 'Results' key with
                     data related to VINs.

    Returns:
        dict: A dictionary with filtered VIN data.
    """
    logger.debug("Processing VIN data...")
    results = data.get("Results", [])
    filtered_data = {}
    for item in results:
        if item.get("Variable") not in KEY_ATTRS:
            continue
        if not item.get("Value"):
            # an empty key attribute means vPIC could not decode the VIN
            logger.warning(f"Empty value found for {item['Variable']}")
            raise HTTPException(
                status_code=404,
                detail="VIN not found",
                headers={
                    "X-Error": "VIN doesn't exist or invalid VIN has been entered"
                },
            )
        filtered_data[item["Variable"]] = item["Value"]
        # stop as soon as every key attribute is populated
        if len(filtered_data) == ATTRS_COUNT:
            logger.debug("VIN data successfully processed")
            return filtered_data

    logger.warning("vPIC response is missing key attributes")
    raise HTTPException(status_code=404, detail="VIN not found")


async def lookup_vin(vin: str, db: Session) -> tuple[VinRecord, bool]:
    """
    Decode a VIN through the local cache, calling vPIC only on a miss.

    Args:
        vin (str): Sanitized, checksum-valid VIN.
        db (Session): The database session holding the cache.

    Returns:
        tuple[VinRecord, bool]: The cached record and whether it was already cached.
    """
    cached_vin = db.query(VinRecord).filter(VinRecord.vin == vin).first()
    if cached_vin:
        logger.info("VIN found in cache")
        return cached_vin, True

    logger.info("Fetching data from external API")
    filtered_data = process_result(await fetch_data(vin))

    new_vin = VinRecord(
        vin=vin,
        make=filtered_data.get("Make"),
        model=filtered_data.get("Model"),
        model_year=filtered_data.get("Model Year"),
        body_class=filtered_data.get("Body Class"),
    )

    logger.info("Adding new VIN record to the cache")
    try:
        db.add(new_vin)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return new_vin, False


async def decode_vehicle(vin: str, db: Session) -> dict:
    """Decode a VIN into the vehicle_data shape stored on a report."""
    record, _ = await lookup_vin(vin, db)
    return {
        "year": record.model_year,
        "make": record.make,
        "model": record.model,
        "body_style": record.body_class,
    }
