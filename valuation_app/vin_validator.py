"""
VIN format and check digit validation (ISO 3779 / NHTSA).

Every function here accepts arbitrary input and never raises: malformed or
non-string values come back as False, None or an empty string.
"""

import re
from dataclasses import dataclass

VIN_LENGTH = 17
CHECK_DIGIT_INDEX = 8

# Letters I, O and Q are never used in a VIN
VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$", re.IGNORECASE)

TRANSLITERATION = {
    "A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8,
    "J": 1, "K": 2, "L": 3, "M": 4, "N": 5, "P": 7, "R": 9,
    "S": 2, "T": 3, "U": 4, "V": 5, "W": 6, "X": 7, "Y": 8, "Z": 9,
    **{str(digit): digit for digit in range(10)},
}

POSITION_WEIGHTS = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)


@dataclass(frozen=True)
class VinInfo:
    vin: str
    wmi: str
    vds: str
    vis: str
    model_year: str
    plant_code: str
    is_valid: bool


def sanitize_vin(vin) -> str:
    """Strip all whitespace and uppercase."""
    if not isinstance(vin, str):
        return ""
    return re.sub(r"\s+", "", vin).upper()


def is_valid_vin_format(vin) -> bool:
    """
    Check that the VIN is 17 characters from the allowed alphabet.

    Args:
        vin: Vehicle Identification Number, any case, may contain whitespace.

    Returns:
        bool: True if the sanitized VIN has a valid format.
    """
    sanitized = sanitize_vin(vin)
    if len(sanitized) != VIN_LENGTH:
        return False
    return VIN_PATTERN.match(sanitized) is not None


def calculate_check_digit(vin) -> str:
    """
    Compute the check digit for a VIN.

    Each character is transliterated to a number, multiplied by its position
    weight, and the products are summed modulo 11. A remainder of 10 is
    written as "X".

    Args:
        vin: Vehicle Identification Number.

    Returns:
        str: "0"-"9" or "X", or an empty string if any character has no
        transliteration value.
    """
    sanitized = sanitize_vin(vin)
    if len(sanitized) != VIN_LENGTH:
        return ""

    total = 0
    for char, weight in zip(sanitized, POSITION_WEIGHTS):
        value = TRANSLITERATION.get(char)
        if value is None:
            return ""
        total += value * weight

    remainder = total % 11
    return "X" if remainder == 10 else str(remainder)


def is_valid_vin_checksum(vin) -> bool:
    if not is_valid_vin_format(vin):
        return False
    sanitized = sanitize_vin(vin)
    return calculate_check_digit(sanitized) == sanitized[CHECK_DIGIT_INDEX]


def is_valid_vin(vin) -> bool:
    """Full validation: format and check digit."""
    return is_valid_vin_format(vin) and is_valid_vin_checksum(vin)


def get_vin_validation_error(vin) -> str | None:
    """
    Return a user-facing error for the first failed check, or None if valid.
    """
    sanitized = sanitize_vin(vin)

    if not sanitized:
        return "VIN is required"

    if len(sanitized) != VIN_LENGTH:
        return "VIN must be exactly 17 characters"

    if not is_valid_vin_format(sanitized):
        return "VIN contains invalid characters (I, O, Q not allowed)"

    if not is_valid_vin_checksum(sanitized):
        return "Invalid VIN checksum - please verify the VIN"

    return None


def extract_vin_info(vin) -> VinInfo | None:
    """
    Split a VIN into its WMI, VDS and VIS sections without any API call.

    Returns None when the format is invalid. A VIN with a bad check digit
    still decomposes, with is_valid set to False.
    """
    sanitized = sanitize_vin(vin)
    if not is_valid_vin_format(sanitized):
        return None

    return VinInfo(
        vin=sanitized,
        wmi=sanitized[0:3],
        vds=sanitized[3:9],
        vis=sanitized[9:17],
        model_year=sanitized[9],
        plant_code=sanitized[10],
        is_valid=is_valid_vin(sanitized),
    )
