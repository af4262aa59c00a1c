"""Air freight chargeable weight.

IATA volumetric convention: 1 CBM is billed as 167 kg, and the carrier
charges whichever of actual and volumetric weight is higher.
"""
from typing import Optional

VOLUMETRIC_FACTOR = 167  # kg per CBM


def calculate_chargeable_weight(gross_weight: Optional[float] = None, cbm: Optional[float] = None) -> float:
    """Return max(gross_weight, cbm * 167). Missing inputs count as 0."""
    gross = gross_weight or 0
    volume = cbm or 0
    if gross < 0 or volume < 0:
        raise ValueError("Gross weight and CBM must be non-negative")
    return max(float(gross), volume * VOLUMETRIC_FACTOR)
