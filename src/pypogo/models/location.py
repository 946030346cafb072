"""Geographic position attached to every request envelope."""

from __future__ import annotations

from pydantic import Field

from pypogo.models._base import PogoBaseModel


class Location(PogoBaseModel):
    """Player position.

    Parameters
    ----------
    latitude : float
        Degrees, -90 to 90.
    longitude : float
        Degrees, -180 to 180.
    altitude : float
        Metres above sea level.
    """

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    altitude: float = 0.0
