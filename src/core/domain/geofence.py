"""Validación de presencia física contra el domicilio registrado.

El radio por defecto (50 m) equilibra prevención de fraude contra los
rechazos espurios que produce el error típico de GPS en celulares.
Acá se evalúa un único fix; pedir uno mejor es responsabilidad del llamador.
"""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from core.domain.geo import distance_meters
from core.domain.models import Coordinate

DEFAULT_RADIUS_METERS = 50.0

# Precisión con la que se reporta y compara la distancia (milímetros).
_DISTANCE_DECIMALS = 3


class LocationCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    within_radius: bool
    distance_meters: float = Field(..., ge=0)
    radius_meters: float = Field(..., gt=0)


def validate_location(
    reported: Coordinate,
    registered: Coordinate,
    radius_meters: float = DEFAULT_RADIUS_METERS,
) -> LocationCheck:
    """Decide si `reported` cae dentro de `radius_meters` de `registered` (borde inclusivo)."""

    if radius_meters <= 0:
        raise ValueError("radius_meters must be > 0")
    distance = round(distance_meters(reported, registered), _DISTANCE_DECIMALS)
    return LocationCheck(
        within_radius=distance <= radius_meters,
        distance_meters=distance,
        radius_meters=radius_meters,
    )
