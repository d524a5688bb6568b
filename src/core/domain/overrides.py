"""Bypass de validaciones para desarrollo.

Por qué un value object explícito:
- Nunca se lee de estado global: el llamador lo construye y lo pasa a cada
  `close(...)`.
- Construir o copiar la política aplica el candado de producción; un build
  productivo no puede obtener una política con flags activos. El cierre lo
  vuelve a chequear antes de evaluar.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, model_validator
from pydantic.config import ConfigDict

from core.domain.errors import OverrideNotAllowed

if TYPE_CHECKING:
    from core.config import AppSettings


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class DevOverridePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    skip_time_validation: bool = False
    skip_location_validation: bool = False
    environment: Environment = Environment.PRODUCTION

    @model_validator(mode="after")
    def _gate_production(self) -> "DevOverridePolicy":
        self.ensure_allowed()
        return self

    def ensure_allowed(self) -> None:
        """Levanta `OverrideNotAllowed` si hay flags activos en producción.

        Además del validador, el cierre lo vuelve a chequear: `model_construct`
        no valida.
        """

        # OverrideNotAllowed no es ValueError: pydantic la deja propagar tal cual.
        if self.environment is Environment.PRODUCTION and self.any_enabled:
            raise OverrideNotAllowed("validation overrides are not allowed in production builds")

    def model_copy(self, *, update: dict[str, Any] | None = None, deep: bool = False) -> "DevOverridePolicy":
        # `BaseModel.model_copy` no corre validadores; acá sí.
        copied = super().model_copy(update=update, deep=deep)
        return type(self).model_validate(copied.model_dump())

    @property
    def any_enabled(self) -> bool:
        return self.skip_time_validation or self.skip_location_validation

    @classmethod
    def disabled(cls) -> "DevOverridePolicy":
        return cls()

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        skip_time_validation: bool | None = None,
        skip_location_validation: bool | None = None,
    ) -> "DevOverridePolicy":
        """Construye la política con los dev flags de `AppSettings`.

        Los argumentos explícitos (p.ej. flags de la CLI) pisan los de config.
        """

        return cls(
            skip_time_validation=(
                settings.dev_skip_time_validation if skip_time_validation is None else skip_time_validation
            ),
            skip_location_validation=(
                settings.dev_skip_location_validation
                if skip_location_validation is None
                else skip_location_validation
            ),
            environment=settings.environment,
        )
