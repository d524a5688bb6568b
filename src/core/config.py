"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Permite que adaptadores (HTTP, almacenamiento) y servicios lean config de
  forma consistente.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.geofence import DEFAULT_RADIUS_METERS
from core.domain.language import Language
from core.domain.overrides import Environment


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "incluir"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "incluir"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "incluir"
    return Path.home() / ".config" / "incluir"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], env_path: Path | None = None) -> Path:
    """Escribe/actualiza variables en el .env global del usuario."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# Incluir user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Por qué pydantic-settings:
    - Tipado + validación en el borde (env vars) sin ensuciar el Core con lógica.
    - Un único contrato de configuración para CLI/adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="INCLUIR_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    environment: Environment = Field(
        default=Environment.PRODUCTION,
        description="Entorno de ejecución; los dev overrides solo valen en 'development'.",
    )

    backend_base_url: str = Field(
        default="http://localhost:8000/api",
        min_length=8,
        description="URL base del backend de prestaciones.",
    )
    backend_api_key: str | None = Field(
        default=None,
        description="Token Bearer para el backend.",
    )
    user_agent: str = Field(
        default="incluir-prestaciones/0.1",
        min_length=1,
        description="User-Agent para peticiones al backend.",
    )

    http_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout de la escritura remota (segundos).",
    )
    location_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout para obtener un fix de GPS (segundos).",
    )

    geofence_radius_meters: float = Field(
        default=DEFAULT_RADIUS_METERS,
        gt=0,
        le=5_000,
        description="Radio aceptado alrededor del domicilio del paciente (metros).",
    )
    sync_max_retries: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Reintentos de la cola offline antes de marcar un intento como abandonado.",
    )

    data_dir: Path = Field(
        default_factory=lambda: get_user_config_dir() / "data",
        description="Directorio de la cola offline y la agenda local.",
    )

    dev_skip_time_validation: bool = Field(
        default=False,
        description="Ignorar la ventana horaria (solo en development).",
    )
    dev_skip_location_validation: bool = Field(
        default=False,
        description="Ignorar la geocerca (solo en development).",
    )

    support_phone: str = Field(
        default="+5491123456789",
        min_length=3,
        description="Teléfono del soporte técnico.",
    )
    support_whatsapp: str = Field(
        default="+5491123456789",
        min_length=3,
        description="Número de WhatsApp del soporte técnico.",
    )

    log_level: str = Field(
        default="INFO",
        description="Nivel de logging (DEBUG, INFO, WARNING...).",
    )
    default_language: Language = Field(
        default=Language.default(),
        description="Idioma para mensajes al usuario (en/es).",
    )

    @field_validator("default_language", mode="before")
    @classmethod
    def parse_language(cls, value: object) -> object:
        if isinstance(value, str):
            return Language.from_tag(value)
        return value

    @property
    def queue_file(self) -> Path:
        return self.data_dir / "cola_offline.json"

    @property
    def agenda_file(self) -> Path:
        return self.data_dir / "prestaciones.json"
