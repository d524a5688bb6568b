"""Idiomas de los mensajes al usuario.

Los textos de recuperación (horario, geocerca, sin ubicación) se muestran en
español por defecto; el inglés queda para soporte y QA.
"""

from __future__ import annotations

from enum import Enum


class Language(str, Enum):
    ENGLISH = "en"
    SPANISH = "es"

    @classmethod
    def default(cls) -> "Language":
        return cls.SPANISH

    @classmethod
    def from_tag(cls, tag: str | None) -> "Language":
        """Interpreta una etiqueta tipo `es-AR` / `en_US`; lo desconocido cae al default."""

        prefix = (tag or "").strip().lower()[:2]
        for language in cls:
            if language.value == prefix:
                return language
        return cls.default()
