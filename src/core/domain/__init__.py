"""Modelos y reglas puras del cierre de prestaciones.

Por qué:
- Aquí viven las estructuras de datos (Pydantic v2) y las funciones de
  decisión sin I/O: distancia, ventana horaria, geocerca, overrides.
- El dominio no conoce HTTP, CLI ni almacenamiento.
"""
