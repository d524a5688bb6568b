"""Interfaces/abstracciones del Core.

Por qué:
- Define contratos (Protocol) que implementan adaptadores concretos
  (backend REST, GPS, almacenamiento durable).
- Permite invertir dependencias: el Core depende de abstracciones.
"""
