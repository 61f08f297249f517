"""Tutor backend package initialization.

Family subscription billing for the tutoring platform. The FastAPI
application is created by ``tutor_backend.core.registrar.register_app``.
"""

__version__ = '0.1.0'
