"""Pydantic-модели доменных объектов vigil."""
