"""vigil — оркестратор e2e-наборов тестов с анализом ошибок браузерной сессии."""

__version__ = "0.1.0"
