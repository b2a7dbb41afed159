"""Наблюдатель браузерной сессии: перехват и классификация ошибок."""
