"""Запуск и супервизия дочерних процессов наборов тестов."""
