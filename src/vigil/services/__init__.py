"""Сервисы анализа ошибок и агрегации результатов."""
