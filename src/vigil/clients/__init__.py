"""Клиенты внешних систем."""
