"""Рендеринг отчётов по агрегированным результатам."""
