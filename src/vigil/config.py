"""Конфигурация приложения, загружаемая из переменных окружения."""

import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Конфигурация приложения vigil.

    Все значения задаются через переменные окружения с префиксом ``VIGIL_``
    или через файл ``.env`` в рабочей директории. Флаги CLI переопределяют
    отдельные поля.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIGIL_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    base_url: str = Field(default="http://localhost:3000", description="URL тестируемого приложения")
    tests_dir: str = Field(default="tests", description="Директория с файлами e2e-наборов")
    output_dir: str = Field(default="./test-data", description="Директория для артефактов и отчётов прогона")
    suites_manifest: str | None = Field(
        default=None,
        description="Путь к YAML-манифесту наборов (по умолчанию встроенный каталог)",
    )
    runner_command: list[str] = Field(
        default_factory=lambda: [sys.executable, "-m", "pytest", "-v"],
        description="Команда запуска тест-раннера; путь к файлу набора добавляется в конец",
    )

    suite_timeout: float = Field(default=300.0, gt=0, description="Бюджет времени на один набор в секундах")
    kill_grace_period: float = Field(
        default=5.0, ge=0,
        description="Сколько ждать завершения процесса после SIGTERM перед SIGKILL (сек)",
    )
    suite_retries: int = Field(default=0, ge=0, le=5, description="Повторных запусков упавшего набора")

    parallel: bool = Field(default=False, description="Запускать наборы пакетами параллельно")
    max_concurrency: int = Field(default=2, ge=1, description="Размер пакета в параллельном режиме")

    headless: bool = Field(default=True, description="Запускать браузер без окна")
    verbose: bool = Field(default=False, description="Транслировать вывод раннера в лог")
    log_level: str = Field(default="INFO", description="Уровень логирования")

    inter_suite_delay: float = Field(default=3.0, ge=0, description="Пауза стабилизации между наборами (сек)")
    recovery_delay: float = Field(default=5.0, ge=0, description="Пауза после восстановления окружения (сек)")
    pre_suite_settle: float = Field(default=2.0, ge=0, description="Ожидание завершения браузеров перед набором (сек)")
    cleanup_timeout: float = Field(default=5.0, gt=0, description="Лимит времени на уничтожение браузеров (сек)")
    probe_timeout: float = Field(default=10.0, gt=0, description="Таймаут HTTP-проверки доступности приложения (сек)")
    health_path: str = Field(default="/api/health", description="Путь health-эндпоинта приложения")
    ssl_verify: bool = Field(default=True, description="Проверка SSL-сертификатов приложения под тестом")

    browser_process_names: list[str] = Field(
        default=["chrome", "chromium", "firefox", "webkit"],
        description="Имена процессов браузеров, которые убиваются между наборами",
    )

    max_console_messages: int = Field(default=1000, ge=1, description="Размер буфера консольных сообщений наблюдателя")
    max_network_requests: int = Field(default=500, ge=1, description="Размер буфера сетевых запросов наблюдателя")
