# === FILE: site_indexer/config.py ===
"""
Модуль для загрузки и валидации конфигурации SiteIndexer.
Используется Pydantic для описания схемы и проверки данных.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_USER_AGENT = "SiteIndexerBot/1.0 (+https://example.com/bot)"


class CrawlOptions(BaseModel):
    """Параметры одного запуска обхода сайта."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_pages: int = Field(100, ge=1, description="Потолок числа просмотренных URL.")
    max_depth: int = Field(4, ge=0, description="Максимальная глубина обхода ссылок.")
    concurrency: int = Field(5, ge=1, description="Сколько страниц загружается одновременно.")
    user_agent: str = Field(DEFAULT_USER_AGENT, min_length=1, description="Заголовок User-Agent.")
    respect_robots: bool = Field(True, description="Учитывать robots.txt.")
    per_page_max_length: int = Field(4000, ge=1, description="Лимит текста одной страницы (символов).")
    aggregate_max_length: int = Field(100_000, ge=1, description="Лимит агрегированного текста (символов).")
    fallback_render: bool = Field(True, description="Разрешить headless-рендер для пустых страниц.")
    render_timeout: int = Field(20_000, gt=0, description="Таймаут headless-рендера (мс).")
    fetch_timeout: float = Field(15.0, gt=0, description="Таймаут загрузки страницы (секунд).")
    robots_timeout: float = Field(5.0, gt=0, description="Таймаут загрузки robots.txt (секунд).")
    min_dispatch_interval: float = Field(
        0.05, ge=0, description="Минимальная пауза между раундами диспетчеризации (секунд)."
    )


class Settings(BaseModel):
    """Настройки сервиса: хранилище снимков, поиск и параметры обхода по умолчанию."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    data_dir: Path = Field(Path("data"), description="Каталог для JSON-снимков сайтов.")
    stale_after: float = Field(
        24 * 3600, gt=0, description="Через сколько секунд снимок считается устаревшим."
    )
    search_limit: int = Field(20, ge=1, description="Максимум результатов поиска.")
    crawl: CrawlOptions = Field(default_factory=CrawlOptions)


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None] = None) -> Settings:
    """
    Читает YAML или JSON и возвращает проверенный объект Settings.
    Без пути используется configs/default.yaml, а если его нет, значения по умолчанию.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            return Settings()
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    try:
        return Settings(**data)
    except ValidationError:
        raise


__all__ = ["CrawlOptions", "Settings", "load_config", "DEFAULT_USER_AGENT"]
