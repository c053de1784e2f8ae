# === FILE: site_indexer/cli.py ===
#!/usr/bin/env python3
"""
Точка входа SiteIndexer для командной строки.

Команды:
  crawl URL     Обойти сайт, построить индекс и сохранить снимок
  search SITE TERM  Найти страницы по термину
  ask SITE QUESTION Лучшее предложение из текста сайта по словам вопроса
  sites         Список сохранённых сайтов
  refresh       Повторно обойти устаревшие снимки
  config        Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stdout, если не указан)

Пример:
  site-indexer crawl https://shop.example.com --max-pages 50
"""
import asyncio
import json
import sys
from pathlib import Path

import click

from site_indexer import __version__
from site_indexer.config import load_config
from site_indexer.engine import Engine
from site_indexer.logger import configure

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def echo_json(data) -> None:
    click.echo(json.dumps(data, ensure_ascii=False, indent=2))


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SiteIndexer, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='WARNING', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stdout, если не указан)'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file):
    """Группа команд SiteIndexer CLI."""
    configure(level=log_level, log_file=str(log_file) if log_file else None)
    try:
        settings = load_config(config_path)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['settings'] = settings
    ctx.obj['engine'] = Engine(settings)


@cli.command('crawl', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option('--max-pages', type=click.IntRange(min=1), default=None, help='Лимит страниц')
@click.option('--max-depth', type=click.IntRange(min=0), default=None, help='Лимит глубины')
@click.option('--concurrency', type=click.IntRange(min=1), default=None, help='Параллельные загрузки')
@click.option('--no-robots', is_flag=True, help='Не учитывать robots.txt')
@click.option('--no-render', is_flag=True, help='Отключить headless-рендер')
@click.pass_context
def crawl_cmd(ctx, url, max_pages, max_depth, concurrency, no_robots, no_render):
    """Обойти сайт и сохранить снимок."""
    settings = ctx.obj['settings']
    overrides = {
        'max_pages': max_pages,
        'max_depth': max_depth,
        'concurrency': concurrency,
        'respect_robots': False if no_robots else None,
        'fallback_render': False if no_render else None,
    }
    options = settings.crawl.model_copy(update={k: v for k, v in overrides.items() if v is not None})
    try:
        result, persisted = asyncio.run(ctx.obj['engine'].index_site(url, options))
    except ValueError as e:
        print_error(f'Неверный URL: {e}')
    except Exception as e:
        print_error(f'Ошибка при обходе: {e}')

    echo_json({
        'url': url,
        'pages': len(result.pages),
        'failed': len(result.failures),
        'aggregated_chars': len(result.aggregated),
        'saved': persisted,
    })


@cli.command('search', context_settings=CONTEXT_SETTINGS)
@click.argument('site')
@click.argument('term')
@click.pass_context
def search_cmd(ctx, site, term):
    """Найти страницы сайта по термину."""
    echo_json(ctx.obj['engine'].search(site, term))


@cli.command('ask', context_settings=CONTEXT_SETTINGS)
@click.argument('site')
@click.argument('question')
@click.pass_context
def ask_cmd(ctx, site, question):
    """Ответить предложением из сохранённого текста сайта."""
    answer = ctx.obj['engine'].ask(site, question)
    if answer is None:
        click.echo('Ничего не найдено.')
    else:
        click.echo(answer)


@cli.command('sites', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def sites_cmd(ctx):
    """Список сохранённых сайтов."""
    for key in ctx.obj['engine'].list_site_keys():
        click.echo(key)


@cli.command('refresh', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def refresh_cmd(ctx):
    """Повторно обойти устаревшие снимки."""
    refreshed = asyncio.run(ctx.obj['engine'].refresh_stale())
    echo_json(refreshed)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    click.echo(ctx.obj['settings'].model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
