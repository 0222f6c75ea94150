"""
CLI 命令行入口 - 使用 Click 框架
"""

import asyncio
import signal
import sys
from pathlib import Path

import click

from es_stacker import __version__
from es_stacker.config import load_config, save_config_template
from es_stacker.core.factory import build_engine, create_cursor_store
from es_stacker.exceptions import ConfigError
from es_stacker.models.cursor import cursor_to_dict, cursor_type_for
from es_stacker.models.sync_config import SyncConfig
from es_stacker.storage.sqlite_store import SQLiteCursorStore
from es_stacker.utils.logging import bind_context, clear_context, configure_logging, get_logger

logger = get_logger(__name__)


@click.group()
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="INFO",
    help="日志级别",
)
@click.option(
    "--json-logs",
    is_flag=True,
    default=False,
    help="以 JSON 格式输出日志",
)
@click.version_option(version=__version__, prog_name="es-stacker")
@click.pass_context
def cli(ctx: click.Context, log_level: str, json_logs: bool) -> None:
    """
    ES Stacker 增量同步引擎 CLI

    将关系型数据库表的变更分块、增量地同步到 Elasticsearch。
    """
    configure_logging(log_level=log_level, json_format=json_logs)

    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    ctx.obj["json_logs"] = json_logs


@cli.command()
@click.argument("output_path", type=click.Path(), default="stacker.yaml")
def init(output_path: str) -> None:
    """
    生成配置文件模板

    示例:
        es-stacker init stacker.yaml
    """
    path = Path(output_path)

    if path.exists():
        click.confirm(f"文件 {output_path} 已存在，是否覆盖？", abort=True)

    save_config_template(output_path)
    click.echo(f"✓ 配置模板已生成: {output_path}")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True))
def validate(config_path: str) -> None:
    """
    验证配置文件

    示例:
        es-stacker validate stacker.yaml
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ 配置错误: {e}", err=True)
        sys.exit(1)

    click.echo("✓ 配置验证通过")
    click.echo(f"  同步流: {config.agent_id}")
    click.echo(f"  策略: {config.strategy.value}")
    click.echo(f"  源: {config.source.type} / {config.source.table.name}")
    click.echo(f"  目标索引: {config.index}")
    click.echo(f"  游标存储: {config.cursor_store.type}")


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="配置文件路径",
)
@click.pass_context
def run(ctx: click.Context, config: str) -> None:
    """
    启动同步循环（Ctrl+C 停止）

    示例:
        es-stacker run -c stacker.yaml
    """
    try:
        cfg = load_config(config)
    except ConfigError as e:
        click.echo(f"✗ 配置错误: {e}", err=True)
        sys.exit(1)

    # 未显式指定命令行日志级别时使用配置文件中的级别
    source = ctx.parent.get_parameter_source("log_level") if ctx.parent else None
    if source == click.core.ParameterSource.DEFAULT:
        configure_logging(log_level=cfg.log_level, json_format=ctx.obj["json_logs"])

    try:
        asyncio.run(_run_engine(cfg))
    except KeyboardInterrupt:
        click.echo("\n同步已停止")
    except Exception as e:
        click.echo(f"✗ 同步失败: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="配置文件路径",
)
@click.option(
    "--all",
    "show_all",
    is_flag=True,
    default=False,
    help="列出游标存储中的全部同步流（仅 SQLite 游标存储）",
)
def status(config: str, show_all: bool) -> None:
    """
    查看已持久化的游标

    示例:
        es-stacker status -c stacker.yaml
        es-stacker status -c stacker.yaml --all
    """
    try:
        cfg = load_config(config)
        if show_all:
            agents = _list_agents(cfg)
        else:
            cursor = asyncio.run(_read_cursor(cfg))
    except Exception as e:
        click.echo(f"✗ 获取状态失败: {e}", err=True)
        sys.exit(1)

    click.echo("ES Stacker 同步状态")
    click.echo("=" * 40)

    if show_all:
        if not agents:
            click.echo("(没有已持久化的同步流)")
        for agent in agents:
            click.echo(f"{agent['agent_id']}: {agent['cursor']} (更新于 {agent['updated_at']})")
        return

    click.echo(f"同步流: {cfg.agent_id}")
    click.echo(f"策略: {cfg.strategy.value}")
    click.echo(f"目标索引: {cfg.index}")
    if cursor is None:
        click.echo("游标: (未开始)")
    else:
        click.echo(f"游标: {cursor}")


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="配置文件路径",
)
@click.option("--yes", is_flag=True, default=False, help="跳过确认")
def reset(config: str, yes: bool) -> None:
    """
    重置游标为初始值，下次运行将从头同步

    示例:
        es-stacker reset -c stacker.yaml --yes
    """
    try:
        cfg = load_config(config)
    except ConfigError as e:
        click.echo(f"✗ 配置错误: {e}", err=True)
        sys.exit(1)

    if not yes:
        click.confirm(f"确认重置同步流 {cfg.agent_id} 的游标？", abort=True)

    try:
        zero = asyncio.run(_reset_cursor(cfg))
    except Exception as e:
        click.echo(f"✗ 重置失败: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ 游标已重置: {zero}")


# ============================================================================
# 异步执行函数
# ============================================================================

async def _run_engine(config: SyncConfig) -> None:
    """运行引擎直到收到 SIGINT/SIGTERM"""
    bind_context(index=config.index, strategy=config.strategy.value)
    engine = await build_engine(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.stop)
        except NotImplementedError:
            # Windows 事件循环不支持，退回 KeyboardInterrupt
            pass

    click.echo(f"ES Stacker: {config.agent_id} -> {config.index}")
    click.echo("按 Ctrl+C 停止...")

    try:
        await engine.run()
    finally:
        await engine.close()
        clear_context()
        click.echo(
            f"✓ 同步已停止 (分块: {engine.status.executed_chunks}, "
            f"文档: {engine.status.total_documents}, "
            f"速率: {engine.status.documents_per_second():.1f} 文档/秒)"
        )


async def _read_cursor(config: SyncConfig):
    store = create_cursor_store(config.cursor_store)
    await store.connect()
    try:
        return await store.get(config.agent_id)
    finally:
        await store.close()


def _list_agents(config: SyncConfig):
    if config.cursor_store.type != "sqlite":
        raise ValueError("--all 仅支持 SQLite 游标存储")
    return SQLiteCursorStore(config.cursor_store.db_path).list_agents()


async def _reset_cursor(config: SyncConfig):
    zero = cursor_to_dict(cursor_type_for(config.strategy)())
    store = create_cursor_store(config.cursor_store)
    await store.connect()
    try:
        if not await store.set(config.agent_id, zero):
            raise RuntimeError("游标存储未接受写入")
    finally:
        await store.close()
    logger.info("cursor_reset", agent=config.agent_id, cursor=zero)
    return zero


if __name__ == "__main__":
    cli()
