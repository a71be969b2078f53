"""
undot 包的命令行入口点，使用 Typer 实现命令行界面
"""
import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
import yaml
from loguru import logger
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from .config import Settings, load_settings
from .core import (
    ConfigManager,
    ConfigUndoData,
    OperationHistory,
    OperationRequest,
    OperationType,
    UndoLastReport,
    UndoOutcome,
    UndotError,
)


def setup_logger(app_name="app", log_root=None, console_output=True, level="INFO"):
    """配置 Loguru 日志系统

    Args:
        app_name: 应用名称，用于日志目录
        log_root: 日志根目录，默认为当前文件所在目录下的 logs
        console_output: 是否输出到控制台，默认为True
        level: 控制台日志级别

    Returns:
        tuple: (logger, config_info)
            - logger: 配置好的 logger 实例
            - config_info: 包含日志配置信息的字典
    """
    if log_root is None:
        log_root = Path(__file__).parent.resolve() / "logs"

    # 清除默认处理器
    logger.remove()

    if console_output:
        logger.add(
            sys.stderr,
            level=level,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level.icon} {level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
        )

    current_time = datetime.now()
    date_str = current_time.strftime("%Y-%m-%d")
    hour_str = current_time.strftime("%H")
    minute_str = current_time.strftime("%M%S")

    log_dir = os.path.join(log_root, app_name, date_str, hour_str)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"{minute_str}.log")

    logger.add(
        log_file,
        level="DEBUG",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss} | {elapsed} | {level.icon} {level: <8} | {name}:{function}:{line} - {message}",
    )

    config_info = {
        'log_file': log_file,
    }

    logger.debug(f"日志系统已初始化，应用名称: {app_name}")
    return logger, config_info


@dataclass
class AppContext:
    settings: Settings
    history: OperationHistory
    config_store: ConfigManager


app = typer.Typer(help="undot - git 操作历史与撤销工具")
config_app = typer.Typer(help="读写配置，修改会记录到历史中以便撤销")
app.add_typer(config_app, name="config")

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    home: Optional[Path] = typer.Option(None, "--home", help="数据目录，默认为 ~/.undot 或 UNDOT_HOME"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
):
    """初始化配置、日志和历史服务"""
    try:
        settings = load_settings(home=home)
    except ValueError as e:
        console.print(f"[red]配置错误: {e}[/red]")
        raise typer.Exit(1)

    setup_logger(
        app_name="undot",
        log_root=settings.log_dir,
        level="DEBUG" if verbose else settings.log_level,
    )
    config_store = ConfigManager(settings.config_store_file)
    history = OperationHistory.from_settings(settings, config_store=config_store)
    ctx.obj = AppContext(settings=settings, history=history, config_store=config_store)


def _print_outcome(outcome: UndoOutcome) -> None:
    if outcome.dry_run:
        record = outcome.record
        console.print(f"[cyan]预演[/cyan] {outcome.operation_id}: {record.description if record else ''}")
        if outcome.safety and not outcome.safety.safe:
            console.print(f"[yellow]安全检查未通过: {outcome.safety.reason}[/yellow]")
        else:
            console.print("[green]安全检查通过[/green]")
        return
    console.print(f"[green]✓ {outcome.message}[/green] {outcome.operation_id}")
    if outcome.undo_result:
        console.print_json(data=outcome.undo_result)


def _print_report(report: UndoLastReport) -> None:
    table = Table(title=report.message)
    table.add_column("ID", style="cyan")
    table.add_column("结果")
    table.add_column("说明")
    for attempt in report.attempts:
        if attempt.success:
            note = "预演" if attempt.outcome and attempt.outcome.dry_run else ""
            table.add_row(attempt.operation_id, "[green]成功[/green]", note)
        else:
            table.add_row(attempt.operation_id, "[red]失败[/red]", attempt.error or "")
    console.print(table)


@app.command()
def undo(
    ctx: typer.Context,
    operation_id: Optional[str] = typer.Argument(None, help="要撤销的操作 ID"),
    last: Optional[int] = typer.Option(None, "--last", "-n", help="撤销最近 N 个操作"),
    force: bool = typer.Option(False, "--force", help="安全检查不通过时仍然撤销"),
    dry_run: bool = typer.Option(False, "--dry-run", help="预览，不实际执行"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认"),
):
    """撤销指定操作或最近的 N 个操作"""
    history: OperationHistory = ctx.obj.history

    if (operation_id is None) == (last is None):
        console.print("[red]请指定操作 ID 或 --last N 中的一个[/red]")
        raise typer.Exit(1)

    target = operation_id or f"最近 {last} 个操作"
    if not dry_run and not yes and not Confirm.ask(f"确定要撤销 {target} 吗？"):
        console.print("已取消")
        raise typer.Exit(0)

    try:
        if operation_id is not None:
            with console.status(f"正在撤销 {operation_id}..."):
                outcome = history.undo(operation_id, force=force, dry_run=dry_run)
            _print_outcome(outcome)
        else:
            with console.status(f"正在撤销{target}..."):
                report = history.undo_last(last, force=force, dry_run=dry_run)
            _print_report(report)
            if not report.success:
                raise typer.Exit(1)
    except (UndotError, ValueError) as e:
        console.print(f"[red]撤销失败: {e}[/red]")
        raise typer.Exit(1)


@app.command("history")
def show_history(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-l", help="显示条数"),
    op_type: Optional[OperationType] = typer.Option(None, "--type", "-t", help="按类型过滤"),
    since: Optional[str] = typer.Option(None, "--since", help="起始日期 (YYYY-MM-DD)"),
    until: Optional[str] = typer.Option(None, "--until", help="截止日期 (YYYY-MM-DD)"),
    undoable_only: bool = typer.Option(False, "--undoable-only", help="只显示可撤销的操作"),
):
    """查看操作历史"""
    history: OperationHistory = ctx.obj.history
    try:
        records = history.get_history(
            limit=limit, type=op_type, since=since, until=until, undoable_only=undoable_only
        )
    except (UndotError, ValueError) as e:
        console.print(f"[red]读取历史失败: {e}[/red]")
        raise typer.Exit(1)

    if not records:
        console.print("没有找到操作记录")
        return

    table = Table(title=f"操作历史 ({len(records)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("时间")
    table.add_column("类型", style="magenta")
    table.add_column("描述")
    table.add_column("状态")
    for r in records:
        status = "[green]completed[/green]" if not r.is_undone else "[yellow]undone[/yellow]"
        if not r.undoable:
            status += " [dim](不可撤销)[/dim]"
        table.add_row(r.id, r.timestamp[:19].replace("T", " "), r.type.value, r.description, status)
    console.print(table)


@app.command()
def show(ctx: typer.Context, operation_id: str = typer.Argument(..., help="操作 ID")):
    """显示单条记录的完整内容"""
    history: OperationHistory = ctx.obj.history
    try:
        record = history.get_operation(operation_id)
    except UndotError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print_json(json.dumps(record.to_dict(), ensure_ascii=False))


@app.command()
def clear(
    ctx: typer.Context,
    older_than: Optional[str] = typer.Option(None, "--older-than", help="只清理早于该日期的记录"),
    op_type: Optional[OperationType] = typer.Option(None, "--type", "-t", help="只清理该类型"),
    keep_backups: bool = typer.Option(False, "--keep-backups", help="保留备份"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认"),
):
    """清理操作历史"""
    history: OperationHistory = ctx.obj.history
    if not yes and not Confirm.ask("确定要清理操作历史吗？"):
        console.print("已取消")
        raise typer.Exit(0)

    try:
        result = history.clear_history(older_than=older_than, type=op_type, keep_backups=keep_backups)
    except (UndotError, ValueError) as e:
        console.print(f"[red]清理失败: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"已删除 {result.removed_count} 条，剩余 {result.remaining_count} 条")


@app.command()
def export(
    ctx: typer.Context,
    output_file: Path = typer.Argument(..., help="输出文件"),
    fmt: str = typer.Option("json", "--format", "-f", help="导出格式 (json|csv)"),
):
    """导出操作历史"""
    history: OperationHistory = ctx.obj.history
    try:
        count = history.export_history(output_file, fmt)
    except (UndotError, ValueError, OSError) as e:
        console.print(f"[red]导出失败: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"已导出 {count} 条记录到 {output_file}")


@app.command()
def sweep(ctx: typer.Context):
    """清理超过保留期的备份"""
    removed = ctx.obj.history.sweep_backups()
    console.print(f"已清理 {removed} 个过期备份")


@config_app.command("get")
def config_get(ctx: typer.Context, key: str = typer.Argument(..., help="配置键，如 git.defaultTime")):
    """读取配置值"""
    try:
        value = ctx.obj.config_store.get(key)
    except UndotError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if value is None:
        console.print(f"[yellow]{key} 未设置[/yellow]")
        raise typer.Exit(1)
    typer.echo(yaml.safe_dump(value, allow_unicode=True).strip() if isinstance(value, (dict, list)) else value)


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="配置键"),
    value: str = typer.Argument(..., help="配置值，按 YAML 解析"),
):
    """设置配置值，并记录以便撤销"""
    app_ctx: AppContext = ctx.obj
    parsed = yaml.safe_load(value)
    try:
        previous = app_ctx.config_store.set(key, parsed)
    except UndotError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    operation_id = app_ctx.history.record(OperationRequest(
        type=OperationType.CONFIG,
        command="config set",
        description=f"设置配置 {key}",
        args={'key': key, 'value': parsed},
        result={'key': key, 'value': parsed},
        undo_data=ConfigUndoData(key=key, previous_value=previous),
    ))
    console.print(f"[green]✓[/green] {key} = {parsed!r}")
    if operation_id:
        console.print(f"[dim]操作 ID: {operation_id}[/dim]")


@config_app.command("unset")
def config_unset(ctx: typer.Context, key: str = typer.Argument(..., help="配置键")):
    """删除配置键，并记录以便撤销"""
    app_ctx: AppContext = ctx.obj
    try:
        previous = app_ctx.config_store.get(key)
        if not app_ctx.config_store.remove(key):
            console.print(f"[yellow]{key} 未设置[/yellow]")
            raise typer.Exit(1)
    except UndotError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    operation_id = app_ctx.history.record(OperationRequest(
        type=OperationType.CONFIG,
        command="config unset",
        description=f"删除配置 {key}",
        args={'key': key},
        undo_data=ConfigUndoData(key=key, previous_value=previous),
    ))
    console.print(f"[green]✓[/green] 已删除 {key}")
    if operation_id:
        console.print(f"[dim]操作 ID: {operation_id}[/dim]")


if __name__ == "__main__":
    app()
