"""[Layer: Presentation] Typer CLI Commands."""

import time
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as get_package_version
from typing import Optional

import typer
from pydantic import ValidationError

from focuskit.core.engine import Engine
from focuskit.core.timer import SessionCompleted
from focuskit.errors import FocusKitError
from focuskit.models import SESSION_TYPES, TimerState, parse_record_id
from focuskit.utils.dispatch import InlineDispatcher


def _get_version() -> str:
    """Get version from package metadata (single source of truth: pyproject.toml)."""
    try:
        return get_package_version("focuskit")
    except PackageNotFoundError:
        return "0.0.0-dev"


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"focuskit {_get_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="focuskit",
    help="Offline-first focus timer with tasks and quotes.",
    no_args_is_help=True,
)
timer_app = typer.Typer(help="Run and control the session timer.", no_args_is_help=True)
task_app = typer.Typer(help="Manage tasks.", no_args_is_help=True)
quote_app = typer.Typer(help="Manage quotes.", no_args_is_help=True)
settings_app = typer.Typer(help="Show or change timer settings.", no_args_is_help=True)
app.add_typer(timer_app, name="timer")
app.add_typer(task_app, name="task")
app.add_typer(quote_app, name="quote")
app.add_typer(settings_app, name="settings")


@app.callback()
def main(
    ctx: typer.Context,
    user: Optional[str] = typer.Option(
        None,
        "--user",
        "-u",
        envvar="FOCUSKIT_PRINCIPAL_ID",
        help="Principal id; omit to stay in anonymous local-only mode.",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Offline-first focus timer with tasks and quotes."""
    ctx.obj = {"user": user}


def _build_engine(ctx: typer.Context, follow_changes: bool = False) -> Engine:
    """Engine for one command; remote calls run inline so they finish before exit."""
    user = (ctx.obj or {}).get("user")
    return Engine(
        principal_id=user,
        dispatcher=InlineDispatcher(),
        follow_changes=follow_changes,
    )


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(1)


def _format_clock(seconds: int) -> str:
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


def _describe(state: TimerState) -> str:
    status = "running" if state.is_running else "paused"
    return (
        f"{state.session_type} {_format_clock(state.remaining_seconds)} [{status}] "
        f"session #{state.session_ordinal}, "
        f"{state.completed_focus_sessions} focus sessions completed"
    )


# -- timer -------------------------------------------------------------


@timer_app.command("status")
def timer_status(ctx: typer.Context) -> None:
    """Show the current session and remaining time."""
    engine = _build_engine(ctx)
    try:
        stored = engine.timer.stored_state
        typer.echo(_describe(stored))
        typer.echo(f"Progress: {engine.timer.progress():.0f}%")
    finally:
        engine.close()


@timer_app.command("run")
def timer_run(ctx: typer.Context) -> None:
    """Start the timer and tick in the foreground until the session ends (Ctrl-C pauses)."""
    engine = _build_engine(ctx, follow_changes=True)
    timer = engine.timer
    done: list[str] = []

    def _on_completed(event: SessionCompleted) -> None:
        done.append(f"\n{event.finished} complete. Next up: {event.upcoming}")

    def _on_change(state: TimerState) -> None:
        typer.echo(f"\r{state.session_type} {_format_clock(state.remaining_seconds)}", nl=False)

    timer.on_completed(_on_completed)
    timer.on_change(_on_change)
    try:
        timer.start()
        while timer.state.is_running:
            time.sleep(0.2)
    except KeyboardInterrupt:
        timer.pause()
        typer.echo("\nPaused.")
    finally:
        engine.wait()
        engine.close()
    for line in done:
        typer.echo(line)


@timer_app.command("pause")
def timer_pause(ctx: typer.Context) -> None:
    """Pause a timer running in another terminal."""
    engine = _build_engine(ctx)
    try:
        if engine.timer.pause():
            typer.echo(f"Paused: {_describe(engine.timer.state)}")
        else:
            typer.echo("Timer is not running.")
    finally:
        engine.close()


@timer_app.command("reset")
def timer_reset(ctx: typer.Context) -> None:
    """Restart the current session type from its full duration."""
    engine = _build_engine(ctx)
    try:
        engine.timer.reset()
        typer.echo(_describe(engine.timer.state))
    finally:
        engine.close()


@timer_app.command("switch")
def timer_switch(
    ctx: typer.Context,
    session_type: str = typer.Argument(..., help="focus, short_break or long_break"),
) -> None:
    """Switch to another session type."""
    if session_type not in SESSION_TYPES:
        _fail(f"Unknown session type '{session_type}'. Use one of: {', '.join(SESSION_TYPES)}")
    engine = _build_engine(ctx)
    try:
        engine.timer.switch_session_type(session_type)
        typer.echo(_describe(engine.timer.state))
    finally:
        engine.close()


# -- tasks -------------------------------------------------------------


def _saved_hint(engine: Engine, is_local: bool) -> None:
    if is_local and engine.remote_enabled and engine.principal.current():
        typer.echo("Saved locally; run 'focuskit sync' to push it.")


@task_app.command("add")
def task_add(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Task title"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    priority: str = typer.Option("medium", "--priority", "-p", help="low, medium or high"),
    due: Optional[datetime] = typer.Option(None, "--due", help="Due date (YYYY-MM-DD)"),
) -> None:
    """Add a task."""
    engine = _build_engine(ctx)
    try:
        task = engine.tasks.add(title, description=description, priority=priority, due_date=due)
        typer.echo(f"Added: {task.title}")
        _saved_hint(engine, task in engine.tasks_engine.local_only())
    except ValidationError as e:
        _fail(f"Invalid task: {e.errors()[0]['msg']}")
    finally:
        engine.close()


@task_app.command("list")
def task_list(
    ctx: typer.Context,
    filter_: Optional[str] = typer.Option(
        None, "--filter", "-f", help="all, active or completed (remembered)"
    ),
    sort_by: Optional[str] = typer.Option(
        None, "--sort", "-s", help="created, priority or due_date (remembered)"
    ),
) -> None:
    """List tasks with the saved filter and sort order."""
    engine = _build_engine(ctx)
    try:
        if filter_:
            engine.tasks.set_filter(filter_)
        if sort_by:
            engine.tasks.set_sort_by(sort_by)
        engine.tasks_engine.refresh()
        tasks = engine.tasks.tasks()
        if not tasks:
            typer.echo("No tasks.")
        for task in tasks:
            mark = "x" if task.completed else " "
            local = " (local)" if task.is_local_only else ""
            due = f" due {task.due_date:%Y-%m-%d}" if task.due_date else ""
            typer.echo(f"[{mark}] {task.id}  {task.title}  <{task.priority}>{due}{local}")
        if engine.tasks.pending_count:
            typer.echo(f"{engine.tasks.pending_count} change(s) waiting to sync.")
    except ValidationError as e:
        _fail(f"Invalid option: {e.errors()[0]['msg']}")
    finally:
        engine.close()


@task_app.command("done")
def task_done(ctx: typer.Context, task_id: str = typer.Argument(..., help="Task id")) -> None:
    """Toggle a task's completed flag."""
    engine = _build_engine(ctx)
    try:
        engine.tasks_engine.refresh()
        task = engine.tasks.toggle(parse_record_id(task_id))
        if task is None:
            _fail(f"No task with id {task_id}")
        typer.echo(f"{'Completed' if task.completed else 'Reopened'}: {task.title}")
    finally:
        engine.close()


@task_app.command("edit")
def task_edit(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id"),
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p"),
    due: Optional[datetime] = typer.Option(None, "--due"),
) -> None:
    """Change a task's fields."""
    changes = {
        k: v
        for k, v in {
            "title": title,
            "description": description,
            "priority": priority,
            "due_date": due,
        }.items()
        if v is not None
    }
    if not changes:
        _fail("Nothing to change.")
    engine = _build_engine(ctx)
    try:
        engine.tasks_engine.refresh()
        task = engine.tasks.edit(parse_record_id(task_id), **changes)
        if task is None:
            _fail(f"No task with id {task_id}")
        typer.echo(f"Updated: {task.title}")
    except ValidationError as e:
        _fail(f"Invalid change: {e.errors()[0]['msg']}")
    finally:
        engine.close()


@task_app.command("rm")
def task_rm(ctx: typer.Context, task_id: str = typer.Argument(..., help="Task id")) -> None:
    """Delete a task."""
    engine = _build_engine(ctx)
    try:
        engine.tasks_engine.refresh()
        if not engine.tasks.remove(parse_record_id(task_id)):
            _fail(f"No task with id {task_id}")
        typer.echo("Deleted.")
    finally:
        engine.close()


# -- quotes ------------------------------------------------------------


@quote_app.command("add")
def quote_add(
    ctx: typer.Context,
    content: str = typer.Argument(..., help="Quote text"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
) -> None:
    """Add a custom quote."""
    engine = _build_engine(ctx)
    try:
        quote = engine.quotes.add(content, author=author, category=category)
        typer.echo(f"Added quote ({quote.category}).")
        _saved_hint(engine, quote in engine.quotes_engine.local_only())
    except ValidationError as e:
        _fail(f"Invalid quote: {e.errors()[0]['msg']}")
    finally:
        engine.close()


@quote_app.command("list")
def quote_list(
    ctx: typer.Context,
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search term (remembered)"),
    category: Optional[str] = typer.Option(
        None, "--category", "-c", help="all, favorites, custom, ai or a category (remembered)"
    ),
) -> None:
    """List quotes matching the saved search and category."""
    engine = _build_engine(ctx)
    try:
        if search is not None:
            engine.quotes.set_search_term(search)
        if category is not None:
            engine.quotes.set_selected_category(category)
        engine.quotes_engine.refresh()
        entries = engine.quotes.quotes()
        if not entries:
            typer.echo("No quotes.")
        for entry in entries:
            quote = entry.quote
            star = "*" if entry.is_favorite else " "
            author = f" - {quote.author}" if quote.author else ""
            typer.echo(f"{star} {quote.id}  \"{quote.content}\"{author}")
        typer.echo(f"Categories: {', '.join(engine.quotes.categories())}")
    finally:
        engine.close()


@quote_app.command("fav")
def quote_fav(ctx: typer.Context, quote_id: str = typer.Argument(..., help="Quote id")) -> None:
    """Toggle a quote's favorite flag."""
    engine = _build_engine(ctx)
    try:
        engine.quotes_engine.refresh()
        is_favorite = engine.quotes.toggle_favorite(parse_record_id(quote_id))
        typer.echo("Added to favorites." if is_favorite else "Removed from favorites.")
    finally:
        engine.close()


@quote_app.command("rm")
def quote_rm(ctx: typer.Context, quote_id: str = typer.Argument(..., help="Quote id")) -> None:
    """Delete a quote."""
    engine = _build_engine(ctx)
    try:
        engine.quotes_engine.refresh()
        if not engine.quotes.remove(parse_record_id(quote_id)):
            _fail(f"No quote with id {quote_id}")
        typer.echo("Deleted.")
    finally:
        engine.close()


@quote_app.command("random")
def quote_random(ctx: typer.Context) -> None:
    """Print a random quote."""
    engine = _build_engine(ctx)
    try:
        engine.quotes_engine.refresh()
        quote = engine.quotes.random_quote()
        if quote is None:
            typer.echo("No quotes yet. Add one with 'focuskit quote add'.")
            return
        typer.echo(f"\"{quote.content}\"")
        if quote.author:
            typer.echo(f"  - {quote.author}")
    finally:
        engine.close()


# -- settings ----------------------------------------------------------


@settings_app.command("show")
def settings_show(ctx: typer.Context) -> None:
    """Show timer durations and long-break cadence."""
    engine = _build_engine(ctx)
    try:
        current = engine.timer_settings.get()
        typer.echo(f"Focus:                     {current.focus_minutes} min")
        typer.echo(f"Short break:               {current.short_break_minutes} min")
        typer.echo(f"Long break:                {current.long_break_minutes} min")
        typer.echo(f"Sessions until long break: {current.sessions_until_long_break}")
    finally:
        engine.close()


@settings_app.command("set")
def settings_set(
    ctx: typer.Context,
    focus: Optional[int] = typer.Option(None, "--focus", help="Focus minutes (1-120)"),
    short_break: Optional[int] = typer.Option(
        None, "--short-break", help="Short break minutes (1-30)"
    ),
    long_break: Optional[int] = typer.Option(
        None, "--long-break", help="Long break minutes (5-60)"
    ),
    sessions: Optional[int] = typer.Option(
        None, "--sessions", help="Focus sessions until a long break (2-8)"
    ),
) -> None:
    """Change timer settings; out-of-range values are clamped."""
    changes = {
        k: v
        for k, v in {
            "focus_minutes": focus,
            "short_break_minutes": short_break,
            "long_break_minutes": long_break,
            "sessions_until_long_break": sessions,
        }.items()
        if v is not None
    }
    if not changes:
        _fail("Nothing to change.")
    engine = _build_engine(ctx)
    try:
        updated = engine.timer_settings.update(**changes)
        typer.echo(
            f"Saved: focus {updated.focus_minutes}, short break {updated.short_break_minutes}, "
            f"long break {updated.long_break_minutes}, "
            f"long break every {updated.sessions_until_long_break} sessions"
        )
    finally:
        engine.close()


# -- sync --------------------------------------------------------------


@app.command()
def sync(ctx: typer.Context) -> None:
    """Push local-only records and retry failed deletes."""
    engine = _build_engine(ctx)
    try:
        if not engine.remote_enabled:
            _fail("No remote store configured (set FOCUSKIT_REMOTE_URL and FOCUSKIT_REMOTE_API_KEY).")
        if not engine.principal.current():
            _fail("Sync needs a principal: pass --user or set FOCUSKIT_PRINCIPAL_ID.")
        for name, report in engine.sync_all().items():
            typer.echo(
                f"{name}: {report.synced} pushed, {report.deleted} deleted, "
                f"{report.failed} failed, {report.pending} pending"
            )
    except FocusKitError as e:
        _fail(f"Sync failed: {e}")
    finally:
        engine.close()


@app.command()
def version() -> None:
    """Show FocusKit version."""
    typer.echo(f"focuskit {_get_version()}")
