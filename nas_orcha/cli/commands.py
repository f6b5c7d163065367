"""
CLI commands for the NAS App Orchestrator.

This module provides the command-line interface for managing applications,
bundles and their tasks through the orchestrator API.
"""

import os
import time
import getpass
import requests
import typer
from typing import Dict, Optional
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, BarColumn, TextColumn
from rich.syntax import Syntax

from nas_orcha.utils.formatting import format_time, task_duration


# API URL
API_URL = os.environ.get("NAS_ORCHESTRATOR_API_URL", "http://localhost:8081/api")

TERMINAL_STATUSES = ("success", "failed")

# Initialize Typer app with command groups
app = typer.Typer(help="NAS application orchestrator CLI", add_completion=True)
bundle_app = typer.Typer(help="Application bundle commands")
task_app = typer.Typer(help="Task management commands")
app.add_typer(bundle_app, name="bundle")
app.add_typer(task_app, name="task")

# Initialize Rich console
console = Console()


def actor_name() -> str:
    return os.environ.get("NAS_ORCHESTRATOR_ACTOR") or getpass.getuser()


def api_request(endpoint: str, method: str = "GET", data: Dict = None,
                params: Dict = None):
    """
    Make a request to the API.

    Args:
        endpoint: API endpoint
        method: HTTP method
        data: Request data
        params: Query parameters

    Returns:
        The decoded JSON response, or None on error
    """
    url = f"{API_URL}/{endpoint.lstrip('/')}"
    headers = {"X-Actor": actor_name()}

    try:
        response = requests.request(method, url, json=data, params=params,
                                    headers=headers, timeout=10)
    except requests.RequestException as e:
        console.print(f"[bold red]Error:[/bold red] {str(e)}")
        return None

    if response.status_code >= 400:
        try:
            detail = response.json().get('error', response.text)
        except ValueError:
            detail = response.text
        console.print(f"[bold red]Error ({response.status_code}):[/bold red] {detail}")
        return None

    return response.json()


def format_task_status(status: str) -> str:
    """Format task status with appropriate color."""
    colors = {
        "queued": "yellow",
        "running": "cyan",
        "success": "green",
        "failed": "red",
    }
    return f"[{colors.get(status, 'white')}]{status}[/{colors.get(status, 'white')}]"


def print_task_created(task: Dict):
    console.print(
        f"[bold green]Task #{task['id']} queued:[/bold green] {task['app_id']} {task['action']}"
    )
    console.print(f"Follow it with: [cyan]task watch {task['id']}[/cyan]")


@app.command("apps")
def apps_list():
    """List managed applications."""
    apps = api_request("apps")
    if not apps:
        console.print("[yellow]No applications found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Health")
    table.add_column("URL")

    for item in apps:
        table.add_row(
            item.get('id', ''),
            item.get('name', ''),
            item.get('category', ''),
            item.get('status', ''),
            item.get('health', ''),
            item.get('openUrl', ''),
        )

    console.print("\n[bold cyan]Applications[/bold cyan]")
    console.print(table)


@app.command()
def install(app_id: str = typer.Argument(..., help="Application to install")):
    """Install an application."""
    task = api_request(f"apps/{app_id}/install", method="POST")
    if task:
        print_task_created(task)


@app.command()
def start(app_id: str = typer.Argument(..., help="Application to start")):
    """Start an installed application."""
    task = api_request(f"apps/{app_id}/start", method="POST")
    if task:
        print_task_created(task)


@app.command()
def stop(app_id: str = typer.Argument(..., help="Application to stop")):
    """Stop an installed application."""
    task = api_request(f"apps/{app_id}/stop", method="POST")
    if task:
        print_task_created(task)


@app.command()
def restart(app_id: str = typer.Argument(..., help="Application to restart")):
    """Restart an installed application."""
    task = api_request(f"apps/{app_id}/restart", method="POST")
    if task:
        print_task_created(task)


@app.command()
def uninstall(
    app_id: str = typer.Argument(..., help="Application to uninstall"),
    remove_data: bool = typer.Option(False, "--remove-data", help="Also delete the application's data directory"),
):
    """Uninstall an application."""
    params = {"removeData": "1"} if remove_data else None
    task = api_request(f"apps/{app_id}", method="DELETE", params=params)
    if task:
        print_task_created(task)


@bundle_app.command("list")
def bundle_list():
    """List application bundles."""
    bundles = api_request("apps/bundles")
    if not bundles:
        console.print("[yellow]No bundles found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Applications")
    for bundle in bundles:
        table.add_row(bundle['id'], bundle['name'], ", ".join(bundle.get('apps', [])))
    console.print(table)


@bundle_app.command("install")
def bundle_install(bundle_id: str = typer.Argument("media-stack", help="Bundle to install")):
    """Install every application of a bundle."""
    task = api_request(f"apps/bundles/{bundle_id}/install", method="POST")
    if task:
        print_task_created(task)


@task_app.command("list")
def task_list(limit: int = typer.Option(20, "--limit", "-n", help="Number of tasks to show")):
    """List recent tasks."""
    tasks = api_request("apps/tasks", params={"limit": limit})
    if not tasks:
        console.print("[yellow]No tasks found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Target")
    table.add_column("Action")
    table.add_column("Status")
    table.add_column("Progress")
    table.add_column("Message")
    table.add_column("Actor")
    table.add_column("Created")
    table.add_column("Duration")

    for task in tasks:
        retried = f" (retry of #{task['retried_from']})" if task.get('retried_from') else ""
        table.add_row(
            f"{task['id']}{retried}",
            task.get('app_id', ''),
            task.get('action', ''),
            format_task_status(task.get('status', '')),
            f"{task.get('progress', 0)}%",
            task.get('message') or '',
            task.get('actor', ''),
            format_time(task.get('created_at')),
            task_duration(task),
        )

    console.print("\n[bold cyan]Tasks[/bold cyan]")
    console.print(table)


@task_app.command("show")
def task_show(task_id: int = typer.Argument(..., help="Task ID")):
    """Show task details."""
    task = api_request(f"apps/tasks/{task_id}")
    if not task:
        return

    lines = [
        f"[bold]Target:[/bold] {task['app_id']}",
        f"[bold]Action:[/bold] {task['action']}",
        f"[bold]Status:[/bold] {format_task_status(task['status'])} ({task['progress']}%)",
        f"[bold]Message:[/bold] {task.get('message') or ''}",
        f"[bold]Actor:[/bold] {task['actor']}",
        f"[bold]Options:[/bold] {task.get('options') or {}}",
        f"[bold]Created:[/bold] {format_time(task.get('created_at'))}",
        f"[bold]Finished:[/bold] {format_time(task.get('finished_at'))}",
    ]
    if task.get('retried_from'):
        lines.append(f"[bold]Retry of:[/bold] #{task['retried_from']}")
    if task.get('error_detail'):
        lines.append(f"[bold red]Error:[/bold red] {task['error_detail']}")

    console.print(Panel("\n".join(lines), title=f"Task #{task_id}", border_style="cyan"))


@task_app.command("logs")
def task_logs(task_id: int = typer.Argument(..., help="Task ID")):
    """Show the log of a task."""
    result = api_request(f"apps/tasks/{task_id}/logs")
    if result is None:
        return
    syntax = Syntax(result.get('logs', ''), "log", theme="monokai", line_numbers=True)
    console.print(syntax)


@task_app.command("retry")
def task_retry(task_id: int = typer.Argument(..., help="ID of a failed task")):
    """Retry a failed task as a new task."""
    task = api_request(f"apps/tasks/{task_id}/retry", method="POST")
    if task:
        print_task_created(task)


@task_app.command("watch")
def task_watch(
    task_id: int = typer.Argument(..., help="Task ID"),
    interval: float = typer.Option(1.0, "--interval", "-i", help="Polling interval in seconds"),
):
    """Follow a task until it finishes."""
    task: Optional[Dict] = api_request(f"apps/tasks/{task_id}")
    if not task:
        raise typer.Exit(code=1)

    progress = Progress(TextColumn("[bold]#{task.fields[task_id]}"), BarColumn(),
                        TextColumn("{task.percentage:>3.0f}%"), TextColumn("{task.description}"),
                        console=console)
    try:
        with progress:
            bar = progress.add_task(task.get('message') or '', total=100, task_id=task_id)
            while True:
                progress.update(bar, completed=task['progress'], description=task.get('message') or '')
                if task['status'] in TERMINAL_STATUSES:
                    break
                time.sleep(interval)
                task = api_request(f"apps/tasks/{task_id}")
                if not task:
                    raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("[yellow]Stopped watching[/yellow]")
        return

    if task['status'] == "failed":
        console.print(f"[bold red]Task #{task_id} failed:[/bold red] {task.get('error_detail')}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Task #{task_id} finished:[/bold green] {task.get('message')}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8081, help="Port to bind to"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
):
    """Start the API server."""
    from nas_orcha.api.server import start_api_server
    console.print("[bold green]Starting API server...[/bold green]")
    start_api_server(host=host, port=port, config_path=config)


@app.command()
def version():
    """Show version information."""
    from importlib.metadata import PackageNotFoundError, version as package_version
    try:
        console.print(f"[bold cyan]NAS App Orchestrator[/bold cyan] v{package_version('nas-orcha')}")
    except PackageNotFoundError:
        console.print("[bold cyan]NAS App Orchestrator[/bold cyan] (version unknown)")


if __name__ == "__main__":
    app()
