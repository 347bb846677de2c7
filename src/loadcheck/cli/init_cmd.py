"""``loadcheck init``: scaffold a new scenario file from a template."""

from __future__ import annotations

import keyword
from pathlib import Path
from string import Template

import typer
from rich.console import Console

from loadcheck._internal.config import TARGET_ENV_VAR

console = Console(stderr=True)

_SCENARIO_TEMPLATE = Template('''\
"""Load test scenario: $title.

Run with:
    $env_var=http://localhost:8080 loadcheck run $filename --vus 10 --duration 30s
"""

from __future__ import annotations

from loadcheck import HttpClient, Response, scenario, status_is


@scenario(
    name="$name",
    checks={"is status 200": status_is(200)},
)
async def $name(client: HttpClient) -> Response:
    """GET the target URI."""
    return await client.get()
''')


def init_cmd(
    name: str = typer.Argument(
        "my_scenario",
        help="Name for the scenario (used as filename and function name).",
    ),
    directory: Path = typer.Option(
        Path(),
        "--dir",
        help="Directory to create the scenario file in.",
        file_okay=False,
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite an existing file.",
    ),
) -> None:
    """Scaffold a new scenario file."""
    # Sanitise the name for use as a Python identifier
    safe_name = "".join(c if c.isalnum() or c == "_" else "_" for c in name).lower()
    if not safe_name or safe_name[0].isdigit() or keyword.iskeyword(safe_name):
        safe_name = "scenario_" + safe_name

    filename = f"{safe_name}.py"
    title = name.replace("_", " ").replace("-", " ").title()

    target = directory / filename
    if target.exists() and not force:
        console.print(f"[red]File already exists:[/red] {target}")
        raise typer.Exit(code=1)

    content = _SCENARIO_TEMPLATE.substitute(
        title=title,
        name=safe_name,
        filename=filename,
        env_var=TARGET_ENV_VAR,
    )
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    console.print(f"[green]Created scenario:[/green] {target}")
