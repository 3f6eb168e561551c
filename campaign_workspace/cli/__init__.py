"""
Command Line Interface for Campaign Workspace.
"""

import mimetypes
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..db.base import get_session_local, init_database
from ..db.repository import MetadataRepository
from ..errors import PartialSuccessError, WorkspaceError
from ..logging_config import configure_logging
from ..pipeline import ArtifactPipeline
from ..retry import RetryPolicy
from ..storage import create_http_client, create_object_store
from ..workspace import Workspace

app = typer.Typer(help="Campaign Workspace - campaigns, uploads and generated outputs")
campaigns_app = typer.Typer(help="Manage campaigns")
files_app = typer.Typer(help="Upload files and generate outputs")
app.add_typer(campaigns_app, name="campaigns")
app.add_typer(files_app, name="files")

console = Console()

UserOption = typer.Option(..., "--user", "-u", envvar="CAMPAIGN_USER", help="Acting user id")


@contextmanager
def open_workspace() -> Iterator[Workspace]:
    """Workspace wired from settings for one command."""
    settings = get_settings()
    configure_logging(settings)
    init_database()

    retry_policy = RetryPolicy.from_settings(settings)
    store = create_object_store(settings)
    http_client = create_http_client(store, settings.fetch_timeout_seconds)
    db = get_session_local()()
    try:
        pipeline = ArtifactPipeline(store, http_client, retry_policy=retry_policy)
        yield Workspace(MetadataRepository(db), store, pipeline, retry_policy=retry_policy)
    finally:
        db.close()
        http_client.close()
        close = getattr(store, "close", None)
        if close is not None:
            close()


def fail(error: WorkspaceError) -> None:
    """Print a workspace error and exit non-zero."""
    details = f"[bold]{error.code}[/bold]"
    if error.step:
        details += f" at step [cyan]{error.step}[/cyan]"
    console.print(f"❌ {error.message} ({details})")
    if isinstance(error, PartialSuccessError):
        console.print(
            f"   completed: {error.completed_step}, failed: {error.failed_step}"
            + (f", stored key: {error.storage_key}" if error.storage_key else "")
        )
    raise typer.Exit(code=1)


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Start the HTTP API."""
    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    rprint(Panel.fit("🚀 Starting Campaign Workspace", style="bold blue"))
    console.print(f"Listening on http://{host}:{port}")
    uvicorn.run("campaign_workspace.main:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db():
    """Create the database tables."""
    configure_logging(get_settings())
    init_database()
    console.print("✅ Database initialized")


@campaigns_app.command("list")
def list_campaigns(user: str = UserOption):
    """List your campaigns."""
    with open_workspace() as workspace:
        try:
            campaigns = workspace.list_campaigns(user)
        except WorkspaceError as e:
            fail(e)

    if not campaigns:
        console.print("No campaigns yet")
        return

    table = Table(title="Campaigns", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Created")
    for campaign in campaigns:
        table.add_row(campaign.id, campaign.name, f"{campaign.created_at:%Y-%m-%d}")
    console.print(table)


@campaigns_app.command("create")
def create_campaign(
    name: str = typer.Argument(..., help="Campaign name"),
    user: str = UserOption,
):
    """Create a campaign."""
    with open_workspace() as workspace:
        try:
            campaign = workspace.create_campaign(user, name)
        except WorkspaceError as e:
            fail(e)
        console.print(f"✅ Created campaign [bold]{campaign.name}[/bold] ({campaign.id})")


@campaigns_app.command("rename")
def rename_campaign(
    campaign_id: str = typer.Argument(..., help="Campaign id"),
    name: str = typer.Argument(..., help="New name"),
    user: str = UserOption,
):
    """Rename a campaign."""
    with open_workspace() as workspace:
        try:
            campaign = workspace.rename_campaign(user, campaign_id, name)
        except WorkspaceError as e:
            fail(e)
        console.print(f"✅ Renamed campaign {campaign.id} to [bold]{campaign.name}[/bold]")


@campaigns_app.command("delete")
def delete_campaign(
    campaign_id: str = typer.Argument(..., help="Campaign id"),
    user: str = UserOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a campaign and its file records."""
    if not yes:
        typer.confirm(f"Delete campaign {campaign_id} and all its file records?", abort=True)

    with open_workspace() as workspace:
        try:
            deleted = workspace.delete_campaign(user, campaign_id)
        except WorkspaceError as e:
            fail(e)
    console.print(f"✅ Deleted campaign {campaign_id} ({deleted} file records)")


@files_app.command("list")
def list_files(
    campaign_id: str = typer.Argument(..., help="Campaign id"),
    user: str = UserOption,
):
    """List a campaign's files with input and output links."""
    with open_workspace() as workspace:
        try:
            listings = workspace.list_files(user, campaign_id)
        except WorkspaceError as e:
            fail(e)

    if not listings:
        console.print("No files in this campaign")
        return

    table = Table(title="Files", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Input")
    table.add_column("Output")
    for listing in listings:
        table.add_row(
            listing.record.id,
            listing.record.file_name,
            listing.input_url,
            listing.output_url or "[dim]not generated[/dim]",
        )
    console.print(table)


@files_app.command("upload")
def upload_file(
    campaign_id: str = typer.Argument(..., help="Campaign id"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    user: str = UserOption,
    content_type: Optional[str] = typer.Option(None, help="Content type; guessed if omitted"),
):
    """Upload a file into a campaign."""
    content_type = content_type or mimetypes.guess_type(path.name)[0]
    with open_workspace() as workspace:
        try:
            result = workspace.upload(
                owner=user,
                campaign_id=campaign_id,
                file_name=path.name,
                data=path.read_bytes(),
                content_type=content_type,
            )
        except WorkspaceError as e:
            fail(e)
        console.print(f"✅ Uploaded {path.name} as {result.record.storage_key}")
        console.print(f"   {result.input_url}")


@files_app.command("generate")
def generate_output(
    campaign_id: str = typer.Argument(..., help="Campaign id"),
    file_id: str = typer.Argument(..., help="File record id"),
    user: str = UserOption,
    if_absent: bool = typer.Option(
        False, "--if-absent", help="Return the existing output instead of failing"
    ),
):
    """Generate the output artifact for a file."""
    with open_workspace() as workspace:
        try:
            result = workspace.generate(user, campaign_id, file_id, if_absent=if_absent)
        except WorkspaceError as e:
            fail(e)

    verb = "Already generated" if result.already_existed else "Generated"
    console.print(f"✅ {verb} {result.destination_key}")
    console.print(f"   {result.public_url}")


if __name__ == "__main__":
    app()
