"""
Mapping Management CLI
Inspect and edit mimic mappings offline, directly against the storage directory
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog
from rich.console import Console
from rich.table import Table

from mimic.core.config import ApplicationConfig
from mimic.core.exceptions import InvalidArgument, InvalidPattern, NotFound, StorageCorrupt
from mimic.mappings.service import MappingService
from mimic.mappings.storage import MappingStore

logger = structlog.get_logger()
console = Console()


class MappingManager:
    """
    CLI interface for mapping management

    Do not run it against a storage directory a live server is using:
    the server would overwrite the index with its own in-memory state.
    """

    def __init__(self, storage_dir: Optional[Path] = None):
        self.service: Optional[MappingService] = None
        try:
            if storage_dir is None:
                storage_dir = ApplicationConfig().storage.storage_dir
            service = MappingService(MappingStore(storage_dir))
            service.initialize()
            self.service = service
        except StorageCorrupt as e:
            console.print(f"[red]Mapping storage is corrupt: {e}[/red]")
        except Exception as e:
            console.print(f"[red]Failed to load configuration: {e}[/red]")

    def list_mappings(self) -> bool:
        """Print all mappings as a table"""
        if self.service is None:
            return False

        console.print("\n[bold blue]📋 Mimic Mappings[/bold blue]\n")

        mappings = self.service.list_with_metadata()
        if not mappings:
            console.print("[yellow]No mappings registered[/yellow]")
            console.print("\n[dim]To add one:[/dim]")
            console.print("  python main.py --add-pattern 'https://api.example.com/users'")
            return True

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="cyan", width=36)
        table.add_column("Kind", width=8)
        table.add_column("Pattern")
        table.add_column("Content", justify="right")

        for item in mappings:
            kind = "glob" if "pattern" in item else "regex"
            source = item.get("pattern") or item.get("regexPattern") or ""
            content = f"{item['contentLength']} B" if item["hasContent"] else "[dim]none[/dim]"
            table.add_row(item["id"], kind, source, content)

        console.print(table)
        console.print(f"\n[green]Total mappings: {len(mappings)}[/green]")
        return True

    def add_mapping(self, pattern: Optional[str] = None, regex_pattern: Optional[str] = None) -> bool:
        """Register a pattern or regex"""
        if self.service is None:
            return False

        try:
            mapping = self.service.create_or_overwrite(pattern=pattern, regex_pattern=regex_pattern)
        except (InvalidArgument, InvalidPattern) as e:
            console.print(f"[red]Error: {e}[/red]")
            return False

        console.print(f"[green]✅ Mapping registered:[/green] {mapping.id}")
        return True

    def set_content(self, mapping_id: str, content_file: Path) -> bool:
        """Load a file as a mapping's content"""
        if self.service is None:
            return False

        try:
            content = content_file.read_bytes()
        except OSError as e:
            console.print(f"[red]Cannot read {content_file}: {e}[/red]")
            return False

        try:
            mapping = self.service.set_content(mapping_id, content)
        except NotFound as e:
            console.print(f"[red]{e}[/red]")
            return False

        console.print(f"[green]✅ Content set:[/green] {mapping.id} ({mapping.content_length} bytes)")
        return True

    def show_mapping(self, mapping_id: str) -> bool:
        """Print one mapping including its content"""
        if self.service is None:
            return False

        mapping = asyncio.run(self.service.get_mapping(mapping_id, hydrate=True))
        if mapping is None:
            console.print(f"[red]Mapping not found: {mapping_id}[/red]")
            return False

        console.print(f"[bold]ID:[/bold] {mapping.id}")
        if mapping.pattern is not None:
            console.print(f"[bold]Pattern:[/bold] {mapping.pattern}")
        else:
            console.print(f"[bold]Regex:[/bold] {mapping.regex_pattern}")

        if mapping.content:
            console.print(f"[bold]Content ({mapping.content_length} bytes):[/bold]")
            console.print(mapping.content.decode("utf-8", errors="replace"), markup=False, highlight=False)
        else:
            console.print("[dim]No content[/dim]")
        return True

    def delete_mapping(self, mapping_id: str) -> bool:
        """Delete a mapping"""
        if self.service is None:
            return False

        if not self.service.delete_mapping(mapping_id):
            console.print(f"[yellow]Mapping not found: {mapping_id}[/yellow]")
            return False

        console.print(f"[green]✅ Mapping deleted:[/green] {mapping_id}")
        return True


def list_mappings_command() -> int:
    return 0 if MappingManager().list_mappings() else 1


def add_mapping_command(pattern: Optional[str] = None, regex_pattern: Optional[str] = None) -> int:
    return 0 if MappingManager().add_mapping(pattern, regex_pattern) else 1


def set_content_command(mapping_id: str, content_file: str) -> int:
    return 0 if MappingManager().set_content(mapping_id, Path(content_file)) else 1


def show_mapping_command(mapping_id: str) -> int:
    return 0 if MappingManager().show_mapping(mapping_id) else 1


def delete_mapping_command(mapping_id: str) -> int:
    return 0 if MappingManager().delete_mapping(mapping_id) else 1
