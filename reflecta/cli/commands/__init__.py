"""CLI command implementations."""

from reflecta.cli.commands.import_cmd import cmd_import
from reflecta.cli.commands.migrate import cmd_migrate
from reflecta.cli.commands.status import cmd_status

__all__ = ["cmd_import", "cmd_migrate", "cmd_status"]
