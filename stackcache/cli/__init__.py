from .main import command_line_entry_point, help_on_exceptions, register_subcommand, main

# register sub-commands
from . import cache_cli
from . import build_cli
