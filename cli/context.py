"""
Colored Asset Protocol - CLI Context

State and helpers shared by the command modules: the global context object,
output formatting, error reporting and hex option parsing.
"""

import sys
import json
import logging
import functools
from typing import Optional, Any

import click
import yaml

from assets.exceptions import AssetError
from cli.config import ConfigurationManager
from psbt.exceptions import PSBTError

LOGGER_NAMES = ('assets', 'psbt', 'cli')


class CLIContext:
    """Global CLI context for sharing state across commands."""

    def __init__(self):
        self.config_file: Optional[str] = None
        self.profile: Optional[str] = None
        self.output_format: str = "table"
        self.verbose: int = 0
        self.config: Optional[ConfigurationManager] = None
        self.logger: logging.Logger = logging.getLogger('cli')

    def setup_logging(self):
        """Configure logging based on verbosity level."""
        log_levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG
        }

        level = log_levels.get(min(self.verbose, 2), logging.DEBUG)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        for name in LOGGER_NAMES:
            logger = logging.getLogger(name)
            logger.setLevel(level)
            # Replace the handler of a previous invocation in the same process
            for old in [h for h in logger.handlers if getattr(h, "cli_handler", False)]:
                logger.removeHandler(old)
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            handler.cli_handler = True
            logger.addHandler(handler)

    def load_config(self):
        """Load configuration from defaults, file and environment."""
        self.config = ConfigurationManager(self.config_file, self.profile)
        self.config.load()
        errors = self.config.validate()
        if errors:
            raise click.UsageError("Invalid configuration: " + "; ".join(errors))

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get configuration value with fallback to default."""
        return self.config.get(key, default)

    def output(self, data: Any, format_override: Optional[str] = None):
        """Output data in specified format."""
        format_type = format_override or self.output_format

        if format_type == "json":
            click.echo(json.dumps(data, indent=2, default=str))
        elif format_type == "yaml":
            click.echo(yaml.safe_dump(json.loads(json.dumps(data, default=str)), default_flow_style=False,
                                      sort_keys=False))
        else:
            self._output_table(data)

    def _output_table(self, data: Any):
        """Output data in table format."""
        if isinstance(data, dict):
            for key, value in data.items():
                if isinstance(value, list) and value and isinstance(value[0], dict):
                    click.echo(f"{key}:")
                    self._output_table(value)
                else:
                    click.echo(f"{key:20} {value}")
        elif isinstance(data, list) and data:
            if isinstance(data[0], dict):
                headers = []
                for item in data:
                    headers.extend(h for h in item if h not in headers)
                click.echo(" | ".join(f"{h:10}" for h in headers))
                click.echo("-" * (len(headers) * 13))
                for item in data:
                    values = [str(item.get(h, ""))[:10] for h in headers]
                    click.echo(" | ".join(f"{v:10}" for v in values))
            else:
                for item in data:
                    click.echo(item)
        else:
            click.echo(str(data))


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


def handle_cli_error(func):
    """Decorator to report protocol errors without a traceback."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (AssetError, PSBTError, ValueError) as e:
            ctx = click.get_current_context().find_object(CLIContext)
            if ctx is not None and ctx.verbose >= 2:
                ctx.logger.exception("Command failed")
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    return wrapper


def parse_hex(value: Optional[str], name: str, size: Optional[int] = None) -> Optional[bytes]:
    if value is None:
        return None
    try:
        data = bytes.fromhex(value)
    except ValueError:
        raise click.BadParameter(f"{name} must be hex: {value}")
    if size is not None and len(data) != size:
        raise click.BadParameter(f"{name} must be {size} bytes, got {len(data)}")
    return data
