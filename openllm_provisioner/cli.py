"""Command-line entry point for the OpenLLM provisioner."""

from pathlib import Path
from typing import Optional

import click

from . import __version__
from .audit import open_audit_logger
from .config import Config
from .errors import ProvisionError, handle_exception, handle_keyboard_interrupt
from .output import configure_logging
from .pipeline import Provisioner


@click.command()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='JSON configuration file (default: /etc/openllm-provisioner/config.json)')
@click.option('--verbose', '-v', is_flag=True, help='Log every command the provisioner runs')
@click.version_option(__version__, prog_name='openllm-provision')
def main(config_path: Optional[Path], verbose: bool) -> None:
    """Provision OpenLLM model servers as systemd services on this host."""
    configure_logging(verbose)
    audit = None

    try:
        settings = Config(config_path).settings()
        audit = open_audit_logger(settings.log_dir)
        Provisioner(settings, audit=audit).run()
    except KeyboardInterrupt:
        handle_keyboard_interrupt()
    except ProvisionError as e:
        if audit:
            audit.log_error(e.message, {"type": type(e).__name__})
        handle_exception(e)
    except EOFError as e:
        if audit:
            audit.log_error("Input ended before provisioning finished", {"type": type(e).__name__})
        handle_exception(e, context="Reading answers from standard input")
    except OSError as e:
        if audit:
            audit.log_error(str(e), {"type": type(e).__name__})
        handle_exception(e, context="Changing files on this host")
    finally:
        if audit:
            audit.close()


if __name__ == '__main__':
    main()
