"""Error types and recovery suggestions for the OpenLLM provisioner.

Errors raised during preflight, account setup or tool installation abort the
whole run. Each error carries a list of suggestions which the handler renders
below the message.
"""

import os
import sys
from typing import Any, Dict, List, Optional, Self

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

console = Console(stderr=True)


class ProvisionError(Exception):
    """Base exception class for provisioning errors."""

    def __init__(self: Self, message: str, suggestions: Optional[List[str]] = None) -> None:
        """Initialize provisioning error.

        Args:
            message: The error message to display.
            suggestions: Optional list of recovery suggestions.
        """
        super().__init__(message)
        self.message = message
        self.suggestions = suggestions or []


class ConfigurationError(ProvisionError):
    """Raised when the configuration file is unreadable or invalid."""
    pass


class PreflightError(ProvisionError):
    """Raised when a required command is missing."""
    pass


class PrivilegeError(ProvisionError):
    """Raised when the provisioner is not running as root."""
    pass


class InstallationError(ProvisionError):
    """Raised when a package or the wrapped tool fails to install."""
    pass


class AccountError(ProvisionError):
    """Raised when a user, group or storage directory command fails."""
    pass


class ServiceError(ProvisionError):
    """Raised when a unit file or systemd command fails."""
    pass


class DuplicateServiceIdError(ProvisionError):
    """Raised when a target is appended with a service id already in use."""
    pass


class ErrorHandler:
    """Displays errors with recovery suggestions."""

    def __init__(self: Self) -> None:
        """Initialize the error handler."""
        self.error_patterns: Dict[str, Dict[str, Any]] = {
            "permission_denied": {
                "keywords": ["permission denied", "operation not permitted", "root"],
                "suggestions": [
                    "Run the provisioner with sudo: sudo openllm-provision",
                    "Check that the storage directory is not on a read-only mount",
                ]
            },
            "network": {
                "keywords": ["temporary failure", "could not resolve", "connection", "timed out"],
                "suggestions": [
                    "Check network connectivity to the package index",
                    "Configure a proxy for apt and pip if the host needs one",
                ]
            },
            "pip": {
                "keywords": ["pip", "wheel", "no matching distribution"],
                "suggestions": [
                    "Inspect the pip output above for the failing requirement",
                    "Remove the virtual environment and run the provisioner again",
                ]
            },
            "apt": {
                "keywords": ["apt", "dpkg", "e: unable to locate package"],
                "suggestions": [
                    "Run 'apt-get update' manually and check the sources list",
                    "Make sure no other package manager process holds the dpkg lock",
                ]
            },
            "systemd": {
                "keywords": ["systemctl", "unit", "daemon-reload"],
                "suggestions": [
                    "Check the unit file under /etc/systemd/system",
                    "Inspect 'journalctl -xe' for systemd errors",
                ]
            },
        }

    def identify_error_type(self: Self, error_message: str) -> Optional[str]:
        """Identify the type of error based on the message.

        Args:
            error_message: The error message to analyze.

        Returns:
            The error type key if identified, None otherwise.
        """
        error_lower = error_message.lower()

        for error_type, pattern_data in self.error_patterns.items():
            for keyword in pattern_data["keywords"]:
                if keyword in error_lower:
                    return error_type

        return None

    def get_suggestions(self: Self, error_message: str) -> List[str]:
        """Get recovery suggestions for an error message."""
        error_type = self.identify_error_type(error_message)

        if error_type:
            return self.error_patterns[error_type]["suggestions"]

        return [
            "Re-run with --verbose to see every command the provisioner executes",
            "Review the audit log under /var/log/openllm-provisioner",
        ]

    def display_error(
        self: Self,
        error: Exception,
        context: Optional[str] = None,
        show_suggestions: bool = True
    ) -> None:
        """Display an error with formatting and suggestions.

        Args:
            error: The exception that occurred.
            context: Optional context about what was being attempted.
            show_suggestions: Whether to show recovery suggestions.
        """
        error_message = str(error)
        content = []

        if context:
            content.append(f"[bold]Context:[/bold] {escape(context)}")
            content.append("")

        content.append(f"[bold red]\\[ERROR][/bold red] {escape(error_message)}")

        if show_suggestions:
            if isinstance(error, ProvisionError) and error.suggestions:
                suggestions = error.suggestions
            else:
                suggestions = self.get_suggestions(error_message)

            if suggestions:
                content.append("")
                content.append("[bold blue]Suggested solutions:[/bold blue]")
                for i, suggestion in enumerate(suggestions, 1):
                    content.append(f"  {i}. {escape(suggestion)}")

        console.print(Panel(
            "\n".join(content),
            title="[bold red]OpenLLM Provisioner Error[/bold red]",
            border_style="red",
            expand=False
        ))


def handle_exception(
    error: Exception,
    context: Optional[str] = None,
    exit_code: int = 1
) -> None:
    """Display the error and terminate the process.

    Args:
        error: The exception that occurred.
        context: Optional context about what was being attempted.
        exit_code: Exit code to use when terminating.
    """
    ErrorHandler().display_error(error, context)
    sys.exit(exit_code)


def handle_keyboard_interrupt() -> None:
    """Handle Ctrl+C gracefully."""
    console.print("\n[yellow]Provisioning cancelled by user[/yellow]")
    sys.exit(130)


def require_root_privileges() -> None:
    """Check for root privileges.

    Raises:
        PrivilegeError: If not running as root.
    """
    if os.geteuid() != 0:
        raise PrivilegeError(
            "This script must be run as root or with sudo.",
            [
                "Run with sudo: sudo openllm-provision",
                "Ensure your user account has sudo access",
            ]
        )
