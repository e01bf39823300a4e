"""Shell selection and shell-integration support for ptyrelay.

Public API:
    ShellResolver -- logical shell identifier -> command line
    integration_script -- one-shot cwd-reporting snippet per shell
"""

from ptyrelay.shell.integration import integration_script
from ptyrelay.shell.resolver import ShellResolver, parse_shell_type

__all__ = ["ShellResolver", "integration_script", "parse_shell_type"]
