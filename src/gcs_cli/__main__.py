"""Entry point for running the CLI as a module.

Usage:
    python -m gcs_cli whoami --profile default
"""

from .cli import app


def main():
    app(prog_name="globus-connect-server")


if __name__ == "__main__":
    main()
