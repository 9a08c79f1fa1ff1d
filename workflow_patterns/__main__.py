"""Allow ``python -m workflow_patterns``."""
from workflow_patterns.cli.app import cli_main

if __name__ == "__main__":
    cli_main()
