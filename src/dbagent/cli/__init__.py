"""Command-line interface (``dbagent``)."""
