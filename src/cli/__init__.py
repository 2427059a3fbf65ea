"""Command-line interface: click commands, cycle driver, structured events, terminal output."""
