"""
adapters.cli - typer/rich command line interface.
"""
