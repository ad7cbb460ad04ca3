"""Utility functions for the CLI"""

from datetime import datetime, timezone
from functools import wraps
import json
from typing import Any, Dict, List, Optional

import click
from tabulate import tabulate

from logship.core.exceptions import LogshipError


def format_position(position: Optional[int]) -> str:
    """Format a sincedb position (ns since epoch) as an ISO timestamp"""
    if position is None:
        return '-'
    if position == 0:
        return 'beginning'
    seconds, nanos = divmod(position, 1_000_000_000)
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return f"{dt.strftime('%Y-%m-%dT%H:%M:%S')}.{nanos:09d}Z"


def truncate_id(id_str: str, length: int = 12) -> str:
    """Truncate ID to specified length"""
    if not id_str:
        return '-'
    return id_str[:length]


class OutputFormatter:
    """Formats output in various formats"""

    def __init__(self, format_type: str = 'table'):
        self.format_type = format_type

    def format(self, data: List[Dict[str, Any]], headers: Optional[List[str]] = None) -> str:
        """Format data based on format type"""
        if self.format_type == 'json':
            return json.dumps(data, indent=2, default=str)
        return self.format_table(data, headers)

    def format_table(self, data: List[Dict[str, Any]], headers: Optional[List[str]] = None) -> str:
        """Format as table"""
        if not data:
            return "No containers found"

        table_data = [list(item.values()) for item in data]
        if not headers:
            headers = [k.upper() for k in data[0].keys()]

        return tabulate(table_data, headers=headers, tablefmt='simple')


def error_handler(func):
    """Decorator turning logship errors into a clean exit"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LogshipError as e:
            click.echo(f"Error: {e.message}", err=True)
            ctx = click.get_current_context()
            ctx.exit(1)

    return wrapper
