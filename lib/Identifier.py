"""
Backup Identifier Module

Short random identifiers used to correlate the log lines,
workspace and uploaded object of a single run.
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import secrets

ALPHABET = '1234567890abcdefghijklmnopqrstuvwxyz'
LENGTH = 8

def generate_backup_id(length: int = LENGTH) -> str:
    """
    Generate a run identifier.

    Args:
        length (int): Number of characters

    Returns:
        str: Random string drawn uniformly from ALPHABET
    """

    return ''.join(secrets.choice(ALPHABET) for _ in range(length))
