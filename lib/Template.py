"""
Command Template Module

Placeholder substitution for job commands. Expansion always
returns new strings; the job definition itself is never touched,
so every scheduled run starts again from the declared text.

Recognized placeholders:
- ${BACKUP_ID}   run identifier
- ${TEMP_DIR}    run workspace path
- ${BACKUP_NAME} the unexpanded text of the string being expanded
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import re
from typing import Iterable, Tuple

BACKUP_ID = '${BACKUP_ID}'
TEMP_DIR = '${TEMP_DIR}'
BACKUP_NAME = '${BACKUP_NAME}'

## one alternation, so every token is replaced in a single pass
_PLACEHOLDER_RE = re.compile('|'.join(re.escape(token) for token in (BACKUP_ID, TEMP_DIR, BACKUP_NAME)))

def expand(text: str, backup_id: str, temp_dir: str) -> str:
    """
    Expand the placeholders of a single string.

    Args:
        text (str): Command or path template
        backup_id (str): Run identifier
        temp_dir (str): Run workspace path

    Returns:
        str: Expanded text
    """

    values = {
        BACKUP_ID: backup_id,
        TEMP_DIR: temp_dir,
        BACKUP_NAME: text,
    }
    return _PLACEHOLDER_RE.sub(lambda match: values[match.group(0)], text)

def expand_commands(commands: Iterable[str], backup_id: str, temp_dir: str) -> Tuple[str, ...]:
    """
    Expand every command of a job into a run-local copy.

    Args:
        commands (iterable): Declared commands, in order
        backup_id (str): Run identifier
        temp_dir (str): Run workspace path

    Returns:
        tuple: Expanded commands, same order and length
    """

    return tuple(expand(command, backup_id, temp_dir) for command in commands)
