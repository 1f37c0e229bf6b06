"""
Artifact Handling Module

Helpers applied to the file a backup run produces, after its
commands have finished:

- validate that the declared path exists
- derive the destination object name
- detect the media type from the leading bytes
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import os
from datetime import datetime, timezone

## import 3rd pkgs
import magic

## import private pkgs
from Errors import DetectionError, ValidationError

TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'

## bytes read for content sniffing
SNIFF_BYTES = 3072

def validate_artifact(path: str) -> None:
    """
    Check that the artifact exists.

    Only existence is checked; files and directories are both
    accepted, size and content are not inspected.

    Args:
        path (str): Artifact path

    Returns:
        None

    Raises:
        ValidationError: Path is absent or cannot be stat'ed
    """

    try:
        os.stat(path)

    except (OSError, ValueError) as e:
        raise ValidationError('artifact %s is not accessible: %s' % (path, e)) from e

def artifact_name(name: str, backup_id: str, source_path: str, now: datetime = None) -> str:
    """
    Build the destination object name of an artifact.

    Args:
        name (str): Job name
        backup_id (str): Run identifier
        source_path (str): Artifact path, its extension is kept
        now (datetime): Timestamp, current UTC time by default

    Returns:
        str: <timestamp>-<name>-<backup_id><ext>
    """

    now = now or datetime.now(timezone.utc)
    extension = os.path.splitext(source_path)[1]
    return '%s-%s-%s%s' % (now.strftime(TIMESTAMP_FORMAT), name, backup_id, extension)

def detect_content_type(path: str) -> str:
    """
    Detect the media type of an artifact from its content.

    Args:
        path (str): Artifact path

    Returns:
        str: Media type with charset, e.g. "text/plain; charset=us-ascii"

    Raises:
        DetectionError: File cannot be read or libmagic fails
    """

    try:
        with open(path, 'rb') as fh:
            head = fh.read(SNIFF_BYTES)

    except (OSError, ValueError) as e:
        raise DetectionError('cannot read %s: %s' % (path, e)) from e

    try:
        return magic.Magic(mime = True, mime_encoding = True).from_buffer(head)

    except magic.MagicException as e:
        raise DetectionError('cannot detect content type of %s: %s' % (path, e)) from e
